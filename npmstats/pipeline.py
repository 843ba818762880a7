"""
Progressive GitHub enrichment of a search result.

``DashboardSession`` holds the dashboard state for one viewer: the current
search result, failure counts, the set of packages being retried, and the
rate-limit warning. Subscribers are called with a ``SearchState`` after every
change.

Enrichment runs in fixed-size batches. Items of a batch run concurrently, each
with its own bounded attempt loop; a batch is merged into the result in one
step once every item in it has settled, and batches are separated by a short
pause. Per-item failures are counted, never raised.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import replace

import httpx

from npmstats.client import DashboardClient
from npmstats.enrichment import (
    DEFAULT_MAX_ATTEMPTS,
    EndpointResponse,
    ItemEnrichment,
    RateLimitNotice,
)
from npmstats.logging import get_logger
from npmstats.types.github import GithubStats
from npmstats.types.history import HistorySnapshot
from npmstats.types.packages import (
    FailureStats,
    Package,
    RateLimitInfo,
    SearchState,
    UserStats,
)

logger = get_logger("pipeline")

BATCH_SIZE = 2
BATCH_PAUSE = 1.0  # Seconds between batches

ANONYMOUS_PACKAGE_LIMIT = 20
FREE_PACKAGE_LIMIT = 100

Subscriber = Callable[[SearchState], None]


def batched(items: list, size: int) -> list[list]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError("batch size must be positive")
    return [items[i:i + size] for i in range(0, len(items), size)]


class DashboardSession:
    """
    Dashboard state and the enrichment pipeline that fills it.

    Example:
        ```python
        async with DashboardClient("http://localhost:8000") as client:
            session = DashboardSession(client, user_id="auth0|123")
            session.subscribe(lambda state: print(state.failure_stats))
            await session.search("sindresorhus")
            await session.wait_for_enrichment()
            await session.retry_all_failed()
        ```
    """

    def __init__(
        self,
        client: DashboardClient,
        user_id: str | None = None,
        is_paid: bool = False,
        batch_size: int = BATCH_SIZE,
        batch_pause: float = BATCH_PAUSE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            client: Backend client
            user_id: Identifier of the signed-in viewer, None when anonymous
            is_paid: Whether the viewer has a paid plan
            batch_size: Packages enriched concurrently
            batch_pause: Seconds to wait between batches
            max_attempts: Attempts per package during the initial enrichment
            sleep: Coroutine used for every delay
        """
        self.client = client
        self.user_id = user_id
        self.is_paid = is_paid
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.max_attempts = max_attempts
        self._sleep = sleep

        self.user_stats: UserStats | None = None
        self.failure_stats = FailureStats()
        self.retrying: set[str] = set()
        self.rate_limit_info = RateLimitInfo()
        self.loading = False
        self.no_packages_found = False
        self.generation = 0
        self.enrichment_task: asyncio.Task | None = None

        self._subscribers: list[Subscriber] = []

    @property
    def is_logged_in(self) -> bool:
        return self.user_id is not None

    @property
    def package_limit(self) -> int | None:
        """Maximum packages shown for the viewer's plan (None = unlimited)."""
        if not self.is_logged_in:
            return ANONYMOUS_PACKAGE_LIMIT
        if self.is_paid:
            return None
        return FREE_PACKAGE_LIMIT

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def state(self) -> SearchState:
        return SearchState(
            user_stats=self.user_stats,
            failure_stats=self.failure_stats.copy(),
            rate_limit_info=replace(self.rate_limit_info),
            retrying=frozenset(self.retrying),
            loading=self.loading,
            no_packages_found=self.no_packages_found,
        )

    def _publish(self) -> None:
        snapshot = self.state()
        for callback in list(self._subscribers):
            callback(snapshot)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _reset(self) -> None:
        self.generation += 1
        self.user_stats = None
        self.no_packages_found = False
        self.failure_stats = FailureStats()
        self.retrying = set()
        self.rate_limit_info = RateLimitInfo()

    def clear(self) -> None:
        """Drop the current result. A pipeline still running for it is ignored from now on."""
        self._reset()
        self.loading = False
        self._publish()

    async def search(self, username: str) -> UserStats | None:
        """
        Load a maintainer's packages and start enriching them in the background.

        Returns:
            The initial (not yet enriched) result, or None if the maintainer
            has no packages

        Raises:
            SearchError: If the backend rejects the search
            httpx.RequestError: On network failure
        """
        self._reset()
        self.loading = True
        generation = self.generation
        self._publish()

        try:
            data = await self.client.get_stats(username)
        except Exception:
            logger.exception("Failed to fetch user stats for %s", username)
            self.loading = False
            self._publish()
            raise

        if generation != self.generation:
            return None

        if not data.packages:
            self.no_packages_found = True
            self.loading = False
            self._publish()
            return None

        limit = self.package_limit
        packages = data.packages if limit is None else data.packages[:limit]
        if len(packages) < len(data.packages):
            logger.info(
                "Limiting packages to %d: %d -> %d",
                limit, len(data.packages), len(packages),
            )

        history: HistorySnapshot | None = None
        if self.is_logged_in:
            history = await self.client.get_history(self.user_id, username)
            if generation != self.generation:
                return None

        initial = [self._initial_package(pkg, history) for pkg in packages]
        self.user_stats = replace(
            data,
            packages=initial,
            total_stars=0,
            is_loading_github_data=True,
            previous_total_downloads=history.total_downloads if history else None,
            previous_total_stars=history.total_stars if history else None,
        )
        self.loading = False
        self._publish()

        self.enrichment_task = asyncio.create_task(
            self.load_github_data_progressively(initial, generation)
        )
        return self.user_stats

    @staticmethod
    def _initial_package(pkg: Package, history: HistorySnapshot | None) -> Package:
        previous = history.find_package(pkg.name) if history else None
        return replace(
            pkg,
            is_loading_github_data=True,
            github_fetch_failed=False,
            previous_weekly_downloads=previous.get("weeklyDownloads") if previous else None,
            previous_github_stars=previous.get("githubStars") if previous else None,
            previous_open_issues=previous.get("openIssues") if previous else None,
        )

    async def wait_for_enrichment(self) -> None:
        """Wait until the background enrichment of the latest search is done."""
        if self.enrichment_task is not None:
            await self.enrichment_task

    # ------------------------------------------------------------------
    # Progressive enrichment
    # ------------------------------------------------------------------

    async def load_github_data_progressively(
        self, packages: list[Package], generation: int | None = None
    ) -> None:
        """
        Enrich ``packages`` batch by batch.

        Results are discarded as soon as the session has moved on to another
        search (``generation`` no longer current).
        """
        if generation is None:
            generation = self.generation
        if generation != self.generation:
            return

        stats = FailureStats(total=len(packages))
        self.failure_stats = stats
        self._publish()

        batches = batched(packages, self.batch_size)
        logger.info("Starting GitHub enrichment of %d packages", len(packages))

        for index, batch in enumerate(batches):
            logger.info("Processing GitHub batch %d/%d", index + 1, len(batches))

            results = await asyncio.gather(*(self._enrich_one(pkg) for pkg in batch))

            if generation != self.generation:
                logger.info("Search was replaced, dropping enrichment results")
                return

            updated: list[Package] = []
            for pkg, item in results:
                if item.succeeded:
                    updated.append(
                        pkg.with_github_data(
                            item.result.stars, item.result.open_issues, item.result.repo_url
                        )
                    )
                else:
                    logger.warning(
                        "All attempts failed for %s: %s", pkg.name, item.last_error
                    )
                    stats.record_failure()
                    updated.append(pkg.as_failed())

                if item.rate_limit_notice is not None:
                    self._record_rate_limit(item.rate_limit_notice)

            if self.user_stats is not None:
                self.user_stats = self.user_stats.merge(updated)
            self._publish()

            if index < len(batches) - 1:
                await self._sleep(self.batch_pause)

        logger.info(
            "GitHub enrichment completed. Failed: %d/%d", stats.failed, stats.total
        )

        if self.is_logged_in and self.user_stats is not None:
            await self._save_history(self.user_stats)

    async def _enrich_one(self, pkg: Package) -> tuple[Package, ItemEnrichment]:
        item = ItemEnrichment(pkg.name, max_attempts=self.max_attempts)

        while True:
            item.start_attempt()
            logger.debug("Attempt %d/%d for %s", item.attempt, item.max_attempts, pkg.name)

            try:
                response = await self.client.get_github_stats(pkg.name)
            except (httpx.HTTPError, ValueError) as e:
                logger.debug("Network error for %s (attempt %d): %s", pkg.name, item.attempt, e)
                delay = item.on_error(e)
            else:
                try:
                    delay = item.on_response(response)
                except (TypeError, ValueError) as e:
                    logger.debug("Unreadable answer for %s (attempt %d): %s", pkg.name, item.attempt, e)
                    delay = item.on_error(e)

            if delay is None:
                return pkg, item

            logger.debug("Retrying %s in %.1fs", pkg.name, delay)
            if delay > 0:
                await self._sleep(delay)

    def _record_rate_limit(self, notice: RateLimitNotice) -> None:
        self.rate_limit_info = RateLimitInfo(
            is_limited=True,
            reset_time=notice.reset_time,
            message=notice.message,
        )

    async def _save_history(self, stats: UserStats) -> None:
        logger.info("Saving snapshot for %s", stats.username)
        if not await self.client.save_history(self.user_id, stats.username, stats):
            logger.warning("Snapshot for %s was not saved", stats.username)

    # ------------------------------------------------------------------
    # Manual retries
    # ------------------------------------------------------------------

    async def retry_package(self, package_name: str) -> bool:
        """
        Re-request GitHub data for one package, once.

        Returns:
            True if the package was enriched
        """
        generation = self.generation
        self.retrying.add(package_name)
        self._publish()
        logger.info("Retrying GitHub data for %s", package_name)

        response: EndpointResponse | None = None
        try:
            response = await self.client.get_github_stats(package_name)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Retry error for %s: %s", package_name, e)
        finally:
            self.retrying.discard(package_name)

        enriched = False
        if response is not None and generation == self.generation:
            enriched = self._apply_retry(package_name, response)
        self._publish()
        return enriched

    def _apply_retry(self, package_name: str, response: EndpointResponse) -> bool:
        if response.ok:
            pkg = self.user_stats.get(package_name) if self.user_stats else None
            if pkg is None:
                return False
            try:
                result = GithubStats.from_dict(response.data)
            except (TypeError, ValueError) as e:
                logger.error("Unreadable retry answer for %s: %s", package_name, e)
                return False
            self.user_stats = self.user_stats.merge(
                [pkg.with_github_data(result.stars, result.open_issues, result.repo_url)]
            )
            self.failure_stats.record_recovery()
            logger.info("Retry succeeded for %s", package_name)
            return True

        if response.status_code == 429:
            notice = RateLimitNotice.from_response(response)
            logger.warning("Rate limited while retrying %s", package_name)
            if notice is not None:
                self._record_rate_limit(notice)
            return False

        logger.info("Retry failed for %s: HTTP %d", package_name, response.status_code)
        return False

    async def retry_all_failed(self) -> None:
        """Retry every package currently flagged as failed, in paced batches."""
        if self.user_stats is None:
            return

        failed = [pkg.name for pkg in self.user_stats.failed_packages]
        logger.info("Retrying %d failed GitHub fetches", len(failed))

        batches = batched(failed, self.batch_size)
        for index, batch in enumerate(batches):
            await asyncio.gather(*(self.retry_package(name) for name in batch))
            if index < len(batches) - 1:
                await self._sleep(self.batch_pause)

        logger.info("Completed retry of failed fetches")
