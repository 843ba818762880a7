"""
Tests for DashboardSession: search, progressive enrichment and retries.

Feature: progressive enrichment pipeline
"""

import asyncio

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from npmstats.enrichment import EndpointResponse
from npmstats.exceptions import SearchError
from npmstats.pipeline import (
    ANONYMOUS_PACKAGE_LIMIT,
    FREE_PACKAGE_LIMIT,
    DashboardSession,
    batched,
)
from npmstats.testing import (
    MockDashboardClient,
    RecordingSleep,
    create_mock_snapshot,
    create_mock_user_stats,
    github_error,
    github_ok,
    github_rate_limited,
    no_sleep,
)
from npmstats.types.packages import SearchState


def run_search(session: DashboardSession, username: str):
    async def go():
        result = await session.search(username)
        await session.wait_for_enrichment()
        return result

    return asyncio.run(go())


def collect(session: DashboardSession) -> list[SearchState]:
    states: list[SearchState] = []
    session.subscribe(states.append)
    return states


class TestProgressiveEnrichment:
    """Initial enrichment of a search result."""

    def test_three_packages_two_batches(
        self, mock_client: MockDashboardClient, recording_sleep: RecordingSleep, sample_user_stats
    ) -> None:
        mock_client.configure_stats(sample_user_stats)
        mock_client.configure_github_stats("pkg1", github_ok(stars=10, repo_url="https://github.com/a/pkg1"))
        mock_client.configure_github_stats("pkg2", github_error(500), github_ok(stars=5, open_issues=3))
        mock_client.configure_github_stats("pkg3", github_error(404, "Not found"))
        session = DashboardSession(mock_client, sleep=recording_sleep)
        states = collect(session)

        run_search(session, "alice")

        stats = session.user_stats
        assert stats.total_stars == 15
        assert not stats.is_loading_github_data
        assert stats.get("pkg1").github_stars == 10
        assert stats.get("pkg1").repo_url == "https://github.com/a/pkg1"
        assert stats.get("pkg2").open_issues == 3
        assert stats.get("pkg3").github_fetch_failed
        assert session.failure_stats.to_dict() == {"total": 3, "failed": 1}

        # Server-error retry in the first batch, pause between batches; the 404 retry does not wait
        assert recording_sleep.delays == [1.0, 1.0]
        assert mock_client.call_count("get_github_stats", "pkg2") == 2
        assert mock_client.call_count("get_github_stats", "pkg3") == 2

        merged = [
            s for s in states
            if s.user_stats is not None
            and any(not p.is_loading_github_data for p in s.user_stats.packages)
        ]
        first, last = merged[0], merged[-1]
        assert first.user_stats.get("pkg1").github_stars == 10
        assert first.user_stats.get("pkg2").github_stars == 5
        assert first.user_stats.get("pkg3").is_loading_github_data
        assert first.user_stats.total_stars == 15
        assert first.user_stats.is_loading_github_data
        assert last.user_stats.get("pkg3").github_fetch_failed
        for state in states:
            assert 0 <= state.failure_stats.failed <= state.failure_stats.total

    def test_batch_is_merged_atomically(self, mock_client: MockDashboardClient) -> None:
        """No published state has one item of a batch settled and the other loading."""
        mock_client.configure_stats(create_mock_user_stats("bob", ["a", "b", "c", "d"]))
        mock_client.configure_github_stats("b", github_error(503), github_ok(stars=1))
        session = DashboardSession(mock_client, sleep=no_sleep)
        states = collect(session)

        run_search(session, "bob")

        for state in states:
            if state.user_stats is None:
                continue
            loading = {p.name: p.is_loading_github_data for p in state.user_stats.packages}
            assert loading["a"] == loading["b"]
            assert loading["c"] == loading["d"]

    def test_concurrency_bounded_by_batch_size(self, mock_client: MockDashboardClient) -> None:
        names = [f"pkg-{i}" for i in range(7)]
        mock_client.configure_stats(create_mock_user_stats("carol", names))
        session = DashboardSession(mock_client, sleep=no_sleep)

        run_search(session, "carol")

        assert mock_client.max_in_flight == 2
        assert mock_client.call_count("get_github_stats") == 7

    def test_pauses_between_batches_only(
        self, mock_client: MockDashboardClient, recording_sleep: RecordingSleep
    ) -> None:
        mock_client.configure_stats(create_mock_user_stats("dave", ["a", "b", "c", "d", "e"]))
        session = DashboardSession(mock_client, sleep=recording_sleep)

        run_search(session, "dave")

        assert recording_sleep.delays == [1.0, 1.0]

    def test_forbidden_exhausts_attempts(
        self, mock_client: MockDashboardClient, recording_sleep: RecordingSleep
    ) -> None:
        mock_client.configure_stats(create_mock_user_stats("erin", ["a"]))
        mock_client.configure_github_stats("a", github_error(403))
        session = DashboardSession(mock_client, sleep=recording_sleep)

        run_search(session, "erin")

        assert mock_client.call_count("get_github_stats", "a") == 2
        assert recording_sleep.delays == [2.0]
        assert session.user_stats.get("a").github_fetch_failed
        assert session.failure_stats.failed == 1

    def test_network_error_then_success(self, mock_client: MockDashboardClient) -> None:
        mock_client.configure_stats(create_mock_user_stats("frank", ["a"]))
        mock_client.configure_github_stats("a", httpx.ConnectError("reset"), github_ok(stars=7))
        session = DashboardSession(mock_client, sleep=no_sleep)

        run_search(session, "frank")

        assert session.user_stats.get("a").github_stars == 7
        assert session.failure_stats.failed == 0

    def test_rate_limited_package_is_not_retried(self, mock_client: MockDashboardClient) -> None:
        mock_client.configure_stats(create_mock_user_stats("gina", ["a", "b"]))
        mock_client.configure_github_stats("a", github_rate_limited(1_700_000_000_000))
        session = DashboardSession(mock_client, sleep=no_sleep)

        run_search(session, "gina")

        assert mock_client.call_count("get_github_stats", "a") == 1
        assert session.user_stats.get("a").github_fetch_failed
        assert session.failure_stats.failed == 1
        assert session.rate_limit_info.is_limited
        assert session.rate_limit_info.reset_time == 1_700_000_000.0
        assert session.rate_limit_info.message == "GitHub API rate limit exceeded"

    def test_package_without_repository_is_not_a_failure(
        self, mock_client: MockDashboardClient
    ) -> None:
        mock_client.configure_stats(create_mock_user_stats("hank", ["no-repo"]))
        mock_client.configure_github_stats("no-repo", github_ok(stars=0, repo_url=None))
        session = DashboardSession(mock_client, sleep=no_sleep)

        run_search(session, "hank")

        pkg = session.user_stats.get("no-repo")
        assert not pkg.github_fetch_failed
        assert pkg.repo_url is None
        assert session.failure_stats.failed == 0

    def test_failure_total_matches_package_count(self, mock_client: MockDashboardClient) -> None:
        names = ["a", "b", "c"]
        mock_client.configure_stats(create_mock_user_stats("ivy", names))
        for name in names:
            mock_client.configure_github_stats(name, github_error(404))
        session = DashboardSession(mock_client, sleep=no_sleep)

        run_search(session, "ivy")

        assert session.failure_stats.total == 3
        assert session.failure_stats.failed == 3

    def test_unreadable_answer_fails_only_that_package(
        self, mock_client: MockDashboardClient, recording_sleep: RecordingSleep
    ) -> None:
        mock_client.configure_stats(create_mock_user_stats("jill", ["a", "b", "c"]))
        mock_client.configure_github_stats("a", EndpointResponse(200, {"stars": "many"}))
        mock_client.configure_github_stats("c", github_ok(stars=6))
        session = DashboardSession(mock_client, sleep=recording_sleep)

        run_search(session, "jill")

        stats = session.user_stats
        assert not stats.is_loading_github_data
        assert stats.get("a").github_fetch_failed
        assert not stats.get("b").github_fetch_failed
        assert stats.get("c").github_stars == 6
        assert session.failure_stats.to_dict() == {"total": 3, "failed": 1}
        assert mock_client.call_count("get_github_stats", "a") == 2
        assert recording_sleep.delays == [1.0, 1.0]


@given(
    outcomes=st.lists(
        st.sampled_from(["ok", "missing", "server", "limited"]),
        min_size=1,
        max_size=9,
    )
)
@settings(max_examples=30, deadline=None)
def test_every_package_settles(outcomes: list[str]) -> None:
    """
    After enrichment, no package is loading, total stars equals the sum of
    the rows, and the failure count equals the number of failed rows.
    """
    answers = {
        "ok": github_ok(stars=3),
        "missing": github_error(404),
        "server": github_error(500),
        "limited": github_rate_limited(1_000),
    }
    names = [f"pkg-{i}" for i in range(len(outcomes))]
    client = MockDashboardClient()
    client.configure_stats(create_mock_user_stats("prop", names))
    for name, outcome in zip(names, outcomes):
        client.configure_github_stats(name, answers[outcome])
    session = DashboardSession(client, sleep=no_sleep)
    states = collect(session)

    run_search(session, "prop")

    stats = session.user_stats
    assert not stats.is_loading_github_data
    assert all(pkg.is_settled for pkg in stats.packages)
    assert stats.total_stars == sum(pkg.github_stars for pkg in stats.packages)
    assert session.failure_stats.failed == len(stats.failed_packages)
    assert session.failure_stats.failed == sum(1 for o in outcomes if o != "ok")
    assert 0 <= session.failure_stats.failed <= session.failure_stats.total
    for state in states:
        assert 0 <= state.failure_stats.failed <= state.failure_stats.total


class TestSearch:
    """Search flow ahead of enrichment."""

    def test_no_packages_found(self, mock_client: MockDashboardClient) -> None:
        session = DashboardSession(mock_client, sleep=no_sleep)

        result = run_search(session, "nobody")

        assert result is None
        assert session.no_packages_found
        assert session.user_stats is None
        assert not session.loading
        assert not mock_client.was_called("get_github_stats")

    def test_search_error_propagates(self, mock_client: MockDashboardClient) -> None:
        mock_client.configure_stats(error=SearchError("User not found", 404))
        session = DashboardSession(mock_client, sleep=no_sleep)

        with pytest.raises(SearchError) as exc_info:
            run_search(session, "ghost")

        assert exc_info.value.response_status == 404
        assert not session.loading

    def test_initial_result_is_loading(self, mock_client: MockDashboardClient, sample_user_stats) -> None:
        mock_client.configure_stats(sample_user_stats)
        session = DashboardSession(mock_client, sleep=no_sleep)

        async def go():
            result = await session.search("alice")
            session.enrichment_task.cancel()
            return result

        result = asyncio.run(go())

        assert result.is_loading_github_data
        assert result.total_stars == 0
        assert all(pkg.is_loading_github_data for pkg in result.packages)
        assert not any(pkg.github_fetch_failed for pkg in result.packages)

    def test_anonymous_viewer_is_limited(self, mock_client: MockDashboardClient) -> None:
        names = [f"pkg-{i}" for i in range(ANONYMOUS_PACKAGE_LIMIT + 5)]
        mock_client.configure_stats(create_mock_user_stats("big", names))
        session = DashboardSession(mock_client, sleep=no_sleep)

        run_search(session, "big")

        assert len(session.user_stats.packages) == ANONYMOUS_PACKAGE_LIMIT
        assert session.failure_stats.total == ANONYMOUS_PACKAGE_LIMIT
        assert mock_client.call_count("get_github_stats") == ANONYMOUS_PACKAGE_LIMIT

    def test_plan_limits(self, mock_client: MockDashboardClient) -> None:
        assert DashboardSession(mock_client).package_limit == ANONYMOUS_PACKAGE_LIMIT
        assert DashboardSession(mock_client, user_id="u1").package_limit == FREE_PACKAGE_LIMIT
        assert DashboardSession(mock_client, user_id="u1", is_paid=True).package_limit is None

    def test_clear_discards_running_enrichment(
        self, mock_client: MockDashboardClient, sample_user_stats
    ) -> None:
        mock_client.configure_stats(sample_user_stats)
        session = DashboardSession(mock_client, sleep=no_sleep)

        async def go():
            await session.search("alice")
            session.clear()
            await session.wait_for_enrichment()

        asyncio.run(go())

        assert session.user_stats is None
        assert session.failure_stats.total == 0
        assert not session.rate_limit_info.is_limited

    def test_newer_search_wins(self, mock_client: MockDashboardClient) -> None:
        session = DashboardSession(mock_client, sleep=no_sleep)

        async def go():
            mock_client.configure_stats(create_mock_user_stats("first", ["old-1", "old-2", "old-3"]))
            await session.search("first")
            stale = session.enrichment_task
            mock_client.configure_stats(create_mock_user_stats("second", ["new-1"]))
            await session.search("second")
            await stale
            await session.wait_for_enrichment()

        asyncio.run(go())

        assert session.user_stats.username == "second"
        assert [p.name for p in session.user_stats.packages] == ["new-1"]
        assert session.failure_stats.total == 1


class TestHistory:
    """Snapshot comparison and saving for signed-in viewers."""

    def test_previous_values_from_history(
        self, mock_client: MockDashboardClient, sample_user_stats
    ) -> None:
        mock_client.configure_stats(sample_user_stats)
        mock_client.configure_history(create_mock_snapshot("alice", [
            {"name": "pkg1", "weeklyDownloads": 80, "githubStars": 4, "openIssues": 1},
        ]))
        session = DashboardSession(mock_client, user_id="auth0|1", sleep=no_sleep)

        run_search(session, "alice")

        stats = session.user_stats
        assert stats.previous_total_downloads == 80
        assert stats.previous_total_stars == 4
        pkg1 = stats.get("pkg1")
        assert pkg1.previous_weekly_downloads == 80
        assert pkg1.diff("weekly_downloads") == 20
        assert stats.get("pkg2").previous_weekly_downloads is None
        assert stats.get("pkg2").diff("weekly_downloads") is None

    def test_saves_final_result_once(
        self, mock_client: MockDashboardClient, sample_user_stats
    ) -> None:
        mock_client.configure_stats(sample_user_stats)
        mock_client.configure_github_stats("pkg2", github_ok(stars=9))
        session = DashboardSession(mock_client, user_id="auth0|1", sleep=no_sleep)

        run_search(session, "alice")

        assert len(mock_client.saved) == 1
        user_id, npm_user, saved = mock_client.saved[0]
        assert (user_id, npm_user) == ("auth0|1", "alice")
        assert saved.total_stars == 9
        assert all(pkg.is_settled for pkg in saved.packages)

    def test_failed_save_does_not_raise(
        self, mock_client: MockDashboardClient, sample_user_stats
    ) -> None:
        mock_client.configure_stats(sample_user_stats)
        mock_client.configure_save_result(False)
        session = DashboardSession(mock_client, user_id="auth0|1", sleep=no_sleep)

        run_search(session, "alice")

        assert mock_client.was_called("save_history")
        assert not session.user_stats.is_loading_github_data

    def test_anonymous_viewer_has_no_history(
        self, mock_client: MockDashboardClient, sample_user_stats
    ) -> None:
        mock_client.configure_stats(sample_user_stats)
        session = DashboardSession(mock_client, sleep=no_sleep)

        run_search(session, "alice")

        assert not mock_client.was_called("get_history")
        assert not mock_client.was_called("save_history")


class TestRetries:
    """Manual retry of failed packages."""

    def test_retry_package_recovers(self, mock_client: MockDashboardClient, sample_user_stats) -> None:
        mock_client.configure_stats(sample_user_stats)
        mock_client.configure_github_stats("pkg3", github_error(404), github_error(404), github_ok(stars=4))
        session = DashboardSession(mock_client, sleep=no_sleep)
        run_search(session, "alice")
        assert session.failure_stats.failed == 1
        states = collect(session)

        recovered = asyncio.run(session.retry_package("pkg3"))

        assert recovered
        assert session.failure_stats.failed == 0
        assert session.user_stats.get("pkg3").github_stars == 4
        assert not session.user_stats.get("pkg3").github_fetch_failed
        assert session.user_stats.total_stars == 4
        assert states[0].retrying == frozenset({"pkg3"})
        assert states[-1].retrying == frozenset()

    def test_retry_package_still_failing(self, mock_client: MockDashboardClient, sample_user_stats) -> None:
        mock_client.configure_stats(sample_user_stats)
        mock_client.configure_github_stats("pkg3", github_error(404))
        session = DashboardSession(mock_client, sleep=no_sleep)
        run_search(session, "alice")

        recovered = asyncio.run(session.retry_package("pkg3"))

        assert not recovered
        assert session.failure_stats.failed == 1
        assert session.user_stats.get("pkg3").github_fetch_failed
        assert session.retrying == set()

    def test_retry_package_rate_limited(self, mock_client: MockDashboardClient, sample_user_stats) -> None:
        mock_client.configure_stats(sample_user_stats)
        mock_client.configure_github_stats(
            "pkg3",
            github_error(404),
            github_error(404),
            github_rate_limited(2_000_000_000_000, "Slow down"),
        )
        session = DashboardSession(mock_client, sleep=no_sleep)
        run_search(session, "alice")

        recovered = asyncio.run(session.retry_package("pkg3"))

        assert not recovered
        assert session.rate_limit_info.is_limited
        assert session.rate_limit_info.message == "Slow down"
        assert session.failure_stats.failed == 1

    def test_retry_package_network_error(self, mock_client: MockDashboardClient, sample_user_stats) -> None:
        mock_client.configure_stats(sample_user_stats)
        mock_client.configure_github_stats(
            "pkg3", github_error(404), github_error(404), httpx.ConnectError("down")
        )
        session = DashboardSession(mock_client, sleep=no_sleep)
        run_search(session, "alice")

        recovered = asyncio.run(session.retry_package("pkg3"))

        assert not recovered
        assert session.retrying == set()

    def test_retry_package_unreadable_answer(
        self, mock_client: MockDashboardClient, sample_user_stats
    ) -> None:
        mock_client.configure_stats(sample_user_stats)
        mock_client.configure_github_stats(
            "pkg3", github_error(404), github_error(404), EndpointResponse(200, {"openIssues": "?"})
        )
        session = DashboardSession(mock_client, sleep=no_sleep)
        run_search(session, "alice")

        recovered = asyncio.run(session.retry_package("pkg3"))

        assert not recovered
        assert session.failure_stats.failed == 1
        assert session.user_stats.get("pkg3").github_fetch_failed
        assert session.retrying == set()

    def test_retry_all_failed_in_batches(
        self, mock_client: MockDashboardClient, recording_sleep: RecordingSleep
    ) -> None:
        names = ["a", "b", "c", "d", "e"]
        mock_client.configure_stats(create_mock_user_stats("zed", names))
        for name in names:
            mock_client.configure_github_stats(name, github_error(404), github_error(404), github_ok(stars=2))
        session = DashboardSession(mock_client, sleep=recording_sleep)
        run_search(session, "zed")
        assert session.failure_stats.failed == 5
        recording_sleep.delays.clear()
        mock_client.max_in_flight = 0

        asyncio.run(session.retry_all_failed())

        assert recording_sleep.delays == [1.0, 1.0]
        assert mock_client.max_in_flight == 2
        assert session.failure_stats.failed == 0
        assert session.user_stats.total_stars == 10
        assert session.user_stats.failed_packages == []

    def test_retry_all_without_result_is_noop(self, mock_client: MockDashboardClient) -> None:
        session = DashboardSession(mock_client, sleep=no_sleep)

        asyncio.run(session.retry_all_failed())

        assert not mock_client.was_called("get_github_stats")


class TestBatched:
    def test_chunks(self) -> None:
        assert batched([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
        assert batched([], 2) == []

    def test_rejects_non_positive_size(self) -> None:
        with pytest.raises(ValueError):
            batched([1], 0)


def test_unsubscribe(mock_client: MockDashboardClient) -> None:
    session = DashboardSession(mock_client)
    states: list[SearchState] = []
    unsubscribe = session.subscribe(states.append)

    session.clear()
    unsubscribe()
    unsubscribe()
    session.clear()

    assert len(states) == 1
