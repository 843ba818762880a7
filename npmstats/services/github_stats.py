"""GitHub enrichment for a single npm package."""

from npmstats.clients.github import GithubClient
from npmstats.clients.npm import NpmClient
from npmstats.exceptions import NotFoundError, ValidationError
from npmstats.logging import get_logger
from npmstats.rate_limit import RateLimitState
from npmstats.repository_url import extract_github_repository
from npmstats.types.github import GithubStats

logger = get_logger()


class GithubStatsService:
    """Resolve a package's GitHub repository and read its star and issue counts."""

    def __init__(self, npm: NpmClient, github: GithubClient) -> None:
        self.npm = npm
        self.github = github

    @property
    def rate_limit(self) -> RateLimitState:
        return self.github.rate_limit

    async def lookup(self, package_name: str) -> GithubStats:
        """
        Look up GitHub metrics for ``package_name``.

        A package that is unknown to the registry, has no ``repository`` field,
        or whose repository is not on GitHub yields zero counts. So does a
        repository GitHub answers 404 for. None of these are failures.

        Raises:
            ValidationError: If ``package_name`` is empty
            RateLimitedError: If the GitHub quota is exhausted
            UpstreamError: On any other registry or GitHub failure
        """
        if not package_name:
            raise ValidationError("MISSING_PACKAGE", "Package name is required")

        metadata = await self.npm.get_package(package_name)
        ref = extract_github_repository(metadata) if metadata else None

        if ref is None:
            logger.debug("No GitHub repository for %s", package_name)
            return GithubStats(package_name, stars=0, open_issues=0, repo_url=None)

        try:
            repo = await self.github.get_repository(ref)
        except NotFoundError:
            logger.info("Repository %s for %s not found", ref.url, package_name)
            return GithubStats(package_name, stars=0, open_issues=0, repo_url=ref.url)

        return GithubStats(
            package_name,
            stars=int(repo.get("stargazers_count") or 0),
            open_issues=int(repo.get("open_issues_count") or 0),
            repo_url=repo.get("html_url") or ref.url,
        )
