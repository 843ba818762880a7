"""
HTTP endpoints for the npm stats dashboard.

Exposes the package listing, GitHub enrichment and history endpoints via a
FastAPI application.
"""

import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from npmstats.clients.github import GithubClient
from npmstats.clients.npm import NpmClient
from npmstats.config import Settings
from npmstats.exceptions import NpmStatsError, RateLimitedError, ValidationError
from npmstats.history import HistoryStore, Unavailable, UpstashRestStore
from npmstats.logging import configure_logging, get_logger
from npmstats.rate_limit import RateLimitState
from npmstats.services.github_stats import GithubStatsService
from npmstats.services.stats import StatsService
from npmstats.transport import AsyncHTTPTransport
from npmstats.types.history import HistorySnapshot

logger = get_logger()


@dataclass
class Services:
    """Everything the endpoints need, built once per process."""

    stats: StatsService
    github_stats: GithubStatsService
    history: HistoryStore
    http_client: httpx.AsyncClient | None = None


def build_services(
    settings: Settings, http_client: httpx.AsyncClient | None = None
) -> Services:
    """
    Wire clients and services together.

    Args:
        settings: Service configuration
        http_client: Shared client for all outbound calls (created if omitted)
    """
    http_client = http_client or httpx.AsyncClient(follow_redirects=True)
    transport = AsyncHTTPTransport(client=http_client)

    npm = NpmClient(transport, settings.npm_registry_url, settings.npm_downloads_url)
    github = GithubClient(
        transport,
        RateLimitState(),
        api_url=settings.github_api_url,
        token=settings.github_token,
    )

    store = None
    if settings.history_configured:
        store = UpstashRestStore(transport, settings.kv_rest_url, settings.kv_rest_token)

    return Services(
        stats=StatsService(npm),
        github_stats=GithubStatsService(npm, github),
        history=HistoryStore(store, namespace=settings.history_namespace),
        http_client=http_client,
    )


class HistorySaveRequest(BaseModel):
    githubUserId: str | None = None
    npmUsername: str | None = None
    data: dict[str, Any] | None = None


def create_app(services: Services | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Prebuilt services; built from the environment at startup if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if services is None:
            load_dotenv()
            owned = build_services(Settings.from_env())
            app.state.services = owned
        else:
            app.state.services = services
        yield
        if owned is not None and owned.http_client is not None:
            await owned.http_client.aclose()

    app = FastAPI(
        title="npm stats dashboard API",
        description="npm package listing with GitHub enrichment and history.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(NpmStatsError)
    async def handle_npmstats_error(request: Request, exc: NpmStatsError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "details": exc.code},
        )

    @app.exception_handler(httpx.RequestError)
    async def handle_network_error(request: Request, exc: httpx.RequestError) -> JSONResponse:
        logger.error("Upstream request failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Upstream request failed", "details": str(exc)},
        )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.get("/api/stats")
    async def get_stats(request: Request, username: str | None = Query(None)):
        """List an npm maintainer's packages with weekly downloads."""
        if not username:
            raise ValidationError("MISSING_USERNAME", "Username is required")
        stats = await request.app.state.services.stats.get_user_stats(username)
        return stats.to_dict()

    @app.get("/api/github-stats")
    async def get_github_stats(request: Request, package: str | None = Query(None)):
        """Star and open-issue counts for one package's GitHub repository."""
        if not package:
            raise ValidationError("MISSING_PACKAGE", "Package name is required")

        service: GithubStatsService = request.app.state.services.github_stats
        try:
            result = await service.lookup(package)
        except RateLimitedError as exc:
            return JSONResponse(
                status_code=429,
                content={
                    "error": "GitHub API rate limit exceeded",
                    "details": exc.message,
                    "packageName": package,
                    "success": False,
                    "rateLimited": True,
                    "resetTime": int(exc.reset_time * 1000),
                },
            )
        except NpmStatsError as exc:
            logger.error("GitHub stats failed for %s: %s", package, exc)
            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "error": "Failed to fetch GitHub stats",
                    "details": exc.message,
                    "packageName": package,
                    "success": False,
                    "rateLimited": False,
                },
            )
        return result.to_dict()

    @app.get("/api/user-stats-history")
    async def get_history(
        request: Request,
        githubUserId: str | None = Query(None),
        npmUsername: str | None = Query(None),
    ):
        """Most recent snapshot for a (GitHub user, npm user) pair."""
        if not githubUserId or not npmUsername:
            raise ValidationError(
                "MISSING_PARAMETERS", "githubUserId and npmUsername are required"
            )

        outcome = await request.app.state.services.history.load(githubUserId, npmUsername)
        if isinstance(outcome, Unavailable):
            return {"data": None, "lastCheckedDate": None, "redisAvailable": False}

        return {
            "data": outcome.snapshot.to_dict() if outcome.snapshot else None,
            "lastCheckedDate": outcome.last_checked_date,
            "redisAvailable": True,
        }

    @app.post("/api/user-stats-history")
    async def save_history(request: Request, body: HistorySaveRequest):
        """Store today's snapshot for a (GitHub user, npm user) pair."""
        if not body.githubUserId or not body.npmUsername or body.data is None:
            raise ValidationError(
                "MISSING_PARAMETERS", "githubUserId, npmUsername and data are required"
            )

        history: HistoryStore = request.app.state.services.history
        snapshot = HistorySnapshot.from_dict(body.data)
        outcome = await history.save(body.githubUserId, body.npmUsername, snapshot)

        if isinstance(outcome, Unavailable):
            return {"success": False, "date": history.today(), "redisAvailable": False}

        return {"success": outcome.success, "date": outcome.date, "redisAvailable": True}

    return app


def main() -> None:
    """Run the API with uvicorn."""
    configure_logging()
    uvicorn.run(
        create_app(),
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
