#!/usr/bin/env python3
"""
Basic npmstats usage example.

Searches a maintainer's packages through a running backend, prints the
table as GitHub data arrives, then retries anything that failed.

Start the backend first:
    npmstats-server
Then run:
    python examples/basic_usage.py [npm-username]
"""

import asyncio
import logging
import sys

from npmstats import (
    DashboardClient,
    DashboardSession,
    SearchError,
    TableFilters,
    configure_logging,
    format_time_until_reset,
    sort_packages,
)
from npmstats.types.packages import SearchState


def print_progress(state: SearchState) -> None:
    if state.user_stats is None:
        return
    settled = sum(1 for pkg in state.user_stats.packages if pkg.is_settled)
    print(
        f"   {settled}/{len(state.user_stats.packages)} enriched, "
        f"{state.failure_stats.failed} failed, "
        f"{state.user_stats.total_stars} stars so far"
    )


async def main(username: str) -> None:
    print(f"=== npm stats for {username} ===\n")

    async with DashboardClient.from_env() as client:
        session = DashboardSession(client)
        session.subscribe(print_progress)

        try:
            stats = await session.search(username)
        except SearchError as e:
            print(f"Search failed: {e.message}")
            return

        if stats is None:
            print("No packages found.")
            return

        print(f"1. Found {len(stats.packages)} packages, "
              f"{stats.total_downloads:,} weekly downloads\n")

        print("2. Loading GitHub data...")
        await session.wait_for_enrichment()

        if session.rate_limit_info.is_limited:
            reset = format_time_until_reset(session.rate_limit_info.reset_time)
            print(f"\n   {session.rate_limit_info.message} (resets in {reset})")

        if session.failure_stats.failed:
            print(f"\n3. Retrying {session.failure_stats.failed} failed packages...")
            await session.retry_all_failed()

        print("\n4. Top packages by stars:\n")
        filters = TableFilters(stars="1")
        for pkg in sort_packages(filters.apply(session.user_stats.packages), key="github_stars")[:10]:
            marker = " (failed)" if pkg.github_fetch_failed else ""
            print(f"   {pkg.name:<30} {pkg.github_stars:>8} stars "
                  f"{pkg.weekly_downloads:>12,} downloads{marker}")


if __name__ == "__main__":
    configure_logging(level=logging.WARNING)
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "sindresorhus"))
