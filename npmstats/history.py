"""
Historical snapshots of search results.

The history store is best effort: every operation returns either a result or
an explicit ``Unavailable`` value, never raises to its caller. "No snapshot
yet" (``HistoryRecord`` with ``snapshot=None``) is kept distinct from "store
unreachable" (``Unavailable``).

Keys::

    <namespace>:github-user:<user>:npm-user:<npm user>:last-checked-date -> "YYYY-MM-DD"
    <namespace>:github-user:<user>:npm-user:<npm user>:date:<YYYY-MM-DD> -> snapshot
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from npmstats.exceptions import StoreUnavailableError
from npmstats.logging import get_logger
from npmstats.transport import AsyncHTTPTransport
from npmstats.types.history import HistorySnapshot

logger = get_logger("history")


class KeyValueStore(Protocol):
    """Minimal async key-value interface used by ``HistoryStore``.

    Implementations raise ``StoreUnavailableError`` when the store cannot be
    reached or rejects the operation.
    """

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...


class UpstashRestStore:
    """Key-value store speaking the Upstash/Vercel KV REST protocol."""

    def __init__(self, transport: AsyncHTTPTransport, url: str, token: str) -> None:
        self.transport = transport
        self.url = url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {token}"}

    async def get(self, key: str) -> Any | None:
        result = await self._call("GET", f"/get/{quote(key, safe='')}")
        if result is None:
            return None
        if isinstance(result, str):
            try:
                return json.loads(result)
            except ValueError:
                return result
        return result

    async def set(self, key: str, value: Any) -> None:
        await self._call(
            "POST", f"/set/{quote(key, safe='')}", content=json.dumps(value)
        )

    async def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self.transport.request(
                method, f"{self.url}{path}", headers=self.headers, **kwargs
            )
        except httpx.RequestError as e:
            raise StoreUnavailableError("STORE_UNREACHABLE", str(e)) from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.status_code >= 400 or "error" in data:
            raise StoreUnavailableError(
                "STORE_ERROR",
                data.get("error") or f"HTTP {response.status_code}",
            )
        return data.get("result")


@dataclass
class Unavailable:
    """The store is not configured or could not be reached."""

    reason: str


@dataclass
class HistoryRecord:
    """Latest snapshot for a user pair, if any."""

    snapshot: HistorySnapshot | None
    last_checked_date: str | None


@dataclass
class SaveResult:
    """Outcome of a save. ``success`` is False if only one of the two writes landed."""

    success: bool
    date: str


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class HistoryStore:
    """Reads and writes dated snapshots for (GitHub user, npm user) pairs."""

    def __init__(
        self,
        store: KeyValueStore | None,
        namespace: str = "npm-stats",
        today: Callable[[], date] = _utc_today,
    ) -> None:
        """
        Args:
            store: Backend to use, or None when history is not configured
            namespace: Prefix for every key
            today: Returns the date snapshots are filed under
        """
        self.store = store
        self.namespace = namespace
        self._today = today

    @property
    def available(self) -> bool:
        return self.store is not None

    def today(self) -> str:
        """Date (YYYY-MM-DD) a snapshot saved now is filed under."""
        return self._today().isoformat()

    def _prefix(self, github_user: str, npm_user: str) -> str:
        return f"{self.namespace}:github-user:{github_user}:npm-user:{npm_user}"

    def last_checked_key(self, github_user: str, npm_user: str) -> str:
        return f"{self._prefix(github_user, npm_user)}:last-checked-date"

    def snapshot_key(self, github_user: str, npm_user: str, day: str) -> str:
        return f"{self._prefix(github_user, npm_user)}:date:{day}"

    async def load(self, github_user: str, npm_user: str) -> HistoryRecord | Unavailable:
        """Fetch the most recent snapshot for the pair."""
        if self.store is None:
            return Unavailable("history store not configured")

        try:
            last_date = await self.store.get(self.last_checked_key(github_user, npm_user))
            if not last_date:
                return HistoryRecord(snapshot=None, last_checked_date=None)

            data = await self.store.get(
                self.snapshot_key(github_user, npm_user, str(last_date))
            )
        except StoreUnavailableError as e:
            logger.warning("History read failed for %s/%s: %s", github_user, npm_user, e)
            return Unavailable(e.message)

        snapshot = HistorySnapshot.from_dict(data) if isinstance(data, dict) else None
        return HistoryRecord(snapshot=snapshot, last_checked_date=str(last_date))

    async def save(
        self, github_user: str, npm_user: str, snapshot: HistorySnapshot
    ) -> SaveResult | Unavailable:
        """
        Store ``snapshot`` under today's date, then move the last-checked pointer.

        The two writes are independent; a failure of the second one leaves the
        snapshot written and reports ``success=False``.
        """
        if self.store is None:
            return Unavailable("history store not configured")

        day = self.today()

        try:
            await self.store.set(
                self.snapshot_key(github_user, npm_user, day), snapshot.to_dict()
            )
        except StoreUnavailableError as e:
            logger.warning("History write failed for %s/%s: %s", github_user, npm_user, e)
            return Unavailable(e.message)

        try:
            await self.store.set(self.last_checked_key(github_user, npm_user), day)
        except StoreUnavailableError as e:
            logger.warning(
                "Snapshot saved but last-checked date not updated for %s/%s: %s",
                github_user, npm_user, e,
            )
            return SaveResult(success=False, date=day)

        logger.info("Saved snapshot for %s/%s on %s", github_user, npm_user, day)
        return SaveResult(success=True, date=day)
