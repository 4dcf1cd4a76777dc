"""JSON list of previously seen listings, newest first."""

from __future__ import annotations

import asyncio
import logging
import os

import config
from monitor.feed import TokenListing
from utils.state_file import StateFileLockError, read_json_locked, write_json_atomic_locked

logger = logging.getLogger(__name__)


class TokenStorage:
    def __init__(self, path: str | None = None, *, max_entries: int | None = None) -> None:
        self.path = os.path.abspath(path or config.TOKEN_STORAGE_FILE)
        self.max_entries = max(1, int(max_entries or config.TOKEN_STORAGE_MAX_ENTRIES))

    def _load_sync(self) -> list[TokenListing]:
        if not os.path.exists(self.path):
            return []
        try:
            payload = read_json_locked(self.path)
        except (OSError, ValueError, StateFileLockError) as exc:
            logger.warning("TOKEN_STORAGE_LOAD_FAILED path=%s err=%s", self.path, exc)
            return []
        if not isinstance(payload, list):
            return []
        return [TokenListing.from_row(row) for row in payload if isinstance(row, dict)]

    def _store_sync(self, listings: list[TokenListing]) -> None:
        rows = [t.to_row() for t in listings[: self.max_entries]]
        try:
            write_json_atomic_locked(self.path, rows)
        except (OSError, StateFileLockError) as exc:
            logger.error("TOKEN_STORAGE_WRITE_FAILED path=%s err=%s", self.path, exc)

    async def load(self) -> list[TokenListing]:
        return await asyncio.to_thread(self._load_sync)

    async def store(self, listings: list[TokenListing]) -> None:
        await asyncio.to_thread(self._store_sync, list(listings))

    async def prepend(self, listing: TokenListing) -> None:
        stored = await self.load()
        rest = [t for t in stored if t.key != listing.key]
        await self.store([listing, *rest])
