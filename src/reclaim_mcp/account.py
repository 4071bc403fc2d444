"""Process-wide cache of the account's timezone and task defaults."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from reclaim_mcp.models import AccountInfo

logger = logging.getLogger(__name__)


class AccountInfoCache:
    """Fetches account info at most once at a time and keeps the first success.

    Callers arriving while a fetch is in flight await that same fetch. A failed
    fetch resolves to ``None`` for everyone waiting on it and is not kept, so a
    later call tries again. A successful result is never refreshed.
    """

    def __init__(self, fetch: Callable[[], Awaitable[AccountInfo]]):
        self._fetch = fetch
        self._value: AccountInfo | None = None
        self._inflight: asyncio.Task | None = None

    @property
    def value(self) -> AccountInfo | None:
        return self._value

    async def get(self) -> AccountInfo | None:
        if self._value is not None:
            return self._value
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load())
        # shield: one caller being cancelled must not cancel the shared fetch
        return await asyncio.shield(self._inflight)

    async def _load(self) -> AccountInfo | None:
        try:
            info = await self._fetch()
        except Exception:
            logger.warning(
                "Could not fetch Reclaim account info; falling back to other time zone sources.",
                exc_info=True,
            )
            return None
        finally:
            self._inflight = None
        self._value = info
        if info.time_zone:
            logger.info("Account time zone: %s", info.time_zone)
        return info
