"""
Read-through cache of the site_settings table.

Emails and page chrome need the site name on most requests, so the table
is snapshotted for a few minutes at a time. A single coroutine refreshes
an expired snapshot; concurrent readers keep using the previous one.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncContextManager, Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import SiteSetting
from .models.content import DEFAULT_SITE_NAME

logger = logging.getLogger(__name__)

SETTINGS_CACHE_TTL = 300  # 5 minutes

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


@asynccontextmanager
async def _default_session():
    from .db import get_database

    database = await get_database()
    async with database.get_session() as session:
        yield session


class SiteSettingsCache:
    """TTL snapshot of every site setting, refreshed under an asyncio.Lock."""

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        ttl: float = SETTINGS_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory or _default_session
        self.ttl = ttl
        self.clock = clock
        self._snapshot: Optional[Dict[str, str]] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    @property
    def is_fresh(self) -> bool:
        return self._snapshot is not None and self.clock() < self._expires_at

    async def refresh(self):
        """Reload the snapshot from the database. Errors keep the old snapshot."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(select(SiteSetting))
                snapshot = {row.key: row.value for row in result.scalars().all()}
        except Exception as e:
            logger.error(f"Failed to refresh site settings cache: {e}")
            return

        self._snapshot = snapshot
        self._expires_at = self.clock() + self.ttl
        logger.debug(f"Site settings cache refreshed ({len(snapshot)} settings)")

    async def get_all(self) -> Dict[str, str]:
        if not self.is_fresh and not self._lock.locked():
            async with self._lock:
                if not self.is_fresh:
                    await self.refresh()
        return dict(self._snapshot or {})

    async def get(self, key: str, default: str = "") -> str:
        return (await self.get_all()).get(key) or default

    async def site_name(self) -> str:
        return await self.get("site_name", DEFAULT_SITE_NAME)

    def invalidate(self):
        """Force the next read to hit the database."""
        self._expires_at = 0.0


# Global cache instance
settings_cache = SiteSettingsCache()


def get_settings_cache() -> SiteSettingsCache:
    return settings_cache
