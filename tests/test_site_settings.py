"""
Tests for the site settings read-through cache.
"""

from contextlib import asynccontextmanager

import pytest
from sqlalchemy import select

from volunteer_media.models import SiteSetting
from volunteer_media.models.content import DEFAULT_SITE_NAME
from volunteer_media.site_settings import SiteSettingsCache

pytestmark = pytest.mark.asyncio


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(session_maker, clock):
    @asynccontextmanager
    async def factory():
        async with session_maker() as s:
            yield s

    return SiteSettingsCache(session_factory=factory, ttl=300, clock=clock)


class TestSiteSettingsCache:
    async def test_default_site_name(self, cache):
        assert await cache.site_name() == DEFAULT_SITE_NAME
        assert cache.is_fresh

    async def test_snapshot_expires(self, cache, clock, session):
        session.add(SiteSetting(key="site_name", value="Paws Portal"))
        await session.commit()
        assert await cache.site_name() == "Paws Portal"

        setting = await session.scalar(select(SiteSetting).where(SiteSetting.key == "site_name"))
        setting.value = "Renamed"
        await session.commit()

        clock.now += 299
        assert await cache.site_name() == "Paws Portal"
        clock.now += 2
        assert await cache.site_name() == "Renamed"

    async def test_invalidate(self, cache, session):
        assert await cache.get("site_short_name", "fallback") == "fallback"
        session.add(SiteSetting(key="site_short_name", value="Paws"))
        await session.commit()
        cache.invalidate()
        assert await cache.get("site_short_name") == "Paws"

    async def test_refresh_failure_keeps_snapshot(self, cache, session):
        session.add(SiteSetting(key="site_name", value="Paws Portal"))
        await session.commit()
        await cache.get_all()

        @asynccontextmanager
        async def broken():
            raise RuntimeError("database unavailable")
            yield

        cache.session_factory = broken
        cache.invalidate()
        assert await cache.site_name() == "Paws Portal"
