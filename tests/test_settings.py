"""
Tests for site settings and the admin maintenance endpoints.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from volunteer_media.config import config
from volunteer_media.models import AnimalImage, Group, SiteSetting, User
from volunteer_media.models.base import utcnow

pytestmark = pytest.mark.asyncio


class TestSiteSettings:
    async def test_public_read_and_admin_update(self, client: AsyncClient, admin, settings_cache):
        response = await client.put(
            "/api/admin/settings/site_name", json={"value": "  Paws Portal "}, headers=admin.headers
        )
        assert response.status_code == 200
        assert response.json() == {"key": "site_name", "value": "Paws Portal"}

        response = await client.get("/api/settings")
        assert response.json()["site_name"] == "Paws Portal"
        assert await settings_cache.site_name() == "Paws Portal"

    async def test_update_invalidates_cache(self, client: AsyncClient, admin, settings_cache):
        await client.put("/api/admin/settings/site_name", json={"value": "First"}, headers=admin.headers)
        assert await settings_cache.site_name() == "First"

        await client.put("/api/admin/settings/site_name", json={"value": "Second"}, headers=admin.headers)
        assert await settings_cache.site_name() == "Second"

    async def test_validation(self, client: AsyncClient, admin):
        response = await client.put("/api/admin/settings/site_name", json={"value": "  "}, headers=admin.headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Site name is required"}

        response = await client.put(
            "/api/admin/settings/site_short_name", json={"value": "x" * 51}, headers=admin.headers
        )
        assert response.json() == {"error": "Site short name must be 50 characters or less"}

        response = await client.put(
            "/api/admin/settings/site_description", json={"value": ""}, headers=admin.headers
        )
        assert response.status_code == 200

    async def test_requires_site_admin(self, client: AsyncClient, group_admin):
        response = await client.put(
            "/api/admin/settings/site_name", json={"value": "Mine"}, headers=group_admin.headers
        )
        assert response.status_code == 403


class TestSeedEndpoint:
    async def test_refused_outside_development(self, client: AsyncClient, admin, monkeypatch):
        monkeypatch.setattr(config, "is_development", False)
        response = await client.post("/api/admin/seed-database", headers=admin.headers)
        assert response.status_code == 403
        assert response.json() == {"error": "Database seeding is only available in development environments"}

    async def test_reseeds_in_development(self, client: AsyncClient, session, admin):
        response = await client.post("/api/admin/seed-database", headers=admin.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["demo_accounts"]["admin"] == {"username": "admin", "password": "demo1234"}

        usernames = set((await session.execute(select(User.username))).scalars().all())
        assert "siteadmin" not in usernames
        assert {"admin", "merry", "terry"} <= usernames


class TestCleanupEndpoints:
    async def test_orphaned_images(self, client: AsyncClient, session, admin, group):
        old = utcnow() - timedelta(days=30)
        session.add(AnimalImage(user_id=admin.id, image_url="/api/images/orphan", created_at=old))
        session.add(AnimalImage(user_id=admin.id, image_url="/api/images/banner", created_at=old))
        session.add(AnimalImage(user_id=admin.id, image_url="/api/images/fresh"))
        group.image_url = "/api/images/banner"
        await session.commit()

        response = await client.post("/api/admin/maintenance/cleanup-orphaned-images", headers=admin.headers)
        assert response.status_code == 200
        assert response.json()["deleted"] == 1

        remaining = set((await session.execute(select(AnimalImage.image_url))).scalars().all())
        assert remaining == {"/api/images/banner", "/api/images/fresh"}

    async def test_soft_deleted_purge(self, client: AsyncClient, session, admin):
        session.add(Group(name="Old", deleted_at=utcnow() - timedelta(days=200)))
        session.add(Group(name="Recent", deleted_at=utcnow() - timedelta(days=5)))
        await session.commit()

        # Windows shorter than the minimum are raised to it
        response = await client.post(
            "/api/admin/maintenance/cleanup-soft-deleted",
            params={"table": "groups", "days": 1},
            headers=admin.headers,
        )
        assert response.json()["deleted"] == 1
        names = (await session.execute(select(Group.name))).scalars().all()
        assert "Recent" in names and "Old" not in names

    async def test_unknown_table(self, client: AsyncClient, admin):
        response = await client.post(
            "/api/admin/maintenance/cleanup-soft-deleted", params={"table": "site_settings"}, headers=admin.headers
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid table name: site_settings"}

    async def test_settings_survive_cleanup(self, client: AsyncClient, session, admin):
        session.add(SiteSetting(key="hero_image_url", value="/api/images/hero"))
        session.add(AnimalImage(user_id=admin.id, image_url="/api/images/hero",
                                created_at=utcnow() - timedelta(days=30)))
        await session.commit()
        await client.post("/api/admin/maintenance/cleanup-orphaned-images", headers=admin.headers)
        assert await session.scalar(select(func.count(AnimalImage.id))) == 1
