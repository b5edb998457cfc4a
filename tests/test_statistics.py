"""
Tests for the admin statistics and dashboard endpoints.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from volunteer_media.models import Animal, AnimalComment, CommentTag
from volunteer_media.models.base import utcnow

pytestmark = pytest.mark.asyncio


async def _comment(session, animal_id, user_id, content="note", tags=(), days_ago=0, deleted=False):
    created = utcnow() - timedelta(days=days_ago)
    comment = AnimalComment(
        animal_id=animal_id, user_id=user_id, content=content, tags=list(tags), created_at=created,
        deleted_at=utcnow() if deleted else None,
    )
    session.add(comment)
    await session.commit()
    return comment


class TestGroupAndUserStatistics:
    async def test_group_statistics(self, client: AsyncClient, session, admin, volunteer, group, other_group, animal):
        await _comment(session, animal.id, volunteer.id)
        response = await client.get("/api/admin/statistics/groups", headers=admin.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        stats = {g["group_name"]: g for g in data["data"]}
        assert stats["ModSquad"]["user_count"] == 1
        assert stats["ModSquad"]["animal_count"] == 1
        assert stats["ModSquad"]["last_activity"] is not None
        assert stats["Cat Crew"]["last_activity"] is None

    async def test_user_statistics(self, client: AsyncClient, session, admin, volunteer, group, animal):
        await _comment(session, animal.id, volunteer.id)
        await _comment(session, animal.id, volunteer.id)
        await _comment(session, animal.id, volunteer.id, deleted=True)

        response = await client.get("/api/admin/statistics/users", params={"limit": 1, "offset": 1},
                                    headers=admin.headers)
        data = response.json()
        assert data["total"] == 2
        assert data["hasMore"] is False
        assert data["data"] == [{
            "user_id": volunteer.id,
            "username": "walker",
            "comment_count": 2,
            "last_active": data["data"][0]["last_active"],
            "animals_interacted_with": 1,
        }]

    async def test_requires_site_admin(self, client: AsyncClient, group_admin):
        response = await client.get("/api/admin/statistics/groups", headers=group_admin.headers)
        assert response.status_code == 403


class TestCommentTagStatistics:
    async def test_usage_and_most_tagged(self, client: AsyncClient, session, volunteer, group, other_group, animal):
        behavior = CommentTag(group_id=group.id, name="behavior", is_system=True)
        elsewhere = CommentTag(group_id=other_group.id, name="litter")
        rex = Animal(group_id=group.id, name="Rex", species="Dog")
        session.add_all([behavior, elsewhere, rex])
        await session.commit()

        await _comment(session, animal.id, volunteer.id, tags=[behavior], days_ago=2)
        await _comment(session, animal.id, volunteer.id, tags=[behavior], days_ago=1)
        await _comment(session, rex.id, volunteer.id, tags=[behavior])
        await _comment(session, rex.id, volunteer.id, tags=[behavior], deleted=True)

        response = await client.get(
            "/api/statistics/comment-tags", params={"group_id": str(group.id)}, headers=volunteer.headers
        )
        data = response.json()
        assert data["total"] == 1
        stat = data["data"][0]
        assert stat["tag_name"] == "behavior"
        assert stat["usage_count"] == 3
        assert stat["most_tagged_animal_name"] == "Buddy"
        assert stat["last_used"] is not None

    async def test_unused_tag(self, client: AsyncClient, session, volunteer, group):
        session.add(CommentTag(group_id=group.id, name="medical", is_system=True))
        await session.commit()
        response = await client.get("/api/statistics/comment-tags", headers=volunteer.headers)
        stat = response.json()["data"][0]
        assert stat["usage_count"] == 0
        assert stat["most_tagged_animal_id"] is None

    async def test_invalid_group_id(self, client: AsyncClient, volunteer):
        response = await client.get("/api/statistics/comment-tags", params={"group_id": "abc"},
                                    headers=volunteer.headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid group_id parameter"}


class TestDashboard:
    async def test_dashboard_stats(self, client: AsyncClient, session, admin, volunteer, group, animal):
        medical = CommentTag(group_id=group.id, name="medical", is_system=True)
        session.add(medical)
        await session.commit()
        await _comment(session, animal.id, volunteer.id, tags=[medical])
        await _comment(session, animal.id, volunteer.id, days_ago=3)

        response = await client.get("/api/admin/dashboard/stats", headers=admin.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total_users"] == 2
        assert data["total_animals"] == 1
        assert data["total_comments"] == 2
        assert len(data["recent_users"]) == 2
        assert data["most_active_groups"][0]["group_name"] == "ModSquad"
        assert data["most_active_groups"][0]["comment_count"] == 2

        alert = data["animals_needing_attention"][0]
        assert alert["animal_name"] == "Buddy"
        assert alert["alert_tags"] == ["medical"]

        health = data["system_health"]
        assert health["comments_last_24h"] == 1
        assert health["active_users_last_24h"] == 1
        assert health["new_users_last_7_days"] == 2
        assert health["average_comments_per_day"] == round(2 / 30, 2)
