"""
Tests for group updates, announcements and the activity feed.

Notification fan-out is observed through the recording email and GroupMe
services installed by the client fixture.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from volunteer_media.api.feed.routes import rating_matches
from volunteer_media.models import AnimalComment, CommentTag, Update
from volunteer_media.models.base import utcnow

pytestmark = pytest.mark.asyncio

BOT_ID = "0123456789abcdef0123456789"


async def _enable_groupme(session, group):
    group.groupme_bot_id = BOT_ID
    group.groupme_enabled = True
    await session.commit()


class TestUpdates:
    async def test_member_posts_update(self, client: AsyncClient, session, volunteer, group, groupme):
        await _enable_groupme(session, group)
        url = f"/api/groups/{group.id}/updates"
        response = await client.post(
            url, json={"title": "Walk tonight", "content": "Meet at 6", "send_groupme": True}, headers=volunteer.headers
        )
        assert response.status_code == 201
        assert response.json()["user"]["username"] == "walker"
        assert groupme.posts == [(BOT_ID, "Walk tonight")]

        response = await client.get(url, headers=volunteer.headers)
        assert [u["title"] for u in response.json()] == ["Walk tonight"]

    async def test_groupme_skipped_when_disabled(self, client: AsyncClient, volunteer, group, groupme):
        response = await client.post(
            f"/api/groups/{group.id}/updates",
            json={"title": "Walk tonight", "content": "Meet at 6", "send_groupme": True},
            headers=volunteer.headers,
        )
        assert response.status_code == 201
        assert groupme.posts == []

    async def test_group_announcement_reaches_opted_in_members(
        self, client: AsyncClient, make_user, group, group_admin, volunteer, email_service
    ):
        await make_user("subscriber", groups=[(group.id, False)], email_notifications_enabled=True)
        await make_user("elsewhere", email_notifications_enabled=True)
        response = await client.post(
            f"/api/groups/{group.id}/announcements",
            json={"title": "Schedule", "content": "New walking schedule posted", "send_email": True},
            headers=group_admin.headers,
        )
        assert response.status_code == 201
        assert response.json()["send_email"] is True
        assert email_service.sent == [("announcement", "subscriber@shelter.org", "Schedule")]

    async def test_group_announcement_requires_group_admin(self, client: AsyncClient, volunteer, group):
        response = await client.post(
            f"/api/groups/{group.id}/announcements",
            json={"title": "Schedule", "content": "New walking schedule posted"},
            headers=volunteer.headers,
        )
        assert response.status_code == 403


class TestSiteAnnouncements:
    async def test_create_fans_out(self, client: AsyncClient, session, make_user, admin, group, other_group,
                                   email_service, groupme):
        await _enable_groupme(session, group)
        await make_user("fan", email_notifications_enabled=True)
        response = await client.post(
            "/api/admin/announcements",
            json={"title": "Open house", "content": "Shelter open house on Saturday",
                  "send_email": True, "send_groupme": True},
            headers=admin.headers,
        )
        assert response.status_code == 201
        assert email_service.sent == [("announcement", "fan@shelter.org", "Open house")]
        assert groupme.posts == [(BOT_ID, "Open house")]

    async def test_email_failures_do_not_fail_request(self, client: AsyncClient, make_user, admin, email_service):
        async def broken(to, title, content):
            raise RuntimeError("smtp down")

        email_service.send_announcement_email = broken
        await make_user("fan", email_notifications_enabled=True)
        response = await client.post(
            "/api/admin/announcements",
            json={"title": "Open house", "content": "Shelter open house on Saturday", "send_email": True},
            headers=admin.headers,
        )
        assert response.status_code == 201

    async def test_list_and_delete(self, client: AsyncClient, admin, volunteer):
        created = await client.post(
            "/api/admin/announcements",
            json={"title": "Hello", "content": "Welcome to the new portal"},
            headers=admin.headers,
        )
        announcement_id = created.json()["id"]

        response = await client.get("/api/announcements", headers=volunteer.headers)
        assert [a["title"] for a in response.json()] == ["Hello"]

        response = await client.delete(f"/api/admin/announcements/{announcement_id}", headers=admin.headers)
        assert response.status_code == 200
        response = await client.get("/api/announcements", headers=volunteer.headers)
        assert response.json() == []
        response = await client.delete(f"/api/admin/announcements/{announcement_id}", headers=admin.headers)
        assert response.status_code == 404

    async def test_volunteer_cannot_announce(self, client: AsyncClient, volunteer):
        response = await client.post(
            "/api/admin/announcements",
            json={"title": "Hello", "content": "Welcome to the new portal"},
            headers=volunteer.headers,
        )
        assert response.status_code == 403


class TestActivityFeed:
    async def _seed(self, session, group, animal, author_id):
        now = utcnow()
        behavior = CommentTag(group_id=group.id, name="behavior", is_system=True)
        session.add(behavior)
        session.add(Update(
            group_id=group.id, user_id=author_id, title="Note", content="Team update",
            created_at=now - timedelta(hours=3),
        ))
        session.add(AnimalComment(
            animal_id=animal.id, user_id=author_id, content="Rough walk", tags=[behavior],
            session_metadata={"behavior_notes": "pulled", "session_rating": 1},
            created_at=now - timedelta(hours=2),
        ))
        session.add(AnimalComment(
            animal_id=animal.id, user_id=author_id, content="Vet visit",
            session_metadata={"medical_notes": "limping", "session_rating": 4},
            created_at=now - timedelta(hours=1),
        ))
        await session.commit()

    async def test_merged_feed_and_summary(self, client: AsyncClient, session, volunteer, group, animal):
        await self._seed(session, group, animal, volunteer.id)
        response = await client.get(f"/api/groups/{group.id}/activity-feed", headers=volunteer.headers)
        assert response.status_code == 200
        data = response.json()
        assert [item["type"] for item in data["items"]] == ["comment", "comment", "announcement"]
        assert data["items"][0]["animal"]["name"] == "Buddy"
        assert data["total"] == 3
        assert data["summary"] == {
            "behavior_concerns_count": 1,
            "medical_concerns_count": 1,
            "poor_sessions_count": 1,
        }
        # Absent fields are omitted rather than sent as null
        assert "animal" not in data["items"][2]

    async def test_filters(self, client: AsyncClient, session, volunteer, group, animal):
        await self._seed(session, group, animal, volunteer.id)
        url = f"/api/groups/{group.id}/activity-feed"

        response = await client.get(url, params={"type": "announcements"}, headers=volunteer.headers)
        assert [item["content"] for item in response.json()["items"]] == ["Team update"]

        response = await client.get(url, params={"rating": "poor"}, headers=volunteer.headers)
        assert [item["content"] for item in response.json()["items"]] == ["Rough walk", "Team update"]

        response = await client.get(url, params={"type": "comments", "tags": "behavior"}, headers=volunteer.headers)
        assert [item["content"] for item in response.json()["items"]] == ["Rough walk"]

        since = (utcnow() - timedelta(minutes=90)).isoformat()
        response = await client.get(url, params={"from": since}, headers=volunteer.headers)
        assert [item["content"] for item in response.json()["items"]] == ["Vet visit"]

    async def test_pagination(self, client: AsyncClient, session, volunteer, group, animal):
        await self._seed(session, group, animal, volunteer.id)
        response = await client.get(
            f"/api/groups/{group.id}/activity-feed", params={"limit": 2}, headers=volunteer.headers
        )
        data = response.json()
        assert len(data["items"]) == 2
        assert data["hasMore"] is True
        # Summary covers every matching item, not only the page
        assert data["summary"]["medical_concerns_count"] == 1


class TestRatingFilter:
    async def test_unrated_never_matches(self):
        assert rating_matches(0, "poor") is False
        assert rating_matches(0, "3") is False

    async def test_poor_and_exact(self):
        assert rating_matches(2, "poor") is True
        assert rating_matches(3, "poor") is False
        assert rating_matches(5, "5") is True
        assert rating_matches(4, "5") is False
