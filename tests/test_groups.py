"""
Tests for group endpoints: listing, administration, settings and membership management.
"""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio

BOT_ID = "0123456789abcdef0123456789"


class TestListGroups:
    async def test_admin_sees_all_groups(self, client: AsyncClient, admin, group, other_group):
        response = await client.get("/api/groups", headers=admin.headers)
        assert [g["name"] for g in response.json()] == ["Cat Crew", "ModSquad"]

    async def test_volunteer_sees_own_groups(self, client: AsyncClient, volunteer, other_group):
        response = await client.get("/api/groups", headers=volunteer.headers)
        assert [g["name"] for g in response.json()] == ["ModSquad"]

    async def test_get_group_requires_membership(self, client: AsyncClient, volunteer, other_group):
        response = await client.get(f"/api/groups/{other_group.id}", headers=volunteer.headers)
        assert response.status_code == 403

    async def test_membership(self, client: AsyncClient, admin, group_admin, outsider, group):
        group_id = group.id
        response = await client.get(f"/api/groups/{group_id}/membership", headers=group_admin.headers)
        assert response.json()["is_group_admin"] is True

        response = await client.get(f"/api/groups/{group_id}/membership", headers=admin.headers)
        data = response.json()
        assert data["is_member"] is False
        assert data["is_site_admin"] is True

        response = await client.get(f"/api/groups/{group_id}/membership", headers=outsider.headers)
        assert response.status_code == 403
        assert response.json() == {"error": "Not a member of this group"}


class TestAdminGroups:
    async def test_create_group_defaults_hero_image(self, client: AsyncClient, admin):
        response = await client.post("/api/admin/groups", json={"name": "Barn Buddies"}, headers=admin.headers)
        assert response.status_code == 201
        assert response.json()["hero_image_url"] == "/default-hero.svg"

    async def test_duplicate_name(self, client: AsyncClient, admin, group):
        response = await client.post("/api/admin/groups", json={"name": "ModSquad"}, headers=admin.headers)
        assert response.status_code == 409

    async def test_bot_id_must_be_hex(self, client: AsyncClient, admin):
        response = await client.post(
            "/api/admin/groups", json={"name": "Barn Buddies", "groupme_bot_id": "not-a-bot"}, headers=admin.headers
        )
        assert response.status_code == 400
        assert "26-character hexadecimal" in response.json()["error"]

    async def test_update_and_delete(self, client: AsyncClient, admin, group):
        group_id = group.id
        response = await client.put(
            f"/api/admin/groups/{group_id}",
            json={"name": "ModSquad", "description": "Updated", "groupme_bot_id": BOT_ID, "groupme_enabled": True},
            headers=admin.headers,
        )
        assert response.status_code == 200
        assert response.json()["groupme_bot_id"] == BOT_ID

        response = await client.delete(f"/api/admin/groups/{group_id}", headers=admin.headers)
        assert response.status_code == 200
        response = await client.get(f"/api/groups/{group_id}", headers=admin.headers)
        assert response.status_code == 404

    async def test_group_admin_updates_settings(self, client: AsyncClient, group_admin, volunteer, group):
        group_id = group.id
        payload = {"name": "ModSquad", "description": "Walks daily", "has_protocols": True}
        response = await client.put(f"/api/groups/{group_id}/settings", json=payload, headers=group_admin.headers)
        assert response.status_code == 200
        assert response.json()["has_protocols"] is True

        response = await client.put(f"/api/groups/{group_id}/settings", json=payload, headers=volunteer.headers)
        assert response.status_code == 403


class TestMembers:
    async def test_contact_details_respect_privacy(self, client: AsyncClient, make_user, group, volunteer, group_admin):
        await make_user("shy", groups=[(group.id, False)], hide_email=True, phone_number="555-0111")
        url = f"/api/groups/{group.id}/members"

        response = await client.get(url, headers=volunteer.headers)
        members = {m["username"]: m for m in response.json()}
        assert members["shy"]["email"] == ""
        assert members["shy"]["phone_number"] == "555-0111"
        assert members["walker"]["email"] == "walker@shelter.org"

        response = await client.get(url, headers=group_admin.headers)
        members = {m["username"]: m for m in response.json()}
        assert members["shy"]["email"] == "shy@shelter.org"

    async def test_add_and_remove_member(self, client: AsyncClient, make_user, group_admin, group):
        newcomer = await make_user("newcomer")
        url = f"/api/groups/{group.id}/members/{newcomer.id}"

        assert (await client.post(url, headers=group_admin.headers)).status_code == 200
        response = await client.post(url, headers=group_admin.headers)
        assert response.status_code == 400
        assert response.json() == {"error": "User is already a member of this group"}

        assert (await client.delete(url, headers=group_admin.headers)).status_code == 200
        response = await client.delete(url, headers=group_admin.headers)
        assert response.json() == {"error": "User is not a member of this group"}

    async def test_promote_and_demote(self, client: AsyncClient, group_admin, volunteer, group):
        base = f"/api/groups/{group.id}"
        response = await client.post(f"{base}/members/{volunteer.id}/promote", headers=group_admin.headers)
        assert response.json() == {"message": "User promoted to group admin"}
        response = await client.post(f"{base}/admins/{volunteer.id}", headers=group_admin.headers)
        assert response.json() == {"error": "User is already a group admin"}
        response = await client.delete(f"{base}/admins/{volunteer.id}", headers=group_admin.headers)
        assert response.json() == {"message": "User demoted from group admin"}
        response = await client.post(f"{base}/members/{volunteer.id}/demote", headers=group_admin.headers)
        assert response.json() == {"error": "User is not a group admin"}

    async def test_volunteer_cannot_promote(self, client: AsyncClient, volunteer, group_admin, group):
        response = await client.post(f"/api/groups/{group.id}/admins/{volunteer.id}", headers=volunteer.headers)
        assert response.status_code == 403
        assert response.json() == {"error": "You must be a site admin or group admin to promote users"}

    async def test_unknown_user(self, client: AsyncClient, group_admin, group):
        response = await client.post(f"/api/groups/{group.id}/members/9999", headers=group_admin.headers)
        assert response.status_code == 404
