"""
Tests for group-scoped animal tags and comment tags.
"""

import pytest
from httpx import AsyncClient

from volunteer_media.models import CommentTag

pytestmark = pytest.mark.asyncio


class TestAnimalTags:
    async def test_crud(self, client: AsyncClient, group_admin, volunteer, group):
        url = f"/api/groups/{group.id}/animal-tags"
        payload = {"name": " reactive ", "category": "behavior", "color": "#ef4444"}
        response = await client.post(url, json=payload, headers=group_admin.headers)
        assert response.status_code == 201
        tag = response.json()
        assert tag["name"] == "reactive"

        response = await client.post(url, json={**payload, "name": "REACTIVE"}, headers=group_admin.headers)
        assert response.status_code == 409
        assert response.json() == {"error": "A tag with this name already exists in this group"}

        response = await client.put(
            f"{url}/{tag['id']}",
            json={"name": "dual walker", "category": "walker_status", "color": "#3b82f6"},
            headers=group_admin.headers,
        )
        assert response.json()["category"] == "walker_status"

        response = await client.get(url, headers=volunteer.headers)
        assert [t["name"] for t in response.json()] == ["dual walker"]

        response = await client.delete(f"{url}/{tag['id']}", headers=group_admin.headers)
        assert response.status_code == 200
        response = await client.delete(f"{url}/{tag['id']}", headers=group_admin.headers)
        assert response.status_code == 404

    async def test_invalid_category(self, client: AsyncClient, group_admin, group):
        response = await client.post(
            f"/api/groups/{group.id}/animal-tags",
            json={"name": "x", "category": "colour", "color": "#000"},
            headers=group_admin.headers,
        )
        assert response.status_code == 400
        assert response.json() == {"error": "category must be one of: behavior, walker_status"}

    async def test_volunteer_cannot_create(self, client: AsyncClient, volunteer, group):
        response = await client.post(
            f"/api/groups/{group.id}/animal-tags",
            json={"name": "x", "category": "behavior", "color": "#000"},
            headers=volunteer.headers,
        )
        assert response.status_code == 403
        assert response.json() == {"error": "Only group admins can create tags"}


class TestCommentTags:
    async def test_system_tags_listed_first_and_protected(self, client: AsyncClient, session, group_admin, group):
        group_id = group.id
        system = CommentTag(group_id=group_id, name="behavior", is_system=True)
        session.add(system)
        await session.commit()
        system_id = system.id

        url = f"/api/groups/{group_id}/comment-tags"
        response = await client.post(url, json={"name": "agility", "color": " "}, headers=group_admin.headers)
        assert response.status_code == 201
        assert response.json()["color"] == "#6b7280"

        response = await client.get(url, headers=group_admin.headers)
        assert [t["name"] for t in response.json()] == ["behavior", "agility"]

        response = await client.delete(f"{url}/{system_id}", headers=group_admin.headers)
        assert response.status_code == 403
        assert response.json() == {"error": "Cannot delete system tags"}

    async def test_same_name_allowed_in_other_group(self, client: AsyncClient, admin, group, other_group):
        for group_id in (group.id, other_group.id):
            response = await client.post(
                f"/api/groups/{group_id}/comment-tags", json={"name": "walk"}, headers=admin.headers
            )
            assert response.status_code == 201
