"""
Tests for CSV import and export of animals and comments.
"""

import csv
import io

import pytest
from httpx import AsyncClient

from volunteer_media.models import AnimalComment, CommentTag

pytestmark = pytest.mark.asyncio


def _rows(text: str):
    return list(csv.reader(io.StringIO(text)))


def _csv_upload(content: str, filename: str = "animals.csv"):
    return {"file": (filename, content.encode("utf-8"), "text/csv")}


class TestImportAnimals:
    async def test_import_with_warnings(self, client: AsyncClient, admin, group):
        """Bad rows are skipped and reported by line number."""
        content = (
            "group_id,name,species,age,status,estimated_birth_date\n"
            f"{group.id},Luna,Dog,2,available,\n"
            f"{group.id},Ziggy,Dog,,foster,2020-02-30\n"
            "abc,Bad Group,Dog,,,\n"
            "999,Lost,Dog,,,\n"
            f"{group.id},,Dog,,,\n"
            f"{group.id},Odd,Dog,,adopted,\n"
            ",,,,,\n"
        )
        response = await client.post("/api/admin/animals/import-csv", files=_csv_upload(content), headers=admin.headers)
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert data["warnings"] == [
            "Line 3: Invalid estimated_birth_date '2020-02-30', expected YYYY-MM-DD",
            "Line 4: Invalid group_id 'abc'",
            "Line 5: Group 999 not found",
            "Line 6: Name is required",
            "Line 7: Invalid status 'adopted'",
        ]

        response = await client.get(
            f"/api/groups/{group.id}/animals", params={"status": "all"}, headers=admin.headers
        )
        assert [a["name"] for a in response.json()] == ["Luna", "Ziggy"]

    async def test_birth_date_sets_age(self, client: AsyncClient, admin, group):
        content = f"group_id,name,estimated_birth_date\n{group.id},Pup,2019-01-01\n"
        await client.post("/api/admin/animals/import-csv", files=_csv_upload(content), headers=admin.headers)
        response = await client.get(f"/api/groups/{group.id}/animals", headers=admin.headers)
        (pup,) = response.json()
        assert pup["age"] >= 7

    async def test_nothing_valid(self, client: AsyncClient, admin):
        content = "group_id,name\n999,Ghost\n"
        response = await client.post("/api/admin/animals/import-csv", files=_csv_upload(content), headers=admin.headers)
        assert response.status_code == 400
        assert response.json() == {"error": "No valid animals to import", "errors": ["Line 2: Group 999 not found"]}

    async def test_missing_required_column(self, client: AsyncClient, admin):
        response = await client.post(
            "/api/admin/animals/import-csv", files=_csv_upload("name,species\nLuna,Dog\n"), headers=admin.headers
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required column: group_id"}

    async def test_rejects_non_csv(self, client: AsyncClient, admin):
        response = await client.post(
            "/api/admin/animals/import-csv", files=_csv_upload("x", filename="animals.txt"), headers=admin.headers
        )
        assert response.status_code == 400
        assert response.json() == {"error": "File must be a CSV"}

    async def test_requires_file(self, client: AsyncClient, admin):
        response = await client.post("/api/admin/animals/import-csv", headers=admin.headers)
        assert response.status_code == 400
        assert response.json() == {"error": "No file uploaded"}

    async def test_site_admin_only(self, client: AsyncClient, group_admin):
        response = await client.post(
            "/api/admin/animals/import-csv", files=_csv_upload("group_id,name\n"), headers=group_admin.headers
        )
        assert response.status_code == 403


class TestExport:
    async def test_export_animals(self, client: AsyncClient, admin, group, animal):
        response = await client.post("/api/admin/animals/export-csv", headers=admin.headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == "attachment; filename=animals.csv"
        rows = _rows(response.text)
        assert rows[0][:3] == ["id", "group_id", "name"]
        assert rows[1][2] == "Buddy"

    async def test_exported_csv_imports_back(self, client: AsyncClient, admin, group, animal):
        group_id = group.id
        exported = await client.post("/api/admin/animals/export-csv", headers=admin.headers)

        response = await client.post(
            "/api/admin/animals/import-csv", files=_csv_upload(exported.text), headers=admin.headers
        )
        assert response.status_code == 200
        assert response.json()["count"] == 1

        response = await client.get(
            f"/api/groups/{group_id}/animals", params={"status": "all"}, headers=admin.headers
        )
        animals = response.json()
        assert len(animals) == 2
        original, imported = sorted(animals, key=lambda a: a["id"])
        for field in ("name", "species", "breed", "status", "age"):
            assert imported[field] == original[field]

    async def test_export_comments_with_tag_filter(self, client: AsyncClient, session, admin, volunteer, animal):
        walk = CommentTag(name="walk")
        session.add(walk)
        await session.flush()
        session.add(AnimalComment(animal_id=animal.id, user_id=volunteer.id, content="Pulled a lot", tags=[walk]))
        session.add(AnimalComment(animal_id=animal.id, user_id=volunteer.id, content="Untagged"))
        await session.commit()

        response = await client.get(
            "/api/admin/animals/export-comments-csv", params={"tags": "walk"}, headers=admin.headers
        )
        assert response.status_code == 200
        rows = _rows(response.text)
        assert rows[0][0] == "comment_id"
        assert len(rows) == 2
        row = dict(zip(rows[0], rows[1]))
        assert row["comment_content"] == "Pulled a lot"
        assert row["comment_author"] == "walker"
        assert row["comment_tags"] == "walk"
        assert row["group_name"] == "ModSquad"
        assert row["created_at"].endswith("Z")
