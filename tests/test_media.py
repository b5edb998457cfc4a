"""
Tests for the animal gallery, image serving and protocol documents.

Uploads go through the postgres storage provider, so bytes are kept on the
rows and served back from the database.
"""

import io

import pytest
from httpx import AsyncClient
from PIL import Image

pytestmark = pytest.mark.asyncio

PDF_BYTES = b"%PDF-1.4\n1 0 obj<<>>endobj\ntrailer<<>>\n%%EOF\n"


def _png_bytes(size=(40, 30)) -> bytes:
    buf = io.BytesIO()
    Image.effect_noise(size, 64).convert("RGBA").save(buf, "PNG")
    return buf.getvalue()


async def _upload(client: AsyncClient, url: str, account, caption: str = "") -> dict:
    response = await client.post(
        url,
        files={"image": ("buddy.png", _png_bytes(), "image/png")},
        data={"caption": caption},
        headers=account.headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestGallery:
    async def test_upload_reencodes_and_serves(self, client: AsyncClient, volunteer, group, animal):
        url = f"/api/groups/{group.id}/animals/{animal.id}/images"
        image = await _upload(client, url, volunteer, caption=" At the park ")
        assert image["caption"] == "At the park"
        assert (image["width"], image["height"]) == (40, 30)
        assert image["user"]["username"] == "walker"
        assert image["image_url"].startswith("/api/images/")

        # Serving is public and cached
        response = await client.get(image["image_url"])
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["cache-control"] == "public, max-age=31536000"
        assert response.content.startswith(b"\xff\xd8\xff")

        response = await client.get(url, headers=volunteer.headers)
        assert [i["id"] for i in response.json()] == [image["id"]]

    async def test_rejects_invalid_uploads(self, client: AsyncClient, volunteer, group, animal):
        url = f"/api/groups/{group.id}/animals/{animal.id}/images"
        response = await client.post(url, data={"caption": "none"}, headers=volunteer.headers)
        assert response.status_code == 400
        assert response.json() == {"error": "No file uploaded"}

        response = await client.post(
            url, files={"image": ("notes.txt", b"x" * 200, "text/plain")}, headers=volunteer.headers
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid file: file type not allowed")

        response = await client.post(
            url, files={"image": ("fake.jpg", b"\xff\xd8\xff" + b"\x00" * 200, "image/jpeg")}, headers=volunteer.headers
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid file:")

    async def test_outsider_cannot_upload(self, client: AsyncClient, outsider, group, animal):
        response = await client.post(
            f"/api/groups/{group.id}/animals/{animal.id}/images",
            files={"image": ("buddy.png", _png_bytes(), "image/png")},
            headers=outsider.headers,
        )
        assert response.status_code == 403

    async def test_delete_rules(self, client: AsyncClient, make_user, volunteer, group_admin, group, animal):
        url = f"/api/groups/{group.id}/animals/{animal.id}/images"
        peer = await make_user("peer", groups=[(group.id, False)])
        image = await _upload(client, url, volunteer)

        response = await client.delete(f"{url}/{image['id']}", headers=peer.headers)
        assert response.status_code == 403
        assert response.json() == {"error": "You can only delete your own images"}

        response = await client.delete(f"{url}/{image['id']}", headers=group_admin.headers)
        assert response.json() == {"message": "Image deleted successfully"}

        response = await client.get(image["image_url"])
        assert response.status_code == 404

    async def test_profile_picture(self, client: AsyncClient, volunteer, admin, group, animal):
        group_id, animal_id = group.id, animal.id
        url = f"/api/groups/{group_id}/animals/{animal_id}/images"
        first = await _upload(client, url, volunteer)
        second = await _upload(client, url, volunteer)

        response = await client.put(f"{url}/{first['id']}/set-profile", headers=volunteer.headers)
        assert response.status_code == 200
        assert response.json()["image"]["is_profile_picture"] is True

        response = await client.put(
            f"/api/admin/animals/{animal_id}/images/{second['id']}/set-profile", headers=admin.headers
        )
        assert response.json()["message"] == "Profile picture updated successfully"

        response = await client.get(url, headers=volunteer.headers)
        images = response.json()
        assert [i["id"] for i in images if i["is_profile_picture"]] == [second["id"]]
        assert images[0]["id"] == second["id"]

        response = await client.get(f"/api/groups/{group_id}/animals/{animal_id}", headers=volunteer.headers)
        assert response.json()["image_url"] == second["image_url"]

        response = await client.delete(f"{url}/{second['id']}", headers=volunteer.headers)
        assert response.status_code == 400
        assert response.json()["error"].startswith("Cannot delete profile picture")

    async def test_deleted_images(self, client: AsyncClient, volunteer, group_admin, admin, group, animal):
        group_id = group.id
        url = f"/api/groups/{group_id}/animals/{animal.id}/images"
        image = await _upload(client, url, volunteer)
        await client.delete(f"{url}/{image['id']}", headers=volunteer.headers)

        response = await client.get(f"/api/groups/{group_id}/deleted-images", headers=group_admin.headers)
        data = response.json()["data"]
        assert [i["id"] for i in data] == [image["id"]]
        assert data[0]["animal"]["name"] == "Buddy"
        assert data[0]["deleted_at"] is not None

        response = await client.get(f"/api/admin/groups/{group_id}/deleted-images", headers=admin.headers)
        assert len(response.json()["data"]) == 1

        response = await client.get(f"/api/groups/{group_id}/deleted-images", headers=volunteer.headers)
        assert response.status_code == 403

    async def test_unlinked_upload(self, client: AsyncClient, volunteer):
        response = await client.post(
            "/api/animals/upload-image",
            files={"image": ("banner.png", _png_bytes(), "image/png")},
            headers=volunteer.headers,
        )
        assert response.status_code == 200
        url = response.json()["url"]
        assert (await client.get(url)).status_code == 200

    async def test_unknown_image(self, client: AsyncClient):
        response = await client.get("/api/images/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404
        assert response.json() == {"error": "Image not found"}


class TestProtocolDocuments:
    async def test_upload_serve_and_remove(self, client: AsyncClient, group_admin, volunteer, outsider, group,
                                           animal):
        url = f"/api/groups/{group.id}/animals/{animal.id}/protocol-document"
        response = await client.post(
            url,
            files={"document": ("walk plan (v2).pdf", PDF_BYTES, "application/pdf")},
            headers=group_admin.headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "walk plan -v2-.pdf"
        assert data["type"] == "application/pdf"
        assert data["size"] == len(PDF_BYTES)
        assert data["uploaded_by"] == group_admin.id

        response = await client.get(data["url"], headers=volunteer.headers)
        assert response.status_code == 200
        assert response.content == PDF_BYTES
        assert response.headers["content-disposition"] == 'inline; filename="walk plan -v2-.pdf"'

        response = await client.get(data["url"], headers=outsider.headers)
        assert response.status_code == 403
        assert response.json() == {
            "error": "Access denied: You must be a member of this group to view this document"
        }

        response = await client.delete(url, headers=group_admin.headers)
        assert response.json() == {"message": "Protocol document removed successfully"}
        response = await client.get(data["url"], headers=volunteer.headers)
        assert response.status_code == 404

    async def test_deleted_animal_document_not_served(self, client: AsyncClient, group_admin, volunteer, group,
                                                      animal):
        animal_url = f"/api/groups/{group.id}/animals/{animal.id}"
        response = await client.post(
            f"{animal_url}/protocol-document",
            files={"document": ("plan.pdf", PDF_BYTES, "application/pdf")},
            headers=group_admin.headers,
        )
        document = response.json()["url"]

        response = await client.delete(animal_url, headers=group_admin.headers)
        assert response.status_code == 200
        response = await client.get(document, headers=volunteer.headers)
        assert response.status_code == 404
        assert response.json() == {"error": "Document not found"}

    async def test_rejects_mislabelled_document(self, client: AsyncClient, group_admin, group, animal):
        response = await client.post(
            f"/api/groups/{group.id}/animals/{animal.id}/protocol-document",
            files={"document": ("plan.pdf", b"not a pdf", "application/pdf")},
            headers=group_admin.headers,
        )
        assert response.status_code == 400
        assert "valid PDF" in response.json()["error"]

    async def test_volunteer_cannot_upload(self, client: AsyncClient, volunteer, group, animal):
        response = await client.post(
            f"/api/groups/{group.id}/animals/{animal.id}/protocol-document",
            files={"document": ("plan.pdf", PDF_BYTES, "application/pdf")},
            headers=volunteer.headers,
        )
        assert response.status_code == 403
