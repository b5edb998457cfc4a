"""
Storage backends for uploaded images and protocol documents.

The postgres provider keeps the bytes on the owning database row and only
hands out identifiers; the azure provider writes blobs into a private
container. Either way the public URL is an /api/images or /api/documents
path, so files are always proxied through the API.
"""

import logging
import os
import uuid
from typing import Dict, Optional, Protocol, Tuple

from azure.core.exceptions import ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import ContentSettings
from azure.storage.blob.aio import BlobServiceClient

from ..config import config

logger = logging.getLogger(__name__)

IMAGE_PREFIX = "images/animals"
DOCUMENT_PREFIX = "documents/protocols"

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_IMAGE_EXTENSIONS = {
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
_DOCUMENT_EXTENSIONS = {
    PDF_MIME: ".pdf",
    DOCX_MIME: ".docx",
}


class StorageNotFoundError(Exception):
    """Raised when a file is not present in the storage backend."""


def image_extension(mime_type: str) -> str:
    return _IMAGE_EXTENSIONS.get(mime_type, ".jpg")


def document_extension(mime_type: str, filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext:
        return ext
    return _DOCUMENT_EXTENSIONS.get(mime_type, ".bin")


def image_url(identifier: str) -> str:
    return f"/api/images/{identifier}"


def document_url(identifier: str) -> str:
    return f"/api/documents/{identifier}"


class StorageProvider(Protocol):
    """Operations the API needs from a storage backend."""

    name: str

    async def upload_image(self, data: bytes, mime_type: str, metadata: Dict[str, str]) -> Tuple[str, str, str]:
        ...

    async def upload_document(self, data: bytes, mime_type: str, filename: str) -> Tuple[str, str, str]:
        ...

    async def get_image(self, blob_name: str) -> Tuple[bytes, str]:
        ...

    async def get_document(self, blob_name: str) -> Tuple[bytes, str]:
        ...

    async def delete_image(self, blob_name: str) -> None:
        ...

    async def delete_document(self, blob_name: str) -> None:
        ...

    def get_image_url(self, identifier: str) -> str:
        ...

    def get_document_url(self, identifier: str) -> str:
        ...


class PostgresStorageProvider:
    """
    Row-backed storage.

    Uploads only allocate an identifier; the caller writes the bytes onto
    the AnimalImage or Animal row. Reads go through the row as well, so
    the getters here never find anything.
    """

    name = "postgres"

    async def upload_image(self, data: bytes, mime_type: str, metadata: Dict[str, str]) -> Tuple[str, str, str]:
        identifier = str(uuid.uuid4())
        return image_url(identifier), identifier, image_extension(mime_type)

    async def upload_document(self, data: bytes, mime_type: str, filename: str) -> Tuple[str, str, str]:
        identifier = str(uuid.uuid4())
        return document_url(identifier), identifier, document_extension(mime_type, filename)

    async def get_image(self, blob_name: str) -> Tuple[bytes, str]:
        raise StorageNotFoundError(blob_name)

    async def get_document(self, blob_name: str) -> Tuple[bytes, str]:
        raise StorageNotFoundError(blob_name)

    async def delete_image(self, blob_name: str) -> None:
        return None

    async def delete_document(self, blob_name: str) -> None:
        return None

    def get_image_url(self, identifier: str) -> str:
        return image_url(identifier)

    def get_document_url(self, identifier: str) -> str:
        return document_url(identifier)


class AzureBlobStorageProvider:
    """Azure Blob Storage backend using the async SDK."""

    name = "azure"

    def __init__(self, account_name: str, account_key: str, container_name: str, endpoint: str = ""):
        self.account_name = account_name
        self.container_name = container_name
        self.service_url = endpoint or f"https://{account_name}.blob.core.windows.net/"
        self._client = BlobServiceClient(
            account_url=self.service_url,
            credential={"account_name": account_name, "account_key": account_key},
        )
        self._container = self._client.get_container_client(container_name)

    async def ensure_container(self):
        """Create the private container on first use."""
        try:
            await self._container.create_container()
            logger.info(f"Created blob container {self.container_name}")
        except ResourceExistsError:
            pass

    async def _upload(self, path: str, data: bytes, content_settings: ContentSettings, metadata: Dict[str, str]):
        blob = self._container.get_blob_client(path)
        await blob.upload_blob(data, overwrite=True, content_settings=content_settings, metadata=metadata)

    async def _download(self, path: str) -> Tuple[bytes, str]:
        blob = self._container.get_blob_client(path)
        try:
            stream = await blob.download_blob()
        except ResourceNotFoundError:
            raise StorageNotFoundError(path)
        data = await stream.readall()
        return data, stream.properties.content_settings.content_type or ""

    async def _delete(self, path: str):
        blob = self._container.get_blob_client(path)
        try:
            await blob.delete_blob()
        except ResourceNotFoundError:
            raise StorageNotFoundError(path)

    async def upload_image(self, data: bytes, mime_type: str, metadata: Dict[str, str]) -> Tuple[str, str, str]:
        identifier = str(uuid.uuid4())
        ext = image_extension(mime_type)
        await self._upload(
            f"{IMAGE_PREFIX}/{identifier}{ext}",
            data,
            ContentSettings(content_type=mime_type),
            {k: str(v) for k, v in (metadata or {}).items()},
        )
        return image_url(identifier), identifier, ext

    async def upload_document(self, data: bytes, mime_type: str, filename: str) -> Tuple[str, str, str]:
        identifier = str(uuid.uuid4())
        ext = document_extension(mime_type, filename)
        await self._upload(
            f"{DOCUMENT_PREFIX}/{identifier}{ext}",
            data,
            ContentSettings(content_type=mime_type, content_disposition=f'inline; filename="{filename}"'),
            {"filename": filename},
        )
        return document_url(identifier), identifier, ext

    async def get_image(self, blob_name: str) -> Tuple[bytes, str]:
        return await self._download(f"{IMAGE_PREFIX}/{blob_name}")

    async def get_document(self, blob_name: str) -> Tuple[bytes, str]:
        return await self._download(f"{DOCUMENT_PREFIX}/{blob_name}")

    async def delete_image(self, blob_name: str) -> None:
        await self._delete(f"{IMAGE_PREFIX}/{blob_name}")

    async def delete_document(self, blob_name: str) -> None:
        await self._delete(f"{DOCUMENT_PREFIX}/{blob_name}")

    def get_image_url(self, identifier: str) -> str:
        return image_url(identifier)

    def get_document_url(self, identifier: str) -> str:
        return document_url(identifier)

    async def close(self):
        await self._client.close()


def new_provider(settings) -> StorageProvider:
    """
    Build the storage provider selected by STORAGE_PROVIDER.

    Raises:
        ValueError: On an unknown provider or incomplete Azure settings
    """
    provider = (settings.storage_provider or "postgres").lower()
    if provider == "postgres":
        return PostgresStorageProvider()

    if provider == "azure":
        if not settings.azure_account_name or not settings.azure_container_name:
            raise ValueError(
                "Azure storage configuration incomplete: account name and container name required"
            )
        if settings.azure_use_managed_identity:
            raise ValueError("managed identity authentication is not supported; configure an account key")
        if not settings.azure_account_key:
            raise ValueError(
                "Azure storage configuration incomplete: account key required"
            )
        return AzureBlobStorageProvider(
            settings.azure_account_name,
            settings.azure_account_key,
            settings.azure_container_name,
            settings.azure_endpoint,
        )

    raise ValueError(f"invalid storage provider: {provider}")


_provider: Optional[StorageProvider] = None


async def get_storage_provider() -> StorageProvider:
    """FastAPI dependency returning the process-wide storage provider."""
    global _provider
    if _provider is None:
        _provider = new_provider(config)
        if isinstance(_provider, AzureBlobStorageProvider):
            await _provider.ensure_container()
    return _provider
