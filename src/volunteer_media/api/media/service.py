"""
Shared upload handling for images and protocol documents.

Images always end up as AnimalImage rows: gallery photos carry an
animal_id, everything else (group banners, protocol and comment images,
the site hero) is an unlinked upload. The row holds the bytes when the
postgres provider is in use or when the configured provider fails.
Protocol documents live on the animal row under the same rule.
"""

import logging
import uuid
from typing import Optional

from fastapi import HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_media.models import Animal, AnimalImage, User
from volunteer_media.storage import (
    StorageProvider,
    UploadValidationError,
    process_image,
    sanitize_filename,
    validate_document_upload,
    validate_image_upload,
)
from volunteer_media.storage.providers import document_extension, document_url, image_extension, image_url
from volunteer_media.storage.uploads import MAX_IMAGE_SIZE

logger = logging.getLogger(__name__)

JPEG_MIME = "image/jpeg"


async def read_upload(upload: Optional[UploadFile], missing_message: str = "No file uploaded") -> bytes:
    if upload is None or not upload.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=missing_message)
    try:
        return await upload.read()
    finally:
        await upload.close()


async def store_image(
    db: AsyncSession,
    provider: StorageProvider,
    user: User,
    upload: Optional[UploadFile],
    animal_id: Optional[int] = None,
    caption: str = "",
    max_size: int = MAX_IMAGE_SIZE,
) -> AnimalImage:
    """
    Validate, normalise and store an uploaded image.

    The image is re-encoded as JPEG before it is stored. The returned row
    has been added to the session but not committed.

    Raises:
        HTTPException: 400 when the upload is missing or invalid
    """
    data = await read_upload(upload)
    try:
        validate_image_upload(upload.filename, data, max_size)
        processed, width, height = process_image(data)
    except UploadValidationError as e:
        logger.warning(f"Rejected image upload {upload.filename!r} from user {user.id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid file: {e}")

    metadata = {"user_id": str(user.id)}
    if animal_id is not None:
        metadata["animal_id"] = str(animal_id)

    provider_name = provider.name
    try:
        url, identifier, ext = await provider.upload_image(processed, JPEG_MIME, metadata)
    except Exception as e:
        logger.error(f"Storage provider {provider.name} failed, keeping image in the database: {e}")
        provider_name = "postgres"
        identifier = str(uuid.uuid4())
        url, ext = image_url(identifier), image_extension(JPEG_MIME)

    image = AnimalImage(
        animal_id=animal_id,
        user_id=user.id,
        image_url=url,
        image_data=processed if provider_name == "postgres" else None,
        mime_type=JPEG_MIME,
        caption=caption,
        width=width,
        height=height,
        file_size=len(processed),
        storage_provider=provider_name,
        blob_identifier=identifier,
        blob_extension=ext,
    )
    db.add(image)
    logger.info(f"Stored image {identifier} ({width}x{height}, {len(processed)} bytes) via {provider_name}")
    return image


async def delete_stored_image(provider: StorageProvider, image: AnimalImage):
    """Best-effort removal of an image's blob. Failures are only logged."""
    if image.storage_provider != "azure":
        return
    try:
        await provider.delete_image(image.blob_name)
    except Exception as e:
        logger.warning(f"Failed to delete blob {image.blob_name}: {e}")


async def store_protocol_document(
    provider: StorageProvider, user: User, animal: Animal, upload: Optional[UploadFile]
) -> Animal:
    """
    Validate a PDF/DOCX upload and attach it to ``animal``.

    A previous azure-hosted document is removed best-effort. The animal
    is modified in place; the caller commits.
    """
    data = await read_upload(upload, missing_message="No document uploaded")
    try:
        mime_type = validate_document_upload(upload.filename, data)
    except UploadValidationError as e:
        logger.warning(f"Rejected document upload {upload.filename!r} from user {user.id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid document: {e}")
    filename = sanitize_filename(upload.filename)

    provider_name = provider.name
    try:
        url, identifier, ext = await provider.upload_document(data, mime_type, filename)
    except Exception as e:
        logger.error(f"Storage provider {provider.name} failed, keeping document in the database: {e}")
        provider_name = "postgres"
        identifier = str(uuid.uuid4())
        url, ext = document_url(identifier), document_extension(mime_type, filename)

    await delete_protocol_document(provider, animal)
    animal.protocol_document_url = url
    animal.protocol_document_name = filename
    animal.protocol_document_data = data if provider_name == "postgres" else None
    animal.protocol_document_type = mime_type
    animal.protocol_document_size = len(data)
    animal.protocol_document_user_id = user.id
    animal.protocol_document_provider = provider_name
    animal.protocol_document_blob_identifier = identifier
    animal.protocol_document_blob_extension = ext

    logger.info(f"Stored protocol document {filename!r} ({len(data)} bytes) for animal {animal.id} via {provider_name}")
    return animal


async def delete_protocol_document(provider: StorageProvider, animal: Animal):
    """Best-effort removal of an animal's azure-hosted protocol document."""
    if animal.protocol_document_provider != "azure" or not animal.protocol_document_blob_identifier:
        return
    blob_name = f"{animal.protocol_document_blob_identifier}{animal.protocol_document_blob_extension}"
    try:
        await provider.delete_document(blob_name)
    except Exception as e:
        logger.warning(f"Failed to delete document blob {blob_name}: {e}")
