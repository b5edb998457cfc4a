import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from volunteer_media.api.animals.routes import get_animal_or_404
from volunteer_media.api.deps import (
    get_current_user,
    group_member,
    is_group_admin,
    is_group_member,
    require_admin,
    require_group_access,
    require_group_admin,
)
from volunteer_media.api.groups.models import UploadResponse
from volunteer_media.api.media.models import (
    AnimalImageResponse,
    DeletedImagesResponse,
    ProfilePictureResponse,
    ProtocolDocumentResponse,
)
from volunteer_media.api.media.service import (
    delete_protocol_document,
    delete_stored_image,
    store_image,
    store_protocol_document,
)
from volunteer_media.db import get_db_session
from volunteer_media.models import Animal, AnimalImage, Group, User
from volunteer_media.models.base import utcnow
from volunteer_media.storage import StorageNotFoundError, StorageProvider, get_storage_provider
from volunteer_media.storage.providers import document_url, image_url

logger = logging.getLogger(__name__)

router = APIRouter()

IMAGE_CACHE_CONTROL = "public, max-age=31536000"
DOCUMENT_CACHE_CONTROL = "private, max-age=3600"


# Gallery


@router.get("/groups/{group_id}/animals/{animal_id}/images", response_model=List[AnimalImageResponse])
async def list_animal_images(
    animal_id: int,
    group: Group = Depends(group_member),
    db: AsyncSession = Depends(get_db_session),
):
    await get_animal_or_404(db, group.id, animal_id)
    result = await db.execute(
        select(AnimalImage)
        .where(AnimalImage.animal_id == animal_id, AnimalImage.deleted_at.is_(None))
        .order_by(AnimalImage.is_profile_picture.desc(), AnimalImage.created_at.desc())
    )
    return result.scalars().all()


@router.post(
    "/groups/{group_id}/animals/{animal_id}/images",
    response_model=AnimalImageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_animal_image(
    animal_id: int,
    image: Optional[UploadFile] = File(None),
    caption: str = Form(""),
    group: Group = Depends(group_member),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    await get_animal_or_404(db, group.id, animal_id)
    stored = await store_image(db, storage, current_user, image, animal_id=animal_id, caption=caption.strip())
    await db.commit()
    logger.info(f"Image {stored.id} added to animal {animal_id} by user {current_user.id}")
    return await _load_image(db, stored.id)


async def _load_image(db: AsyncSession, image_id: int) -> AnimalImage:
    return await db.scalar(
        select(AnimalImage).where(AnimalImage.id == image_id).execution_options(populate_existing=True)
    )


async def _get_gallery_image(db: AsyncSession, animal_id: int, image_id: int) -> AnimalImage:
    image = await db.scalar(
        select(AnimalImage).where(
            AnimalImage.id == image_id, AnimalImage.animal_id == animal_id, AnimalImage.deleted_at.is_(None)
        )
    )
    if image is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    return image


@router.delete("/groups/{group_id}/animals/{animal_id}/images/{image_id}")
async def delete_animal_image(
    animal_id: int,
    image_id: int,
    group: Group = Depends(group_member),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    await get_animal_or_404(db, group.id, animal_id)
    image = await _get_gallery_image(db, animal_id, image_id)

    if image.user_id != current_user.id and not await is_group_admin(db, current_user, group.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only delete your own images")
    if image.is_profile_picture:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete profile picture. Please set a different profile picture first.",
        )

    image.deleted_at = utcnow()
    await db.commit()
    await delete_stored_image(storage, image)

    logger.info(f"Image {image_id} of animal {animal_id} deleted by user {current_user.id}")
    return {"message": "Image deleted successfully"}


async def _set_profile_picture(db: AsyncSession, animal: Animal, image: AnimalImage) -> dict:
    """Make ``image`` the animal's only profile picture, in one transaction."""
    await db.execute(
        update(AnimalImage)
        .where(AnimalImage.animal_id == animal.id, AnimalImage.is_profile_picture.is_(True))
        .values(is_profile_picture=False)
    )
    image.is_profile_picture = True
    animal.image_url = image.image_url
    await db.commit()

    logger.info(f"Image {image.id} is now the profile picture of animal {animal.id}")
    return {"message": "Profile picture updated successfully", "image": await _load_image(db, image.id)}


@router.put("/groups/{group_id}/animals/{animal_id}/images/{image_id}/set-profile", response_model=ProfilePictureResponse)
async def set_profile_picture(
    group_id: int,
    animal_id: int,
    image_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_access(db, current_user, group_id)
    animal = await db.scalar(
        select(Animal).where(Animal.id == animal_id, Animal.group_id == group_id, Animal.deleted_at.is_(None))
    )
    if animal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Animal not found in this group")
    image = await _get_gallery_image(db, animal_id, image_id)
    return await _set_profile_picture(db, animal, image)


@router.put("/admin/animals/{animal_id}/images/{image_id}/set-profile", response_model=ProfilePictureResponse)
async def set_profile_picture_admin(
    animal_id: int,
    image_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    animal = await db.scalar(select(Animal).where(Animal.id == animal_id, Animal.deleted_at.is_(None)))
    if animal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Animal not found")
    image = await _get_gallery_image(db, animal_id, image_id)
    return await _set_profile_picture(db, animal, image)


async def _deleted_images(db: AsyncSession, current_user: User, group_id: int) -> dict:
    await require_group_admin(db, current_user, group_id)
    result = await db.execute(
        select(AnimalImage)
        .options(selectinload(AnimalImage.animal))
        .join(Animal, Animal.id == AnimalImage.animal_id)
        .where(Animal.group_id == group_id, AnimalImage.deleted_at.is_not(None))
        .order_by(AnimalImage.deleted_at.desc())
    )
    images = result.scalars().all()
    logger.info(f"Retrieved {len(images)} deleted images for group {group_id}")
    return {"data": images}


@router.get("/groups/{group_id}/deleted-images", response_model=DeletedImagesResponse)
async def deleted_group_images(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _deleted_images(db, current_user, group_id)


@router.get("/admin/groups/{group_id}/deleted-images", response_model=DeletedImagesResponse)
async def admin_deleted_group_images(
    group_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await _deleted_images(db, admin, group_id)


@router.post("/animals/upload-image", response_model=UploadResponse)
async def upload_unlinked_image(
    image: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    """Editor upload not tied to a gallery; returns the URL to embed."""
    stored = await store_image(db, storage, current_user, image)
    await db.commit()
    return UploadResponse(url=stored.image_url)


# Serving


@router.get("/images/{image_uuid}")
async def serve_image(
    image_uuid: str,
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    image = await db.scalar(
        select(AnimalImage).where(AnimalImage.image_url == image_url(image_uuid), AnimalImage.deleted_at.is_(None))
    )
    if image is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")

    if image.storage_provider == "azure" and image.blob_identifier:
        try:
            data, mime_type = await storage.get_image(image.blob_name)
        except StorageNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found in storage")
        except Exception as e:
            logger.error(f"Failed to fetch image blob {image.blob_name}: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to retrieve image")
    else:
        if not image.image_data:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image data not available")
        data, mime_type = image.image_data, image.mime_type

    return Response(
        content=data,
        media_type=mime_type or image.mime_type,
        headers={"Cache-Control": IMAGE_CACHE_CONTROL},
    )


@router.get("/documents/{document_uuid}")
async def serve_document(
    document_uuid: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    animal = await db.scalar(
        select(Animal).where(
            Animal.protocol_document_url == document_url(document_uuid),
            Animal.deleted_at.is_(None),
        )
    )
    if animal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    if not current_user.is_admin and not await is_group_member(db, current_user, animal.group_id):
        logger.warning(f"User {current_user.id} denied access to protocol document of animal {animal.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: You must be a member of this group to view this document",
        )

    if animal.protocol_document_provider == "azure" and animal.protocol_document_blob_identifier:
        blob_name = f"{animal.protocol_document_blob_identifier}{animal.protocol_document_blob_extension}"
        try:
            data, mime_type = await storage.get_document(blob_name)
        except StorageNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found in storage")
        except Exception as e:
            logger.error(f"Failed to fetch document blob {blob_name}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to retrieve document"
            )
    else:
        if not animal.protocol_document_data:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document data not available")
        data, mime_type = animal.protocol_document_data, animal.protocol_document_type

    return Response(
        content=data,
        media_type=mime_type or animal.protocol_document_type,
        headers={
            "Content-Disposition": f'inline; filename="{animal.protocol_document_name}"',
            "Cache-Control": DOCUMENT_CACHE_CONTROL,
        },
    )


# Protocol documents


async def _animal_in_group(db: AsyncSession, group_id: int, animal_id: int) -> Animal:
    animal = await db.scalar(
        select(Animal).where(Animal.id == animal_id, Animal.group_id == group_id, Animal.deleted_at.is_(None))
    )
    if animal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Animal not found in this group")
    return animal


@router.post("/groups/{group_id}/animals/{animal_id}/protocol-document", response_model=ProtocolDocumentResponse)
async def upload_protocol_document(
    group_id: int,
    animal_id: int,
    document: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    await require_group_admin(db, current_user, group_id)
    animal = await _animal_in_group(db, group_id, animal_id)

    await store_protocol_document(storage, current_user, animal, document)
    await db.commit()

    return ProtocolDocumentResponse(
        url=animal.protocol_document_url,
        name=animal.protocol_document_name,
        size=animal.protocol_document_size,
        type=animal.protocol_document_type,
        uploaded_by=current_user.id,
    )


@router.delete("/groups/{group_id}/animals/{animal_id}/protocol-document")
async def remove_protocol_document(
    group_id: int,
    animal_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    await require_group_admin(db, current_user, group_id)
    animal = await _animal_in_group(db, group_id, animal_id)

    await delete_protocol_document(storage, animal)
    animal.clear_protocol_document()
    await db.commit()

    logger.info(f"Protocol document removed from animal {animal_id} by user {current_user.id}")
    return {"message": "Protocol document removed successfully"}
