import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_media.api.deps import require_admin
from volunteer_media.api.groups.models import UploadResponse
from volunteer_media.api.media.service import store_image
from volunteer_media.api.settings.models import SETTING_RULES, CleanupResponse, SeedResponse, SettingUpdateRequest
from volunteer_media.config import config
from volunteer_media.db import get_db_session
from volunteer_media.maintenance import (
    DEFAULT_ORPHAN_IMAGE_DAYS,
    DEFAULT_SOFT_DELETE_DAYS,
    cleanup_orphaned_images,
    cleanup_soft_deleted_records,
)
from volunteer_media.models import SiteSetting, User
from volunteer_media.seed import DEMO_ACCOUNTS, seed_data
from volunteer_media.site_settings import SiteSettingsCache, get_settings_cache
from volunteer_media.storage import StorageProvider, get_storage_provider
from volunteer_media.storage.uploads import MAX_HERO_IMAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter()


def validate_setting(key: str, value: str) -> str:
    """
    Apply the per-key rules to a setting value.

    Raises:
        HTTPException: 400 with "X is required" or "X must be N characters or less"
    """
    value = value.strip()
    rule = SETTING_RULES.get(key)
    if rule is None:
        return value

    label, max_length, required = rule
    if required and not value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{label} is required")
    if len(value) > max_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{label} must be {max_length} characters or less",
        )
    return value


@router.get("/settings", response_model=Dict[str, str])
async def get_site_settings(db: AsyncSession = Depends(get_db_session)):
    result = await db.execute(select(SiteSetting))
    return {setting.key: setting.value for setting in result.scalars().all()}


@router.post("/admin/settings/upload-hero-image", response_model=UploadResponse)
async def upload_hero_image(
    image: Optional[UploadFile] = File(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    stored = await store_image(db, storage, admin, image, max_size=MAX_HERO_IMAGE_SIZE)
    await db.commit()
    logger.info(f"Hero image uploaded by admin {admin.id}")
    return UploadResponse(url=stored.image_url)


@router.put("/admin/settings/{key}")
async def update_site_setting(
    key: str,
    body: SettingUpdateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    cache: SiteSettingsCache = Depends(get_settings_cache),
):
    value = validate_setting(key, body.value)

    setting = await db.scalar(select(SiteSetting).where(SiteSetting.key == key))
    if setting is None:
        setting = SiteSetting(key=key, value=value)
        db.add(setting)
    else:
        setting.value = value
    await db.commit()
    cache.invalidate()

    logger.info(f"Site setting {key} updated by admin {admin.id}")
    return {"key": key, "value": value}


# Developer tools


@router.post("/admin/seed-database", response_model=SeedResponse)
async def seed_database(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    if not config.is_development:
        logger.warning(f"Database seed attempted by admin {admin.id} in {config.environment} environment")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Database seeding is only available in development environments",
        )

    logger.info(f"Admin {admin.id} initiated database re-seed")
    try:
        await seed_data(db, force=True)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to seed database: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to seed database")

    return SeedResponse(message="Database re-seeded successfully", demo_accounts=DEMO_ACCOUNTS)


@router.post("/admin/maintenance/cleanup-orphaned-images", response_model=CleanupResponse)
async def cleanup_images(
    days: int = DEFAULT_ORPHAN_IMAGE_DAYS,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    deleted = await cleanup_orphaned_images(db, days)
    await db.commit()
    return CleanupResponse(message=f"Removed {deleted} orphaned images", deleted=deleted)


@router.post("/admin/maintenance/cleanup-soft-deleted", response_model=CleanupResponse)
async def cleanup_soft_deleted(
    table: str,
    days: int = DEFAULT_SOFT_DELETE_DAYS,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        deleted = await cleanup_soft_deleted_records(db, table, days)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await db.commit()
    return CleanupResponse(message=f"Purged {deleted} records from {table}", deleted=deleted)
