"""
Startup data maintenance and cleanup routines.

The startup steps are idempotent upserts that bring an existing database
in line with what the application expects: default groups, per-group
system comment tags, lowercase usernames and default site settings.
"""

import logging
from datetime import timedelta
from typing import Dict

from sqlalchemy import delete, func, select, union
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Base, Animal, AnimalComment, AnimalImage, CommentTag, Group, Protocol, SiteSetting, Update, User
from .models.base import utcnow
from .models.comment import SYSTEM_COMMENT_TAGS
from .models.content import DEFAULT_SITE_DESCRIPTION, DEFAULT_SITE_NAME, DEFAULT_SITE_SHORT_NAME

logger = logging.getLogger(__name__)

DEFAULT_GROUPS = (
    ("dogs", "Dog volunteers group"),
    ("cats", "Cat volunteers group"),
    ("modsquad", "Moderators group"),
)

DEFAULT_SITE_SETTINGS = {
    "site_name": DEFAULT_SITE_NAME,
    "site_short_name": DEFAULT_SITE_SHORT_NAME,
    "site_description": DEFAULT_SITE_DESCRIPTION,
    "hero_image_url": "",
}

# Tables that carry a deleted_at column and may be purged by admins
SOFT_DELETE_TABLES = (
    "animal_comments",
    "animal_images",
    "animals",
    "announcements",
    "groups",
    "protocols",
    "updates",
    "users",
)

DEFAULT_ORPHAN_IMAGE_DAYS = 7
DEFAULT_SOFT_DELETE_DAYS = 90
MIN_SOFT_DELETE_DAYS = 30


async def ensure_default_groups(session: AsyncSession) -> int:
    created = 0
    for name, description in DEFAULT_GROUPS:
        existing = await session.scalar(select(Group).where(Group.name == name))
        if existing is None:
            session.add(Group(name=name, description=description))
            created += 1
            logger.info(f"Created default group: {name}")
    await session.flush()
    return created


async def backfill_comment_tag_groups(session: AsyncSession) -> int:
    """Attach comment tags created before group scoping to the first group."""
    orphans = (await session.execute(select(CommentTag).where(CommentTag.group_id.is_(None)))).scalars().all()
    if not orphans:
        return 0

    first_group = await session.scalar(
        select(Group).where(Group.deleted_at.is_(None)).order_by(Group.id).limit(1)
    )
    if first_group is None:
        logger.warning(f"{len(orphans)} comment tags have no group and no group exists to adopt them")
        return 0

    for tag in orphans:
        tag.group_id = first_group.id
    await session.flush()
    logger.info(f"Backfilled {len(orphans)} legacy comment tags into group {first_group.name}")
    return len(orphans)


async def ensure_system_comment_tags(session: AsyncSession) -> int:
    """Make sure every group has the behavior and medical system tags."""
    groups = (await session.execute(select(Group).where(Group.deleted_at.is_(None)))).scalars().all()
    created = 0
    for group in groups:
        existing = (
            await session.execute(select(CommentTag).where(CommentTag.group_id == group.id))
        ).scalars().all()
        by_name = {tag.name: tag for tag in existing}
        for name, color in SYSTEM_COMMENT_TAGS:
            tag = by_name.get(name)
            if tag is None:
                session.add(CommentTag(group_id=group.id, name=name, color=color, is_system=True))
                created += 1
            elif not tag.is_system:
                tag.is_system = True
    await session.flush()
    if created:
        logger.info(f"Created {created} system comment tags")
    return created


async def lowercase_usernames(session: AsyncSession) -> int:
    """
    Lowercase legacy mixed-case usernames.

    A username is left alone when its lowercase form already belongs to
    another account; the collision is logged for manual repair.
    """
    users = (
        await session.execute(select(User).where(User.username != func.lower(User.username)))
    ).scalars().all()

    updated = 0
    for user in users:
        lowered = user.username.lower()
        clash = await session.scalar(
            select(User.id).where(User.username == lowered, User.id != user.id)
        )
        if clash is not None:
            logger.warning(f"Cannot lowercase username {user.username!r}: {lowered!r} is taken")
            continue
        user.username = lowered
        updated += 1
    await session.flush()
    if updated:
        logger.info(f"Lowercased {updated} usernames")
    return updated


async def ensure_default_site_settings(session: AsyncSession) -> int:
    existing = set((await session.execute(select(SiteSetting.key))).scalars().all())
    created = 0
    for key, value in DEFAULT_SITE_SETTINGS.items():
        if key not in existing:
            session.add(SiteSetting(key=key, value=value))
            created += 1
    await session.flush()
    return created


async def run_startup_maintenance(session: AsyncSession) -> Dict[str, int]:
    """Run every startup upsert in dependency order and report what changed."""
    report = {
        "groups_created": await ensure_default_groups(session),
        "comment_tags_backfilled": await backfill_comment_tag_groups(session),
        "system_tags_created": await ensure_system_comment_tags(session),
        "usernames_lowercased": await lowercase_usernames(session),
        "settings_created": await ensure_default_site_settings(session),
    }
    logger.info(f"Startup maintenance complete: {report}")
    return report


async def cleanup_orphaned_images(session: AsyncSession, days: int = DEFAULT_ORPHAN_IMAGE_DAYS) -> int:
    """
    Permanently delete unlinked uploads older than ``days``.

    Uploads whose URL is still embedded in a group, animal, protocol,
    comment, update or site setting are kept.

    Returns:
        int: Number of rows removed
    """
    if days < 1:
        days = DEFAULT_ORPHAN_IMAGE_DAYS
    cutoff = utcnow() - timedelta(days=days)

    referenced = union(
        select(Group.image_url),
        select(Group.hero_image_url),
        select(Animal.image_url),
        select(Protocol.image_url),
        select(AnimalComment.image_url),
        select(Update.image_url),
        select(SiteSetting.value),
    )
    result = await session.execute(
        delete(AnimalImage).where(
            AnimalImage.animal_id.is_(None),
            AnimalImage.created_at < cutoff,
            AnimalImage.image_url.not_in(referenced),
        )
        .execution_options(synchronize_session=False)
    )
    logger.info(f"Removed {result.rowcount} orphaned images older than {days} days")
    return result.rowcount or 0


async def cleanup_soft_deleted_records(
    session: AsyncSession, table: str, days: int = DEFAULT_SOFT_DELETE_DAYS
) -> int:
    """
    Permanently delete rows soft-deleted more than ``days`` ago.

    Raises:
        ValueError: If ``table`` is not in SOFT_DELETE_TABLES
    """
    if table not in SOFT_DELETE_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    if days < MIN_SOFT_DELETE_DAYS:
        days = MIN_SOFT_DELETE_DAYS
    cutoff = utcnow() - timedelta(days=days)

    target = Base.metadata.tables[table]
    result = await session.execute(
        delete(target).where(target.c.deleted_at.isnot(None), target.c.deleted_at < cutoff)
    )
    logger.info(f"Purged {result.rowcount} soft-deleted rows from {table} older than {days} days")
    return result.rowcount or 0