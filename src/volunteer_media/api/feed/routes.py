import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from volunteer_media.api.background import deliver
from volunteer_media.api.comments.routes import split_tag_names
from volunteer_media.api.deps import (
    get_current_user,
    group_member,
    paginate,
    require_admin,
    require_group_admin,
)
from volunteer_media.api.feed.models import (
    ActivityFeedResponse,
    ActivityFeedSummary,
    ActivityItem,
    AnnouncementRequest,
    AnnouncementResponse,
    UpdateRequest,
    UpdateResponse,
)
from volunteer_media.db import get_db_session
from volunteer_media.models import Animal, AnimalComment, Announcement, CommentTag, Group, Update, User, UserGroup
from volunteer_media.models.base import ensure_utc, utcnow
from volunteer_media.notifications import EmailService, GroupMeService, get_email_service, get_groupme_service

logger = logging.getLogger(__name__)

router = APIRouter()

ANNOUNCEMENT_LIMIT = 10
POOR_SESSION_RATING = 2


async def send_announcement_emails(email_service: EmailService, recipients: List[str], title: str, content: str):
    """Email every recipient, counting failures instead of stopping."""
    sent = 0
    for address in recipients:
        if await deliver(f"announcement email to {address}", email_service.send_announcement_email, address, title, content):
            sent += 1
    logger.info(f"Sent {sent}/{len(recipients)} announcement emails")


async def post_to_groupme(groupme: GroupMeService, bot_ids: List[str], title: str, content: str):
    sent = 0
    for bot_id in bot_ids:
        if await deliver("GroupMe announcement", groupme.send_announcement, bot_id, title, content):
            sent += 1
    logger.info(f"Posted announcement to {sent}/{len(bot_ids)} GroupMe groups")


async def _notification_recipients(db: AsyncSession, group_id: Optional[int] = None) -> List[str]:
    query = select(User.email).where(User.email_notifications_enabled.is_(True), User.deleted_at.is_(None))
    if group_id is not None:
        query = query.join(UserGroup, UserGroup.user_id == User.id).where(UserGroup.group_id == group_id)
    result = await db.execute(query)
    return [address for address in result.scalars().all() if address]


async def _load_update(db: AsyncSession, update_id: int) -> Update:
    return await db.scalar(select(Update).where(Update.id == update_id).execution_options(populate_existing=True))


# Group updates


@router.get("/groups/{group_id}/updates", response_model=List[UpdateResponse])
async def list_updates(group: Group = Depends(group_member), db: AsyncSession = Depends(get_db_session)):
    result = await db.execute(
        select(Update)
        .where(Update.group_id == group.id, Update.deleted_at.is_(None))
        .order_by(Update.created_at.desc())
    )
    return result.scalars().all()


@router.post("/groups/{group_id}/updates", response_model=UpdateResponse, status_code=status.HTTP_201_CREATED)
async def create_update(
    body: UpdateRequest,
    background_tasks: BackgroundTasks,
    group: Group = Depends(group_member),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    groupme: GroupMeService = Depends(get_groupme_service),
):
    update = Update(
        group_id=group.id,
        user_id=current_user.id,
        title=body.title,
        content=body.content,
        image_url=body.image_url,
        send_email=False,
        send_groupme=body.send_groupme,
    )
    db.add(update)
    await db.commit()

    if body.send_groupme:
        if group.can_post_to_groupme:
            background_tasks.add_task(post_to_groupme, groupme, [group.groupme_bot_id], update.title, update.content)
        else:
            logger.info(f"GroupMe not enabled for group {group.id}, skipping send")

    logger.info(f"Update {update.id} posted to group {group.id} by user {current_user.id}")
    return await _load_update(db, update.id)


@router.post("/groups/{group_id}/announcements", response_model=UpdateResponse, status_code=status.HTTP_201_CREATED)
async def create_group_announcement(
    group_id: int,
    body: AnnouncementRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service),
    groupme: GroupMeService = Depends(get_groupme_service),
):
    """Group admin announcement: a feed update plus optional email and GroupMe delivery to the group."""
    group = await require_group_admin(db, current_user, group_id)

    update = Update(
        group_id=group.id,
        user_id=current_user.id,
        title=body.title,
        content=body.content,
        image_url="",
        send_email=body.send_email,
        send_groupme=body.send_groupme,
    )
    db.add(update)
    await db.commit()

    if body.send_email and email_service.is_configured():
        recipients = await _notification_recipients(db, group.id)
        background_tasks.add_task(send_announcement_emails, email_service, recipients, body.title, body.content)
    if body.send_groupme and group.can_post_to_groupme:
        background_tasks.add_task(post_to_groupme, groupme, [group.groupme_bot_id], body.title, body.content)

    logger.info(f"Group announcement {update.id} posted to group {group.id} by user {current_user.id}")
    return await _load_update(db, update.id)


# Site announcements


@router.get("/announcements", response_model=List[AnnouncementResponse])
async def list_announcements(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    result = await db.execute(
        select(Announcement)
        .where(Announcement.deleted_at.is_(None))
        .order_by(Announcement.created_at.desc())
        .limit(ANNOUNCEMENT_LIMIT)
    )
    return result.scalars().all()


@router.post("/admin/announcements", response_model=AnnouncementResponse, status_code=status.HTTP_201_CREATED)
async def create_announcement(
    body: AnnouncementRequest,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service),
    groupme: GroupMeService = Depends(get_groupme_service),
):
    announcement = Announcement(
        user_id=admin.id,
        title=body.title,
        content=body.content,
        send_email=body.send_email,
        send_groupme=body.send_groupme,
    )
    db.add(announcement)
    await db.commit()

    if body.send_email:
        if email_service.is_configured():
            recipients = await _notification_recipients(db)
            logger.info(f"Queueing announcement {announcement.id} for {len(recipients)} email recipients")
            background_tasks.add_task(send_announcement_emails, email_service, recipients, body.title, body.content)
        else:
            logger.warning("Announcement email requested but email service is not configured")

    if body.send_groupme:
        result = await db.execute(
            select(Group).where(
                Group.deleted_at.is_(None), Group.groupme_enabled.is_(True), Group.groupme_bot_id != ""
            )
        )
        bot_ids = [group.groupme_bot_id for group in result.scalars().all()]
        background_tasks.add_task(post_to_groupme, groupme, bot_ids, body.title, body.content)

    logger.info(f"Announcement {announcement.id} created by admin {admin.id}")
    return await db.scalar(
        select(Announcement).where(Announcement.id == announcement.id).execution_options(populate_existing=True)
    )


@router.delete("/admin/announcements/{announcement_id}")
async def delete_announcement(
    announcement_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    announcement = await db.scalar(
        select(Announcement).where(Announcement.id == announcement_id, Announcement.deleted_at.is_(None))
    )
    if announcement is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Announcement not found")
    announcement.deleted_at = utcnow()
    await db.commit()
    logger.info(f"Announcement {announcement_id} deleted by admin {admin.id}")
    return {"message": "Announcement deleted successfully"}


# Activity feed


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """RFC3339 timestamp, or None when absent or unparseable."""
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def rating_matches(rating: int, rating_filter: str) -> bool:
    """Unrated sessions never match a rating filter."""
    if rating == 0:
        return False
    if rating_filter == "poor":
        return rating <= POOR_SESSION_RATING
    if rating_filter.isdigit():
        return rating == int(rating_filter)
    return True


def summarize(items: List[ActivityItem]) -> ActivityFeedSummary:
    summary = ActivityFeedSummary()
    for item in items:
        if item.type != "comment" or not item.metadata:
            continue
        if item.metadata.get("behavior_notes"):
            summary.behavior_concerns_count += 1
        if item.metadata.get("medical_notes"):
            summary.medical_concerns_count += 1
        rating = int(item.metadata.get("session_rating") or 0)
        if 0 < rating <= POOR_SESSION_RATING:
            summary.poor_sessions_count += 1
    return summary


@router.get("/groups/{group_id}/activity-feed", response_model=ActivityFeedResponse, response_model_exclude_none=True)
async def activity_feed(
    group: Group = Depends(group_member),
    limit: Optional[int] = None,
    offset: int = 0,
    feed_type: str = Query("all", alias="type"),
    animal: Optional[int] = None,
    tags: Optional[str] = None,
    rating: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Merged, newest-first feed of group updates and animal comments.

    The summary counts behavior/medical concerns and poor sessions over
    every matching item, not just the returned page.
    """
    limit, offset = paginate(limit, offset)
    start, end = _parse_timestamp(date_from), _parse_timestamp(date_to)
    feed_type = feed_type or "all"
    items: List[ActivityItem] = []

    if feed_type in ("all", "announcements"):
        query = select(Update).where(Update.group_id == group.id, Update.deleted_at.is_(None))
        if start is not None:
            query = query.where(Update.created_at >= start)
        if end is not None:
            query = query.where(Update.created_at <= end)
        result = await db.execute(query)
        for update in result.scalars().all():
            items.append(ActivityItem(
                id=update.id,
                type="announcement",
                created_at=update.created_at,
                user_id=update.user_id,
                user=update.user,
                content=update.content,
                title=update.title,
                image_url=update.image_url or None,
            ))

    if feed_type in ("all", "comments"):
        query = (
            select(AnimalComment)
            .options(selectinload(AnimalComment.animal))
            .join(Animal, Animal.id == AnimalComment.animal_id)
            .where(Animal.group_id == group.id, Animal.deleted_at.is_(None), AnimalComment.deleted_at.is_(None))
        )
        if animal is not None:
            query = query.where(AnimalComment.animal_id == animal)
        if start is not None:
            query = query.where(AnimalComment.created_at >= start)
        if end is not None:
            query = query.where(AnimalComment.created_at <= end)
        tag_names = split_tag_names(tags)
        if tag_names:
            query = query.where(AnimalComment.tags.any(CommentTag.name.in_(tag_names)))

        result = await db.execute(query)
        for comment in result.scalars().all():
            if rating and not rating_matches(comment.session_rating, rating):
                continue
            items.append(ActivityItem(
                id=comment.id,
                type="comment",
                created_at=comment.created_at,
                user_id=comment.user_id,
                user=comment.user,
                content=comment.content,
                image_url=comment.image_url or None,
                animal_id=comment.animal_id,
                animal=comment.animal,
                tags=comment.tags,
                metadata=comment.session_metadata,
            ))

    items.sort(key=lambda item: item.created_at, reverse=True)
    total = len(items)
    page = items[offset:offset + limit]
    return ActivityFeedResponse(
        items=page,
        total=total,
        limit=limit,
        offset=offset,
        hasMore=offset + len(page) < total,
        summary=summarize(items),
    )
