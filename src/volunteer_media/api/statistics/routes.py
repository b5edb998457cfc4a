import logging
import time
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_media.api.deps import get_current_user, page_envelope, paginate, require_admin
from volunteer_media.api.statistics.models import (
    ActiveGroup,
    AnimalAlert,
    CommentTagStatistics,
    CommentTagStatisticsPage,
    DashboardStats,
    GroupStatistics,
    GroupStatisticsPage,
    RecentUser,
    SystemHealth,
    UserStatistics,
    UserStatisticsPage,
)
from volunteer_media.db import get_db_session
from volunteer_media.models import Animal, AnimalComment, CommentTag, Group, User, UserGroup, animal_comment_tags
from volunteer_media.models.base import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

SLOW_QUERY_SECONDS = 1.0
RECENT_USERS_LIMIT = 5
ACTIVE_GROUPS_LIMIT = 5
ACTIVE_GROUPS_WINDOW_DAYS = 30
ATTENTION_LIMIT = 10


def _warn_if_slow(name: str, started: float):
    elapsed = time.monotonic() - started
    if elapsed > SLOW_QUERY_SECONDS:
        logger.warning(f"Slow {name} query: {elapsed * 1000:.0f}ms")


@router.get("/admin/statistics/groups", response_model=GroupStatisticsPage)
async def group_statistics(
    limit: Optional[int] = None,
    offset: int = 0,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    limit, offset = paginate(limit, offset)
    total = await db.scalar(select(func.count(Group.id)).where(Group.deleted_at.is_(None)))

    user_count = (
        select(func.count(distinct(UserGroup.user_id)))
        .where(UserGroup.group_id == Group.id)
        .correlate(Group)
        .scalar_subquery()
    )
    animal_count = (
        select(func.count(Animal.id))
        .where(Animal.group_id == Group.id, Animal.deleted_at.is_(None))
        .correlate(Group)
        .scalar_subquery()
    )
    last_activity = (
        select(func.max(AnimalComment.created_at))
        .join(Animal, Animal.id == AnimalComment.animal_id)
        .where(Animal.group_id == Group.id, AnimalComment.deleted_at.is_(None))
        .correlate(Group)
        .scalar_subquery()
    )

    started = time.monotonic()
    result = await db.execute(
        select(Group.id, Group.name, user_count, animal_count, last_activity)
        .where(Group.deleted_at.is_(None))
        .order_by(Group.id)
        .limit(limit)
        .offset(offset)
    )
    _warn_if_slow("group statistics", started)

    data = [
        GroupStatistics(
            group_id=group_id,
            group_name=name,
            user_count=users or 0,
            animal_count=animals or 0,
            last_activity=last,
        )
        for group_id, name, users, animals, last in result.all()
    ]
    return page_envelope(data, total, limit, offset)


@router.get("/admin/statistics/users", response_model=UserStatisticsPage)
async def user_statistics(
    limit: Optional[int] = None,
    offset: int = 0,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    limit, offset = paginate(limit, offset)
    total = await db.scalar(select(func.count(User.id)).where(User.deleted_at.is_(None)))

    live = AnimalComment.deleted_at.is_(None)
    comment_count = (
        select(func.count(AnimalComment.id)).where(AnimalComment.user_id == User.id, live)
        .correlate(User).scalar_subquery()
    )
    last_active = (
        select(func.max(AnimalComment.created_at)).where(AnimalComment.user_id == User.id, live)
        .correlate(User).scalar_subquery()
    )
    animals = (
        select(func.count(distinct(AnimalComment.animal_id))).where(AnimalComment.user_id == User.id, live)
        .correlate(User).scalar_subquery()
    )

    started = time.monotonic()
    result = await db.execute(
        select(User.id, User.username, comment_count, last_active, animals)
        .where(User.deleted_at.is_(None))
        .order_by(User.id)
        .limit(limit)
        .offset(offset)
    )
    _warn_if_slow("user statistics", started)

    data = [
        UserStatistics(
            user_id=user_id,
            username=username,
            comment_count=comments or 0,
            last_active=last,
            animals_interacted_with=count or 0,
        )
        for user_id, username, comments, last, count in result.all()
    ]
    return page_envelope(data, total, limit, offset)


@router.get("/statistics/comment-tags", response_model=CommentTagStatisticsPage)
async def comment_tag_statistics(
    group_id: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Usage of each comment tag, with the animal it was applied to most.

    Only live comments on live animals count towards usage.
    """
    group_filter = None
    if group_id:
        if not group_id.isdigit():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid group_id parameter")
        group_filter = int(group_id)

    limit, offset = paginate(limit, offset)
    tag_query = select(CommentTag)
    count_query = select(func.count(CommentTag.id))
    if group_filter is not None:
        tag_query = tag_query.where(CommentTag.group_id == group_filter)
        count_query = count_query.where(CommentTag.group_id == group_filter)

    total = await db.scalar(count_query)
    tags = (await db.execute(tag_query.order_by(CommentTag.id).limit(limit).offset(offset))).scalars().all()

    usage: Dict[int, List[tuple]] = defaultdict(list)
    if tags:
        started = time.monotonic()
        result = await db.execute(
            select(
                animal_comment_tags.c.comment_tag_id,
                Animal.id,
                Animal.name,
                func.count(AnimalComment.id),
                func.max(AnimalComment.created_at),
            )
            .select_from(animal_comment_tags)
            .join(AnimalComment, AnimalComment.id == animal_comment_tags.c.animal_comment_id)
            .join(Animal, Animal.id == AnimalComment.animal_id)
            .where(
                animal_comment_tags.c.comment_tag_id.in_([tag.id for tag in tags]),
                AnimalComment.deleted_at.is_(None),
                Animal.deleted_at.is_(None),
            )
            .group_by(animal_comment_tags.c.comment_tag_id, Animal.id, Animal.name)
        )
        _warn_if_slow("comment tag statistics", started)
        for tag_id, animal_id, animal_name, count, last in result.all():
            usage[tag_id].append((animal_id, animal_name, count, last))

    data = []
    for tag in tags:
        rows = usage.get(tag.id, [])
        top = max(rows, key=lambda row: (row[2], -row[0])) if rows else (None, None, 0, None)
        data.append(CommentTagStatistics(
            tag_id=tag.id,
            tag_name=tag.name,
            usage_count=sum(row[2] for row in rows),
            last_used=max((row[3] for row in rows if row[3] is not None), default=None),
            most_tagged_animal_id=top[0],
            most_tagged_animal_name=top[1],
        ))
    return page_envelope(data, total, limit, offset)


# Dashboard


async def _most_active_groups(db: AsyncSession, since) -> List[ActiveGroup]:
    recent = (
        select(Animal.group_id, func.count(AnimalComment.id).label("comment_count"))
        .join(Animal, Animal.id == AnimalComment.animal_id)
        .where(AnimalComment.deleted_at.is_(None), Animal.deleted_at.is_(None), AnimalComment.created_at > since)
        .group_by(Animal.group_id)
        .subquery()
    )
    result = await db.execute(
        select(Group.id, Group.name, recent.c.comment_count)
        .join(recent, recent.c.group_id == Group.id)
        .where(Group.deleted_at.is_(None))
        .order_by(recent.c.comment_count.desc(), Group.id)
        .limit(ACTIVE_GROUPS_LIMIT)
    )

    groups = []
    for group_id, name, comments in result.all():
        users = await db.scalar(select(func.count(UserGroup.user_id)).where(UserGroup.group_id == group_id))
        animals = await db.scalar(
            select(func.count(Animal.id)).where(Animal.group_id == group_id, Animal.deleted_at.is_(None))
        )
        last = await db.scalar(
            select(func.max(AnimalComment.created_at))
            .join(Animal, Animal.id == AnimalComment.animal_id)
            .where(Animal.group_id == group_id, AnimalComment.deleted_at.is_(None))
        )
        groups.append(ActiveGroup(
            group_id=group_id,
            group_name=name,
            user_count=users or 0,
            animal_count=animals or 0,
            comment_count=comments,
            last_activity=last,
        ))
    return groups


async def _animals_needing_attention(db: AsyncSession) -> List[AnimalAlert]:
    """Animals whose live comments carry a system tag, most recently flagged first."""
    result = await db.execute(
        select(Animal.id, Animal.name, Animal.image_url, Group.id, Group.name, CommentTag.name, AnimalComment.created_at)
        .select_from(AnimalComment)
        .join(Animal, Animal.id == AnimalComment.animal_id)
        .join(Group, Group.id == Animal.group_id)
        .join(animal_comment_tags, animal_comment_tags.c.animal_comment_id == AnimalComment.id)
        .join(CommentTag, CommentTag.id == animal_comment_tags.c.comment_tag_id)
        .where(CommentTag.is_system.is_(True), AnimalComment.deleted_at.is_(None), Animal.deleted_at.is_(None))
    )

    alerts: Dict[int, dict] = {}
    for animal_id, animal_name, image_url, group_id, group_name, tag_name, created_at in result.all():
        alert = alerts.setdefault(animal_id, {
            "animal_id": animal_id,
            "animal_name": animal_name,
            "group_id": group_id,
            "group_name": group_name,
            "image_url": image_url or "",
            "alert_tags": [],
            "last_comment": created_at,
        })
        if tag_name not in alert["alert_tags"]:
            alert["alert_tags"].append(tag_name)
        if created_at > alert["last_comment"]:
            alert["last_comment"] = created_at

    ranked = sorted(alerts.values(), key=lambda alert: alert["last_comment"], reverse=True)
    return [AnimalAlert(**alert) for alert in ranked[:ATTENTION_LIMIT]]


@router.get("/admin/dashboard/stats", response_model=DashboardStats)
async def dashboard_stats(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    now = utcnow()
    last_24h = now - timedelta(days=1)
    last_7_days = now - timedelta(days=7)
    window_start = now - timedelta(days=ACTIVE_GROUPS_WINDOW_DAYS)
    live_comment = AnimalComment.deleted_at.is_(None)

    recent_users = (
        await db.execute(
            select(User).where(User.deleted_at.is_(None)).order_by(User.created_at.desc()).limit(RECENT_USERS_LIMIT)
        )
    ).scalars().all()

    comments_30d = await db.scalar(
        select(func.count(AnimalComment.id)).where(live_comment, AnimalComment.created_at > window_start)
    )
    health = SystemHealth(
        active_users_last_24h=await db.scalar(
            select(func.count(distinct(AnimalComment.user_id))).where(live_comment, AnimalComment.created_at > last_24h)
        ),
        comments_last_24h=await db.scalar(
            select(func.count(AnimalComment.id)).where(live_comment, AnimalComment.created_at > last_24h)
        ),
        new_users_last_7_days=await db.scalar(
            select(func.count(User.id)).where(User.deleted_at.is_(None), User.created_at > last_7_days)
        ),
        average_comments_per_day=round((comments_30d or 0) / ACTIVE_GROUPS_WINDOW_DAYS, 2),
    )

    return DashboardStats(
        total_users=await db.scalar(select(func.count(User.id)).where(User.deleted_at.is_(None))),
        total_groups=await db.scalar(select(func.count(Group.id)).where(Group.deleted_at.is_(None))),
        total_animals=await db.scalar(select(func.count(Animal.id)).where(Animal.deleted_at.is_(None))),
        total_comments=await db.scalar(select(func.count(AnimalComment.id)).where(live_comment)),
        recent_users=[RecentUser.model_validate(user) for user in recent_users],
        most_active_groups=await _most_active_groups(db, window_start),
        animals_needing_attention=await _animals_needing_attention(db),
        system_health=health,
    )
