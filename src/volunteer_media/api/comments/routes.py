import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from volunteer_media.api.animals.routes import get_animal_or_404
from volunteer_media.api.comments.models import (
    CommentHistoryResponse,
    CommentPage,
    CommentRequest,
    CommentResponse,
    CommentWithAnimal,
)
from volunteer_media.api.deps import (
    get_current_user,
    group_member,
    is_group_admin,
    page_envelope,
    paginate,
    require_group_admin,
)
from volunteer_media.db import get_db_session
from volunteer_media.models import Animal, AnimalComment, CommentHistory, CommentTag, Group, User
from volunteer_media.models.base import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_COMMENT_LIMIT = 10
DEFAULT_LATEST_LIMIT = 20


def split_tag_names(tags: Optional[str]) -> List[str]:
    return [name.strip() for name in (tags or "").split(",") if name.strip()]


async def _group_tags(db: AsyncSession, group_id: int, tag_ids: List[int]) -> List[CommentTag]:
    if not tag_ids:
        return []
    result = await db.execute(select(CommentTag).where(CommentTag.id.in_(tag_ids), CommentTag.group_id == group_id))
    return list(result.scalars().all())


async def _get_comment_or_404(db: AsyncSession, animal_id: int, comment_id: int) -> AnimalComment:
    comment = await db.scalar(
        select(AnimalComment).where(
            AnimalComment.id == comment_id,
            AnimalComment.animal_id == animal_id,
            AnimalComment.deleted_at.is_(None),
        )
    )
    if comment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
    return comment


async def _reload(db: AsyncSession, comment_id: int) -> AnimalComment:
    return await db.scalar(
        select(AnimalComment).where(AnimalComment.id == comment_id).execution_options(populate_existing=True)
    )


@router.get("/groups/{group_id}/animals/{animal_id}/comments", response_model=CommentPage)
async def list_comments(
    animal_id: int,
    group: Group = Depends(group_member),
    limit: Optional[int] = None,
    offset: int = 0,
    order: str = "desc",
    tags: Optional[str] = None,
    db: AsyncSession = Depends(get_db_session),
):
    await get_animal_or_404(db, group.id, animal_id)
    limit, offset = paginate(limit, offset, default=DEFAULT_COMMENT_LIMIT)

    conditions = [AnimalComment.animal_id == animal_id, AnimalComment.deleted_at.is_(None)]
    tag_names = split_tag_names(tags)
    if tag_names:
        conditions.append(AnimalComment.tags.any(CommentTag.name.in_(tag_names)))

    total = await db.scalar(select(func.count(AnimalComment.id)).where(*conditions))

    created = AnimalComment.created_at.asc() if order.lower() == "asc" else AnimalComment.created_at.desc()
    result = await db.execute(select(AnimalComment).where(*conditions).order_by(created).limit(limit).offset(offset))
    return page_envelope(result.scalars().all(), total, limit, offset, key="comments")


@router.post(
    "/groups/{group_id}/animals/{animal_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_comment(
    animal_id: int,
    body: CommentRequest,
    group: Group = Depends(group_member),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await get_animal_or_404(db, group.id, animal_id)

    comment = AnimalComment(
        animal_id=animal_id,
        user_id=current_user.id,
        content=body.content,
        image_url=body.image_url,
        session_metadata=body.metadata.sanitized() if body.metadata else None,
        tags=await _group_tags(db, group.id, body.tag_ids),
    )
    db.add(comment)
    await db.commit()

    logger.info(f"Comment {comment.id} added to animal {animal_id} by user {current_user.id}")
    return await _reload(db, comment.id)


@router.put("/groups/{group_id}/animals/{animal_id}/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    animal_id: int,
    comment_id: int,
    body: CommentRequest,
    group: Group = Depends(group_member),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Edit a comment, keeping the previous version in its history."""
    await get_animal_or_404(db, group.id, animal_id)
    comment = await _get_comment_or_404(db, animal_id, comment_id)
    if comment.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only edit your own comments")

    db.add(CommentHistory(
        comment_id=comment.id,
        content=comment.content,
        image_url=comment.image_url,
        session_metadata=comment.session_metadata,
        edited_by=comment.user_id,
    ))

    comment.content = body.content
    comment.image_url = body.image_url
    comment.session_metadata = body.metadata.sanitized() if body.metadata else None
    if body.tag_ids:
        comment.tags = await _group_tags(db, group.id, body.tag_ids)
    await db.commit()

    return await _reload(db, comment.id)


@router.delete("/groups/{group_id}/animals/{animal_id}/comments/{comment_id}")
async def delete_comment(
    animal_id: int,
    comment_id: int,
    group: Group = Depends(group_member),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await get_animal_or_404(db, group.id, animal_id)
    comment = await _get_comment_or_404(db, animal_id, comment_id)
    if comment.user_id != current_user.id and not await is_group_admin(db, current_user, group.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only delete your own comments")

    comment.deleted_at = utcnow()
    await db.commit()
    logger.info(f"Comment {comment_id} on animal {animal_id} deleted by user {current_user.id}")
    return {"message": "Comment deleted successfully"}


@router.get(
    "/groups/{group_id}/animals/{animal_id}/comments/{comment_id}/history",
    response_model=List[CommentHistoryResponse],
)
async def get_comment_history(
    group_id: int,
    animal_id: int,
    comment_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id)
    comment = await db.scalar(
        select(AnimalComment.id)
        .join(Animal, Animal.id == AnimalComment.animal_id)
        .where(AnimalComment.id == comment_id, AnimalComment.animal_id == animal_id, Animal.group_id == group_id)
    )
    if comment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")

    result = await db.execute(
        select(CommentHistory).where(CommentHistory.comment_id == comment_id).order_by(CommentHistory.created_at.desc())
    )
    return result.scalars().all()


def _group_comments(group_id: int):
    return (
        select(AnimalComment)
        .options(selectinload(AnimalComment.animal))
        .join(Animal, Animal.id == AnimalComment.animal_id)
        .where(Animal.group_id == group_id, Animal.deleted_at.is_(None))
    )


@router.get("/groups/{group_id}/latest-comments", response_model=List[CommentWithAnimal])
async def latest_group_comments(
    group: Group = Depends(group_member),
    limit: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db_session),
):
    limit, _ = paginate(limit, 0, default=DEFAULT_LATEST_LIMIT)
    result = await db.execute(
        _group_comments(group.id)
        .where(AnimalComment.deleted_at.is_(None))
        .order_by(AnimalComment.created_at.desc())
        .limit(limit)
    )
    return result.scalars().all()


async def _deleted_comments(db: AsyncSession, current_user: User, group_id: int):
    await require_group_admin(db, current_user, group_id)
    result = await db.execute(
        _group_comments(group_id)
        .where(AnimalComment.deleted_at.is_not(None))
        .order_by(AnimalComment.deleted_at.desc())
    )
    return result.scalars().all()


@router.get("/groups/{group_id}/deleted-comments", response_model=List[CommentWithAnimal])
async def deleted_group_comments(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _deleted_comments(db, current_user, group_id)


@router.get("/admin/groups/{group_id}/deleted-comments", response_model=List[CommentWithAnimal])
async def admin_deleted_group_comments(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _deleted_comments(db, current_user, group_id)
