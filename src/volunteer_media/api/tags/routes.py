import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_media.api.deps import get_current_user, group_member, require_group_admin
from volunteer_media.api.tags.models import (
    AnimalTagRequest,
    AnimalTagResponse,
    CommentTagRequest,
    CommentTagResponse,
)
from volunteer_media.db import get_db_session
from volunteer_media.models import AnimalTag, CommentTag, Group, User, animal_animal_tags, animal_comment_tags

logger = logging.getLogger(__name__)

router = APIRouter()

DUPLICATE_TAG_MESSAGE = "A tag with this name already exists in this group"


async def _ensure_unique_tag(db: AsyncSession, model, group_id: int, name: str, tag_id: Optional[int] = None):
    query = select(model.id).where(model.group_id == group_id, func.lower(model.name) == name.lower())
    if tag_id is not None:
        query = query.where(model.id != tag_id)
    if await db.scalar(query) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_TAG_MESSAGE)


# Animal tags


async def _get_animal_tag(db: AsyncSession, group_id: int, tag_id: int) -> AnimalTag:
    tag = await db.scalar(select(AnimalTag).where(AnimalTag.id == tag_id, AnimalTag.group_id == group_id))
    if tag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Animal tag not found in this group")
    return tag


@router.get("/groups/{group_id}/animal-tags", response_model=List[AnimalTagResponse])
async def list_animal_tags(group: Group = Depends(group_member), db: AsyncSession = Depends(get_db_session)):
    result = await db.execute(
        select(AnimalTag).where(AnimalTag.group_id == group.id).order_by(AnimalTag.category, AnimalTag.name)
    )
    return result.scalars().all()


@router.post("/groups/{group_id}/animal-tags", response_model=AnimalTagResponse, status_code=status.HTTP_201_CREATED)
async def create_animal_tag(
    group_id: int,
    body: AnimalTagRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id, message="Only group admins can create tags")
    await _ensure_unique_tag(db, AnimalTag, group_id, body.name)

    tag = AnimalTag(group_id=group_id, name=body.name, category=body.category, color=body.color)
    db.add(tag)
    await db.commit()
    logger.info(f"Animal tag {tag.name!r} created in group {group_id} by user {current_user.id}")
    return tag


@router.put("/groups/{group_id}/animal-tags/{tag_id}", response_model=AnimalTagResponse)
async def update_animal_tag(
    group_id: int,
    tag_id: int,
    body: AnimalTagRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id, message="Only group admins can update tags")
    tag = await _get_animal_tag(db, group_id, tag_id)
    await _ensure_unique_tag(db, AnimalTag, group_id, body.name, tag_id)

    tag.name = body.name
    tag.category = body.category
    tag.color = body.color
    await db.commit()
    return tag


@router.delete("/groups/{group_id}/animal-tags/{tag_id}")
async def delete_animal_tag(
    group_id: int,
    tag_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id, message="Only group admins can delete tags")
    tag = await _get_animal_tag(db, group_id, tag_id)

    await db.execute(delete(animal_animal_tags).where(animal_animal_tags.c.animal_tag_id == tag.id))
    await db.delete(tag)
    await db.commit()
    logger.info(f"Animal tag {tag_id} deleted from group {group_id} by user {current_user.id}")
    return {"message": "Animal tag deleted successfully"}


# Comment tags


@router.get("/groups/{group_id}/comment-tags", response_model=List[CommentTagResponse])
async def list_comment_tags(group: Group = Depends(group_member), db: AsyncSession = Depends(get_db_session)):
    result = await db.execute(
        select(CommentTag)
        .where(CommentTag.group_id == group.id)
        .order_by(CommentTag.is_system.desc(), CommentTag.name.asc())
    )
    return result.scalars().all()


@router.post("/groups/{group_id}/comment-tags", response_model=CommentTagResponse, status_code=status.HTTP_201_CREATED)
async def create_comment_tag(
    group_id: int,
    body: CommentTagRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id, message="Only group admins can create tags")
    await _ensure_unique_tag(db, CommentTag, group_id, body.name)

    tag = CommentTag(group_id=group_id, name=body.name, color=body.color, is_system=False)
    db.add(tag)
    await db.commit()
    logger.info(f"Comment tag {tag.name!r} created in group {group_id} by user {current_user.id}")
    return tag


@router.delete("/groups/{group_id}/comment-tags/{tag_id}")
async def delete_comment_tag(
    group_id: int,
    tag_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id, message="Only group admins can delete tags")
    tag = await db.scalar(select(CommentTag).where(CommentTag.id == tag_id, CommentTag.group_id == group_id))
    if tag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found in this group")
    if tag.is_system:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot delete system tags")

    await db.execute(delete(animal_comment_tags).where(animal_comment_tags.c.comment_tag_id == tag.id))
    await db.delete(tag)
    await db.commit()
    logger.info(f"Comment tag {tag_id} deleted from group {group_id} by user {current_user.id}")
    return {"message": "Tag deleted successfully"}
