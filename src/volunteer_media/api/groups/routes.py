import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from volunteer_media.api.deps import (
    get_current_user,
    get_group_or_404,
    get_membership,
    group_member,
    require_admin,
    require_group_admin,
)
from volunteer_media.api.groups.models import (
    GroupRequest,
    GroupResponse,
    MemberResponse,
    MembershipResponse,
    UploadResponse,
    is_valid_groupme_bot_id,
)
from volunteer_media.api.media.service import store_image
from volunteer_media.db import get_db_session
from volunteer_media.models import Group, User, UserGroup
from volunteer_media.models.base import utcnow
from volunteer_media.models.group import DEFAULT_HERO_IMAGE_URL
from volunteer_media.storage import StorageProvider, get_storage_provider

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_bot_id(body: GroupRequest):
    if not is_valid_groupme_bot_id(body.groupme_bot_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid GroupMe bot ID. Must be a 26-character hexadecimal string.",
        )


def _apply_group_request(group: Group, body: GroupRequest):
    group.name = body.name
    group.description = body.description
    group.image_url = body.image_url
    group.hero_image_url = body.hero_image_url
    group.has_protocols = body.has_protocols
    group.groupme_bot_id = body.groupme_bot_id
    group.groupme_enabled = body.groupme_enabled


async def _ensure_unique_name(db: AsyncSession, name: str, group_id: Optional[int] = None):
    query = select(Group.id).where(Group.name == name)
    if group_id is not None:
        query = query.where(Group.id != group_id)
    if await db.scalar(query) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A group with this name already exists")


@router.get("/groups", response_model=List[GroupResponse])
async def list_groups(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    """Admins see every group, volunteers see the groups they belong to"""
    if current_user.is_admin:
        result = await db.execute(select(Group).where(Group.deleted_at.is_(None)).order_by(Group.name))
        return result.scalars().all()
    return current_user.groups


@router.get("/groups/{group_id}", response_model=GroupResponse)
async def get_group(group: Group = Depends(group_member)):
    return group


@router.get("/groups/{group_id}/membership", response_model=MembershipResponse)
async def get_group_membership(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await get_group_or_404(db, group_id)
    membership = await get_membership(db, current_user.id, group_id)
    if membership is None:
        if not current_user.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this group")
        return MembershipResponse(
            user_id=current_user.id, group_id=group_id, is_member=False, is_group_admin=False, is_site_admin=True
        )
    return MembershipResponse(
        user_id=current_user.id,
        group_id=group_id,
        is_member=True,
        is_group_admin=membership.is_group_admin,
        is_site_admin=current_user.is_admin,
    )


@router.post("/admin/groups", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(body: GroupRequest, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    _check_bot_id(body)
    await _ensure_unique_name(db, body.name)

    group = Group()
    _apply_group_request(group, body)
    if not group.hero_image_url:
        group.hero_image_url = DEFAULT_HERO_IMAGE_URL
    db.add(group)
    await db.commit()

    logger.info(f"Group {group.id} ({group.name}) created by admin {admin.id}")
    return group


@router.put("/admin/groups/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: int,
    body: GroupRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    group = await get_group_or_404(db, group_id)
    _check_bot_id(body)
    await _ensure_unique_name(db, body.name, group_id)

    _apply_group_request(group, body)
    await db.commit()
    return group


@router.delete("/admin/groups/{group_id}")
async def delete_group(group_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    group = await get_group_or_404(db, group_id)
    group.deleted_at = utcnow()
    await db.commit()
    logger.info(f"Group {group_id} deleted by admin {admin.id}")
    return {"message": "Group deleted successfully"}


@router.post("/admin/groups/upload-image", response_model=UploadResponse)
async def upload_group_image(
    image: Optional[UploadFile] = File(None),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageProvider = Depends(get_storage_provider),
):
    stored = await store_image(db, storage, admin, image)
    await db.commit()
    return UploadResponse(url=stored.image_url)


@router.put("/groups/{group_id}/settings", response_model=GroupResponse)
async def update_group_settings(
    group_id: int,
    body: GroupRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    group = await require_group_admin(db, current_user, group_id)
    _check_bot_id(body)
    await _ensure_unique_name(db, body.name, group_id)

    _apply_group_request(group, body)
    await db.commit()
    logger.info(f"Settings for group {group_id} updated by user {current_user.id}")
    return group


# Members


@router.get("/groups/{group_id}/members", response_model=List[MemberResponse])
async def list_group_members(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await get_group_or_404(db, group_id)
    viewer_is_group_admin = False
    if not current_user.is_admin:
        membership = await get_membership(db, current_user.id, group_id)
        if membership is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        viewer_is_group_admin = membership.is_group_admin
    sees_everything = current_user.is_admin or viewer_is_group_admin

    result = await db.execute(
        select(UserGroup)
        .options(selectinload(UserGroup.user))
        .join(User, User.id == UserGroup.user_id)
        .where(UserGroup.group_id == group_id, User.deleted_at.is_(None))
        .order_by(User.username)
    )

    members = []
    for membership in result.scalars().all():
        member = membership.user
        full_contact = sees_everything or member.id == current_user.id
        members.append(MemberResponse(
            user_id=member.id,
            username=member.username,
            first_name=member.first_name,
            last_name=member.last_name,
            email=member.email if full_contact or not member.hide_email else "",
            phone_number=member.phone_number if full_contact or not member.hide_phone_number else "",
            is_group_admin=membership.is_group_admin,
            is_site_admin=member.is_admin,
        ))
    return members


async def _get_target_user(db: AsyncSession, user_id: int) -> User:
    user = await db.scalar(select(User).where(User.id == user_id, User.deleted_at.is_(None)))
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.post("/groups/{group_id}/members/{user_id}")
async def add_group_member(
    group_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id)
    await _get_target_user(db, user_id)
    if await get_membership(db, user_id, group_id) is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is already a member of this group")

    db.add(UserGroup(user_id=user_id, group_id=group_id))
    await db.commit()
    logger.info(f"User {user_id} added to group {group_id} by user {current_user.id}")
    return {"message": "User added to group successfully"}


@router.delete("/groups/{group_id}/members/{user_id}")
async def remove_group_member(
    group_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_group_admin(db, current_user, group_id)
    await _get_target_user(db, user_id)
    membership = await get_membership(db, user_id, group_id)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is not a member of this group")

    await db.delete(membership)
    await db.commit()
    logger.info(f"User {user_id} removed from group {group_id} by user {current_user.id}")
    return {"message": "User removed from group successfully"}


async def _set_group_admin(
    db: AsyncSession, actor: User, group_id: int, user_id: int, promote: bool, denied_message: str
) -> dict:
    await require_group_admin(db, actor, group_id, message=denied_message)
    await _get_target_user(db, user_id)

    membership = await get_membership(db, user_id, group_id)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is not a member of this group")
    if promote and membership.is_group_admin:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is already a group admin")
    if not promote and not membership.is_group_admin:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is not a group admin")

    membership.is_group_admin = promote
    await db.commit()

    if promote:
        logger.info(f"User {user_id} promoted to admin of group {group_id} by user {actor.id}")
        return {"message": "User promoted to group admin"}
    logger.info(f"User {user_id} demoted from admin of group {group_id} by user {actor.id}")
    return {"message": "User demoted from group admin"}


@router.post("/groups/{group_id}/members/{user_id}/promote")
async def promote_member(
    group_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _set_group_admin(db, current_user, group_id, user_id, True, "Admin access required")


@router.post("/groups/{group_id}/members/{user_id}/demote")
async def demote_member(
    group_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _set_group_admin(db, current_user, group_id, user_id, False, "Admin access required")


@router.post("/groups/{group_id}/admins/{user_id}")
async def promote_group_admin(
    group_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _set_group_admin(
        db, current_user, group_id, user_id, True, "You must be a site admin or group admin to promote users"
    )


@router.delete("/groups/{group_id}/admins/{user_id}")
async def demote_group_admin(
    group_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return await _set_group_admin(
        db, current_user, group_id, user_id, False, "You must be a site admin or group admin to demote users"
    )
