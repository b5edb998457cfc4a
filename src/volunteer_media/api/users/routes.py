import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from volunteer_media.api.auth.accounts import clear_lockout, clear_reset_token, issue_setup_token
from volunteer_media.api.auth.jwt_handler import jwt_handler
from volunteer_media.api.background import deliver
from volunteer_media.api.deps import (
    DEFAULT_PAGE_LIMIT,
    administered_group_ids,
    get_current_user,
    get_group_or_404,
    get_membership,
    is_group_admin,
    load_user,
    page_envelope,
    paginate,
    require_admin,
)
from volunteer_media.api.groups.models import GroupResponse
from volunteer_media.api.users.models import (
    AdminUserResponse,
    AnimalInteraction,
    CreateUserRequest,
    GroupActivityInfo,
    GroupAdminCreateUserRequest,
    ResetUserPasswordRequest,
    UpdateUserRequest,
    UserAnnouncementActivity,
    UserCommentActivity,
    UserProfileResponse,
    UserProfileStatistics,
    UserResponse,
)
from volunteer_media.db import get_db_session
from volunteer_media.models import Animal, AnimalComment, Announcement, Group, User, UserGroup
from volunteer_media.models.base import utcnow
from volunteer_media.notifications import EmailService, get_email_service

logger = logging.getLogger(__name__)

router = APIRouter()

SETUP_EMAIL_WARNING = (
    "User created successfully, but the setup email could not be sent. "
    "You can use the 'Resend Invitation' action on the user's profile to send a new setup email, "
    "or manually provide them with a temporary password."
)


async def _get_user_or_404(db: AsyncSession, user_id: int, include_deleted: bool = False) -> User:
    user = await load_user(db, user_id, include_deleted=include_deleted)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def is_target_user_admin(db: AsyncSession, user: User) -> bool:
    """Site admins and admins of any group are off limits to group admins."""
    if user.is_admin:
        return True
    count = await db.scalar(
        select(func.count()).select_from(UserGroup).where(
            UserGroup.user_id == user.id, UserGroup.is_group_admin.is_(True)
        )
    )
    return count > 0


async def administers_any_group_of(db: AsyncSession, actor: User, target: User) -> bool:
    administered = set(await administered_group_ids(db, actor))
    return any(group.id in administered for group in target.groups)


async def require_volunteer_manager(
    db: AsyncSession, actor: User, target: User, admin_target_message: str, denied_message: str
):
    """Group admins may only act on regular volunteers who share one of their groups."""
    if actor.is_admin:
        return
    if await is_target_user_admin(db, target):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=admin_target_message)
    if not await administers_any_group_of(db, actor, target):
        logger.warning(f"User {actor.id} denied management of user {target.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=denied_message)


async def _ensure_unique_identity(db: AsyncSession, username: str, email: str):
    existing = await db.scalar(
        select(User.id).where(or_(User.username == username, func.lower(User.email) == email.lower()))
    )
    if existing is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username or email already exists")


async def _ensure_email_available(db: AsyncSession, email: str, user: User):
    if email.lower() == user.email.lower():
        return
    taken = await db.scalar(select(User.id).where(func.lower(User.email) == email.lower(), User.id != user.id))
    if taken is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="email address is already in use")


async def create_account(
    db: AsyncSession,
    body: CreateUserRequest,
    is_admin: bool,
    email_service: EmailService,
    created_by: User,
):
    """
    Create a user either with a password or with a pending invitation.

    Returns the response payload. With an invitation the setup email is sent
    before responding, so the caller learns whether it went out.
    """
    if not body.password and not body.send_setup_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either password must be provided or send_setup_email must be true",
        )

    await _ensure_unique_identity(db, body.username, body.email)

    setup_token = None
    if body.password:
        password_hash = jwt_handler.hash_password(body.password)
    else:
        if not email_service.is_configured():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email service is not configured. Please provide a password instead.",
            )
        # Unusable until the invite is accepted
        password_hash = jwt_handler.hash_password(jwt_handler.generate_token())

    user = User(
        username=body.username,
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
        email=body.email,
        password=password_hash,
        is_admin=is_admin,
    )
    if not body.password:
        setup_token = issue_setup_token(user, utcnow())
    db.add(user)
    await db.flush()

    if body.group_ids:
        result = await db.execute(
            select(Group.id).where(Group.id.in_(body.group_ids), Group.deleted_at.is_(None))
        )
        for group_id in result.scalars().all():
            db.add(UserGroup(user_id=user.id, group_id=group_id))

    await db.commit()
    user = await load_user(db, user.id)
    logger.info(f"User {user.id} ({user.username}) created by user {created_by.id}")

    if setup_token is None:
        return UserResponse.model_validate(user)

    sent = await deliver(
        "password setup email", email_service.send_password_setup_email, user.email, user.username, setup_token
    )
    response = {"user": UserResponse.model_validate(user)}
    if sent:
        response["message"] = f"User created successfully. Password setup email sent to {user.email}"
    else:
        response["warning"] = SETUP_EMAIL_WARNING
    return response


async def _apply_user_update(db: AsyncSession, user: User, body: UpdateUserRequest) -> UserResponse:
    await _ensure_email_available(db, body.email, user)
    user.first_name = body.first_name.strip()
    user.last_name = body.last_name.strip()
    user.phone_number = body.phone_number.strip()
    user.email = body.email
    await db.commit()
    return UserResponse.model_validate(await load_user(db, user.id))


# Site administration


@router.get("/admin/users")
async def list_users(
    limit: int = Query(DEFAULT_PAGE_LIMIT),
    offset: int = Query(0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    limit, offset = paginate(limit, offset)
    total = await db.scalar(select(func.count()).select_from(User).where(User.deleted_at.is_(None)))
    result = await db.execute(
        select(User)
        .options(selectinload(User.groups))
        .where(User.deleted_at.is_(None))
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(limit)
        .offset(offset)
    )
    users = [AdminUserResponse.model_validate(u) for u in result.scalars().all()]
    return page_envelope(users, total, limit, offset)


@router.post("/admin/users", status_code=status.HTTP_201_CREATED)
async def admin_create_user(
    body: CreateUserRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service),
):
    return await create_account(db, body, body.is_admin, email_service, admin)


@router.get("/admin/users/deleted", response_model=List[AdminUserResponse])
async def list_deleted_users(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    result = await db.execute(
        select(User)
        .options(selectinload(User.groups))
        .where(User.deleted_at.is_not(None))
        .order_by(User.deleted_at.desc())
    )
    return result.scalars().all()


@router.put("/admin/users/{user_id}", response_model=UserResponse)
async def admin_update_user(
    user_id: int,
    body: UpdateUserRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    user = await _get_user_or_404(db, user_id)
    return await _apply_user_update(db, user, body)


@router.delete("/admin/users/{user_id}")
async def admin_delete_user(user_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    user = await _get_user_or_404(db, user_id)
    user.deleted_at = utcnow()
    await db.commit()
    logger.info(f"User {user_id} deleted by admin {admin.id}")
    return {"message": "User deleted"}


@router.post("/admin/users/{user_id}/restore")
async def restore_user(user_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    user = await _get_user_or_404(db, user_id, include_deleted=True)
    if user.deleted_at is not None:
        user.deleted_at = None
        await db.commit()
        logger.info(f"User {user_id} restored by admin {admin.id}")
    return {"message": "User restored"}


@router.post("/admin/users/{user_id}/promote")
async def promote_user(user_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    user = await _get_user_or_404(db, user_id)
    if user.is_admin:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is already admin")
    user.is_admin = True
    await db.commit()
    logger.info(f"User {user_id} promoted to site admin by {admin.id}")
    return {"message": "User promoted to admin"}


@router.post("/admin/users/{user_id}/demote")
async def demote_user(user_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)):
    user = await _get_user_or_404(db, user_id)
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is not admin")
    user.is_admin = False
    await db.commit()
    logger.info(f"User {user_id} demoted from site admin by {admin.id}")
    return {"message": "User demoted from admin"}


@router.post("/admin/users/{user_id}/groups/{group_id}")
async def add_user_to_group(
    user_id: int, group_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)
):
    await _get_user_or_404(db, user_id)
    await get_group_or_404(db, group_id)
    if await get_membership(db, user_id, group_id) is None:
        db.add(UserGroup(user_id=user_id, group_id=group_id))
        await db.commit()
    return {"message": "User added to group successfully"}


@router.delete("/admin/users/{user_id}/groups/{group_id}")
async def remove_user_from_group(
    user_id: int, group_id: int, admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db_session)
):
    await _get_user_or_404(db, user_id)
    await get_group_or_404(db, group_id)
    membership = await get_membership(db, user_id, group_id)
    if membership is not None:
        await db.delete(membership)
        await db.commit()
    return {"message": "User removed from group successfully"}


# Group admin or site admin


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def group_admin_create_user(
    body: GroupAdminCreateUserRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service),
):
    if not body.password and not body.send_setup_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either password must be provided or send_setup_email must be true",
        )
    if not current_user.is_admin:
        for group_id in body.group_ids:
            if not await is_group_admin(db, current_user, group_id):
                logger.warning(f"User {current_user.id} tried to create a user for group {group_id}")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="You can only create users for groups you administer",
                )
    # Site admin accounts are only created from the admin area
    return await create_account(db, body, False, email_service, current_user)


@router.put("/users/{user_id}", response_model=UserResponse)
async def group_admin_update_user(
    user_id: int,
    body: UpdateUserRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    user = await _get_user_or_404(db, user_id)
    if not current_user.is_admin and not user.groups:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot update users with no group assignments. Please contact a site administrator.",
        )
    await require_volunteer_manager(
        db,
        current_user,
        user,
        "Group admins can only update regular volunteers",
        "You must be a site admin or group admin to update user information",
    )
    return await _apply_user_update(db, user, body)


@router.post("/users/{user_id}/reset-password")
async def reset_user_password(
    user_id: int,
    body: ResetUserPasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    user = await _get_user_or_404(db, user_id)

    if user.id == current_user.id:
        if not body.current_password:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is required")
        if not jwt_handler.verify_password(body.current_password, user.password):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect")
    else:
        await require_volunteer_manager(
            db,
            current_user,
            user,
            "Group admins can only reset passwords for regular volunteers",
            "You must be a site admin or group admin to reset passwords",
        )

    user.password = jwt_handler.hash_password(body.new_password)
    clear_reset_token(user)
    clear_lockout(user)
    await db.commit()

    logger.info(f"Password for user {user.id} reset by user {current_user.id}")
    return {"message": "Password reset successfully"}


@router.post("/users/{user_id}/resend-invitation")
async def resend_invitation(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service),
):
    user = await _get_user_or_404(db, user_id)
    if not user.requires_password_setup:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User has already completed account setup")
    await require_volunteer_manager(
        db,
        current_user,
        user,
        "Group admins can only manage regular volunteers",
        "You must be a site admin or group admin to resend invitations",
    )
    if not email_service.is_configured():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email service is not configured")

    token = issue_setup_token(user, utcnow())
    await db.commit()

    sent = await deliver(
        "password setup email", email_service.send_password_setup_email, user.email, user.username, token
    )
    if not sent:
        return {"warning": "A new invitation was created, but the setup email could not be sent."}
    return {"message": f"Invitation sent to {user.email}"}


@router.post("/users/{user_id}/unlock")
async def unlock_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    user = await _get_user_or_404(db, user_id, include_deleted=True)
    if user.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot unlock your own account")
    if user.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot unlock a deleted user account")
    await require_volunteer_manager(
        db,
        current_user,
        user,
        "Group admins can only unlock regular volunteers",
        "You must be a site admin or group admin to unlock accounts",
    )

    clear_lockout(user)
    await db.commit()
    logger.info(f"User {user.id} unlocked by user {current_user.id}")
    return {"message": "Account unlocked successfully"}


# Profiles


async def _is_group_admin_of_shared_group(db: AsyncSession, viewer_id: int, target_id: int) -> bool:
    viewer_membership = aliased(UserGroup)
    target_membership = aliased(UserGroup)
    shared = await db.scalar(
        select(func.count())
        .select_from(viewer_membership)
        .join(target_membership, viewer_membership.group_id == target_membership.group_id)
        .where(
            viewer_membership.user_id == viewer_id,
            target_membership.user_id == target_id,
            viewer_membership.is_group_admin.is_(True),
        )
    )
    return shared > 0


async def _profile_statistics(db: AsyncSession, user_id: int) -> UserProfileStatistics:
    live_comments = (AnimalComment.user_id == user_id, AnimalComment.deleted_at.is_(None))

    total_comments = await db.scalar(select(func.count()).select_from(AnimalComment).where(*live_comments))
    total_announcements = await db.scalar(
        select(func.count()).select_from(Announcement).where(
            Announcement.user_id == user_id, Announcement.deleted_at.is_(None)
        )
    )
    animals_interacted = await db.scalar(select(func.count(distinct(AnimalComment.animal_id))).where(*live_comments))
    last_active = await db.scalar(select(func.max(AnimalComment.created_at)).where(*live_comments))

    comment_count = func.count(AnimalComment.id).label("comment_count")
    busiest = (
        await db.execute(
            select(Group.id, Group.name, comment_count)
            .select_from(AnimalComment)
            .join(Animal, Animal.id == AnimalComment.animal_id)
            .join(Group, Group.id == Animal.group_id)
            .where(*live_comments)
            .group_by(Group.id, Group.name)
            .order_by(comment_count.desc())
            .limit(1)
        )
    ).first()

    return UserProfileStatistics(
        total_comments=total_comments,
        total_announcements=total_announcements,
        animals_interacted=animals_interacted,
        most_active_group=(
            GroupActivityInfo(group_id=busiest[0], group_name=busiest[1], comment_count=busiest[2])
            if busiest else None
        ),
        last_active_date=last_active,
    )


async def _recent_comments(db: AsyncSession, user_id: int, limit: int = 10) -> List[UserCommentActivity]:
    result = await db.execute(
        select(
            AnimalComment.id,
            Animal.id,
            Animal.name,
            Group.id,
            Group.name,
            AnimalComment.content,
            AnimalComment.image_url,
            AnimalComment.created_at,
        )
        .join(Animal, Animal.id == AnimalComment.animal_id)
        .join(Group, Group.id == Animal.group_id)
        .where(AnimalComment.user_id == user_id, AnimalComment.deleted_at.is_(None))
        .order_by(AnimalComment.created_at.desc())
        .limit(limit)
    )
    return [
        UserCommentActivity(
            id=row[0],
            animal_id=row[1],
            animal_name=row[2],
            group_id=row[3],
            group_name=row[4],
            content=row[5],
            image_url=row[6] or "",
            created_at=row[7],
        )
        for row in result.all()
    ]


async def _recent_announcements(db: AsyncSession, user_id: int, limit: int = 10) -> List[UserAnnouncementActivity]:
    result = await db.execute(
        select(Announcement)
        .where(Announcement.user_id == user_id, Announcement.deleted_at.is_(None))
        .order_by(Announcement.created_at.desc())
        .limit(limit)
    )
    return [
        UserAnnouncementActivity(id=a.id, title=a.title, content=a.content, created_at=a.created_at)
        for a in result.scalars().all()
    ]


async def _animal_interactions(db: AsyncSession, user_id: int, limit: int = 20) -> List[AnimalInteraction]:
    comment_count = func.count(AnimalComment.id).label("comment_count")
    last_comment_at = func.max(AnimalComment.created_at).label("last_comment_at")
    result = await db.execute(
        select(Animal.id, Animal.name, Group.id, Group.name, Animal.image_url, comment_count, last_comment_at)
        .select_from(AnimalComment)
        .join(Animal, Animal.id == AnimalComment.animal_id)
        .join(Group, Group.id == Animal.group_id)
        .where(AnimalComment.user_id == user_id, AnimalComment.deleted_at.is_(None))
        .group_by(Animal.id, Animal.name, Group.id, Group.name, Animal.image_url)
        .order_by(comment_count.desc(), last_comment_at.desc())
        .limit(limit)
    )
    return [
        AnimalInteraction(
            animal_id=row[0],
            animal_name=row[1],
            group_id=row[2],
            group_name=row[3],
            image_url=row[4] or "",
            comment_count=row[5],
            last_comment_at=row[6],
        )
        for row in result.all()
    ]


@router.get("/users/{user_id}/profile")
async def get_user_profile(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Profile of any user, trimmed to what the viewer may see.

    Own profile and site admins get statistics and activity. Group admins
    who share a group with the user see contact details. Everyone else sees
    contact details only where the user has not hidden them.
    """
    is_own_profile = current_user.id == user_id
    is_site_admin = current_user.is_admin
    shared_group_admin = False
    if not is_own_profile and not is_site_admin:
        shared_group_admin = await _is_group_admin_of_shared_group(db, current_user.id, user_id)

    user = await _get_user_or_404(db, user_id)
    groups = [GroupResponse.model_validate(g) for g in user.groups]

    profile = UserProfileResponse(
        id=user.id,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        created_at=user.created_at,
        groups=groups,
    )

    if not is_own_profile and not is_site_admin:
        if shared_group_admin or not user.hide_email:
            profile.email = user.email
        if shared_group_admin or not user.hide_phone_number:
            profile.phone_number = user.phone_number
        return profile.model_dump(mode="json", exclude_none=True)

    profile.email = user.email
    profile.phone_number = user.phone_number
    profile.is_admin = user.is_admin
    profile.default_group_id = user.default_group_id
    profile.statistics = await _profile_statistics(db, user.id)
    profile.recent_comments = await _recent_comments(db, user.id)
    profile.recent_announcements = await _recent_announcements(db, user.id) if user.is_admin else []
    profile.animals_interacted_with = await _animal_interactions(db, user.id)
    return profile
