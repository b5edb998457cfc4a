"""
Shared request dependencies: the current user and group access checks.

Access rules used throughout the API:

- site admins may do everything;
- group admins manage their own groups;
- members may read their groups and post comments.
"""

import logging
from typing import Optional, Tuple

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from volunteer_media.api.auth.jwt_handler import InvalidTokenError, jwt_handler
from volunteer_media.db import get_db_session
from volunteer_media.models import Group, User, UserGroup

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def load_user(db: AsyncSession, user_id: int, include_deleted: bool = False) -> Optional[User]:
    """Fetch a user with groups and memberships eagerly loaded.

    Always re-reads the row so callers see memberships changed earlier in
    the same session.
    """
    query = (
        select(User)
        .options(selectinload(User.groups), selectinload(User.memberships))
        .where(User.id == user_id)
        .execution_options(populate_existing=True)
    )
    if not include_deleted:
        query = query.where(User.deleted_at.is_(None))
    return await db.scalar(query)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    if not request.headers.get("Authorization"):
        raise _unauthorized("Authorization header required")
    if credentials is None:
        raise _unauthorized("Invalid authorization format")

    try:
        payload = jwt_handler.verify_token(credentials.credentials)
    except InvalidTokenError:
        raise _unauthorized("Invalid or expired token")

    user = await load_user(db, payload["user_id"])
    if user is None:
        raise _unauthorized("Invalid or expired token")

    request.state.user_id = user.id
    return user


async def require_admin(request: Request, user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        logger.warning(f"Denied admin access for user {user.id} on {request.url.path}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def paginate(limit: int, offset: int, default: int = DEFAULT_PAGE_LIMIT) -> Tuple[int, int]:
    """Clamp limit/offset query values into the supported range."""
    if limit is None or limit < 1:
        limit = default
    limit = min(limit, MAX_PAGE_LIMIT)
    offset = max(offset or 0, 0)
    return limit, offset


def page_envelope(data, total: int, limit: int, offset: int, key: str = "data") -> dict:
    return {
        key: data,
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + len(data) < total,
    }


async def get_membership(db: AsyncSession, user_id: int, group_id: int) -> Optional[UserGroup]:
    return await db.scalar(
        select(UserGroup).where(UserGroup.user_id == user_id, UserGroup.group_id == group_id)
    )


async def is_group_member(db: AsyncSession, user: User, group_id: int) -> bool:
    return await get_membership(db, user.id, group_id) is not None


async def is_group_admin(db: AsyncSession, user: User, group_id: int) -> bool:
    """Site admins count as admins of every group."""
    if user.is_admin:
        return True
    membership = await get_membership(db, user.id, group_id)
    return bool(membership and membership.is_group_admin)


async def administered_group_ids(db: AsyncSession, user: User) -> list:
    result = await db.execute(
        select(UserGroup.group_id).where(UserGroup.user_id == user.id, UserGroup.is_group_admin.is_(True))
    )
    return list(result.scalars().all())


async def get_group_or_404(db: AsyncSession, group_id: int) -> Group:
    group = await db.scalar(select(Group).where(Group.id == group_id, Group.deleted_at.is_(None)))
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return group


async def require_group_access(db: AsyncSession, user: User, group_id: int) -> Group:
    """Return the group when ``user`` is a member or site admin, else 403."""
    group = await get_group_or_404(db, group_id)
    if not user.is_admin and not await is_group_member(db, user, group_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return group


async def require_group_admin(
    db: AsyncSession, user: User, group_id: int, message: str = "Admin access required"
) -> Group:
    group = await get_group_or_404(db, group_id)
    if not await is_group_admin(db, user, group_id):
        logger.warning(f"Denied group admin access for user {user.id} on group {group_id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)
    return group


async def group_member(
    group_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Group:
    """Path dependency for routes under ``/groups/{group_id}``."""
    return await require_group_access(db, user, group_id)
