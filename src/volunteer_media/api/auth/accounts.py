"""
Account lifecycle helpers: lockout bookkeeping and one-time tokens.

Reset and setup tokens are random hex strings. Only a bcrypt hash is
stored, alongside the first 16 characters in plaintext so a token can be
matched to its row with an indexed lookup before the hash is checked.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from volunteer_media.api.auth.jwt_handler import jwt_handler
from volunteer_media.models import User
from volunteer_media.models.base import ensure_utc

MAX_FAILED_LOGIN_ATTEMPTS = 5
ACCOUNT_LOCKOUT_DURATION = timedelta(minutes=30)
PASSWORD_RESET_TOKEN_EXPIRY = timedelta(hours=1)
SETUP_TOKEN_EXPIRY = timedelta(days=7)


def clear_lockout(user: User):
    user.failed_login_attempts = 0
    user.locked_until = None


def record_failed_login(user: User, now: datetime) -> bool:
    """Count a failed password; return True when this attempt locks the account."""
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts >= MAX_FAILED_LOGIN_ATTEMPTS:
        user.locked_until = now + ACCOUNT_LOCKOUT_DURATION
        return True
    return False


def issue_reset_token(user: User, now: datetime) -> str:
    token = jwt_handler.generate_token()
    user.reset_token = jwt_handler.hash_password(token)
    user.reset_token_lookup = jwt_handler.token_lookup(token)
    user.reset_token_expiry = now + PASSWORD_RESET_TOKEN_EXPIRY
    return token


def issue_setup_token(user: User, now: datetime) -> str:
    token = jwt_handler.generate_token()
    user.setup_token = jwt_handler.hash_password(token)
    user.setup_token_lookup = jwt_handler.token_lookup(token)
    user.setup_token_expiry = now + SETUP_TOKEN_EXPIRY
    user.requires_password_setup = True
    return token


def clear_reset_token(user: User):
    user.reset_token = ""
    user.reset_token_lookup = ""
    user.reset_token_expiry = None


def clear_setup_token(user: User):
    user.setup_token = ""
    user.setup_token_lookup = ""
    user.setup_token_expiry = None


async def find_user_by_reset_token(db: AsyncSession, token: str) -> Optional[User]:
    candidates = await db.execute(
        select(User).where(
            User.deleted_at.is_(None),
            User.reset_token_lookup == jwt_handler.token_lookup(token),
            User.reset_token != "",
        )
    )
    for user in candidates.scalars().all():
        if jwt_handler.verify_password(token, user.reset_token):
            return user
    return None


async def find_user_by_setup_token(db: AsyncSession, token: str) -> Optional[User]:
    candidates = await db.execute(
        select(User).where(
            User.deleted_at.is_(None),
            User.setup_token_lookup == jwt_handler.token_lookup(token),
            User.setup_token != "",
        )
    )
    for user in candidates.scalars().all():
        if jwt_handler.verify_password(token, user.setup_token):
            return user
    return None


def token_expired(expiry: Optional[datetime], now: datetime) -> bool:
    expiry = ensure_utc(expiry)
    return expiry is None or expiry < now
