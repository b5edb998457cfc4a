import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from volunteer_media.api.auth.accounts import (
    MAX_FAILED_LOGIN_ATTEMPTS,
    ACCOUNT_LOCKOUT_DURATION,
    clear_lockout,
    clear_reset_token,
    clear_setup_token,
    find_user_by_reset_token,
    find_user_by_setup_token,
    issue_reset_token,
    record_failed_login,
    token_expired,
)
from volunteer_media.api.auth.jwt_handler import jwt_handler
from volunteer_media.api.auth.models import (
    DefaultGroupRequest,
    EmailPreferences,
    EnvironmentResponse,
    PasswordResetRequest,
    PasswordTokenRequest,
    Token,
    UpdateProfileRequest,
    UserLogin,
)
from volunteer_media.api.background import deliver
from volunteer_media.api.deps import get_current_user, get_group_or_404, is_group_member
from volunteer_media.api.groups.models import GroupResponse
from volunteer_media.api.users.models import CurrentUserResponse, UserResponse
from volunteer_media.config import config
from volunteer_media.db import get_db_session
from volunteer_media.models import Group, User
from volunteer_media.models.base import ensure_utc, utcnow
from volunteer_media.notifications import EmailService, get_email_service

logger = logging.getLogger(__name__)

router = APIRouter()

RESET_REQUEST_MESSAGE = "If the email exists, a password reset link will be sent"


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/login", response_model=Token)
async def login(user_data: UserLogin, request: Request, db: AsyncSession = Depends(get_db_session)):
    """Authenticate a volunteer and return a JWT"""
    username = user_data.username.strip().lower()
    user = await db.scalar(
        select(User)
        .options(selectinload(User.groups))
        .where(func.lower(User.username) == username, User.deleted_at.is_(None))
    )
    if user is None:
        logger.warning(f"Failed login for unknown user {username!r} from {_client_ip(request)}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    now = utcnow()
    if user.is_locked(now):
        remaining = ensure_utc(user.locked_until) - now
        logger.warning(f"Login attempt on locked account {user.username!r} from {_client_ip(request)}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "Account is temporarily locked due to too many failed login attempts",
                "locked_until": ensure_utc(user.locked_until).isoformat(),
                "retry_in_mins": int(remaining.total_seconds() // 60) + 1,
            },
        )

    if user.requires_password_setup:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account requires password setup. Please check your email for the setup link "
                   "or contact your administrator.",
        )

    if user.locked_until is not None:
        # Lock period is over
        clear_lockout(user)

    if not jwt_handler.verify_password(user_data.password, user.password):
        locked = record_failed_login(user, now)
        await db.commit()
        if locked:
            logger.warning(
                f"Account {user.username!r} locked after {user.failed_login_attempts} failed logins "
                f"from {_client_ip(request)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "Account has been locked due to too many failed login attempts. "
                             "Please try again in 30 minutes.",
                    "locked_until": ensure_utc(user.locked_until).isoformat(),
                    "retry_in_mins": int(ACCOUNT_LOCKOUT_DURATION.total_seconds() // 60),
                },
            )
        logger.warning(f"Failed login for {user.username!r} from {_client_ip(request)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Invalid credentials",
                "attempts_remaining": MAX_FAILED_LOGIN_ATTEMPTS - user.failed_login_attempts,
            },
        )

    clear_lockout(user)
    user.last_login = now
    await db.commit()

    logger.info(f"User {user.username!r} logged in")
    token = jwt_handler.create_access_token(user.id, user.is_admin)
    return Token(token=token, user=UserResponse.model_validate(user), last_login=now)


@router.post("/request-password-reset")
async def request_password_reset(
    body: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    email_service: EmailService = Depends(get_email_service),
):
    if not email_service.is_configured():
        logger.warning("Password reset requested but email service is not configured")
        return {"message": RESET_REQUEST_MESSAGE}

    user = await db.scalar(
        select(User).where(func.lower(User.email) == body.email.lower(), User.deleted_at.is_(None))
    )
    if user is None:
        return {"message": RESET_REQUEST_MESSAGE}

    token = issue_reset_token(user, utcnow())
    await db.commit()

    background_tasks.add_task(
        deliver, "password reset email", email_service.send_password_reset_email, user.email, user.username, token
    )
    logger.info(f"Password reset requested for user {user.id}")
    return {"message": RESET_REQUEST_MESSAGE}


@router.post("/reset-password")
async def reset_password(body: PasswordTokenRequest, db: AsyncSession = Depends(get_db_session)):
    user = await find_user_by_reset_token(db, body.token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")
    if token_expired(user.reset_token_expiry, utcnow()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Reset token has expired. Please request a new one."
        )

    user.password = jwt_handler.hash_password(body.new_password)
    clear_reset_token(user)
    clear_lockout(user)
    await db.commit()

    logger.info(f"Password reset completed for user {user.id}")
    return {"message": "Password has been reset successfully"}


@router.post("/setup-password")
async def setup_password(body: PasswordTokenRequest, db: AsyncSession = Depends(get_db_session)):
    user = await find_user_by_setup_token(db, body.token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired setup token. Please contact your administrator for a new invitation.",
        )
    if token_expired(user.setup_token_expiry, utcnow()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Setup token has expired. Please contact your administrator for a new invitation.",
        )
    if not user.requires_password_setup:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This account has already been set up. Please use the password reset flow instead.",
        )

    user.password = jwt_handler.hash_password(body.new_password)
    user.requires_password_setup = False
    clear_setup_token(user)
    clear_lockout(user)
    await db.commit()

    logger.info(f"Initial password set for user {user.id}")
    return {"message": "Password has been set successfully! You can now log in."}


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    response = CurrentUserResponse.model_validate(current_user)
    response.is_group_admin = any(m.is_group_admin for m in current_user.memberships)
    return response


@router.put("/me/profile")
async def update_my_profile(
    body: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    if body.email.lower() != current_user.email.lower():
        taken = await db.scalar(
            select(User.id).where(func.lower(User.email) == body.email.lower(), User.id != current_user.id)
        )
        if taken is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="email address is already in use")

    current_user.first_name = body.first_name.strip()
    current_user.last_name = body.last_name.strip()
    current_user.email = body.email
    current_user.phone_number = body.phone_number.strip()
    current_user.hide_email = body.hide_email
    current_user.hide_phone_number = body.hide_phone_number
    await db.commit()

    return {
        "message": "Profile updated successfully",
        "id": current_user.id,
        "first_name": current_user.first_name,
        "last_name": current_user.last_name,
        "email": current_user.email,
        "phone_number": current_user.phone_number,
        "hide_email": current_user.hide_email,
        "hide_phone_number": current_user.hide_phone_number,
    }


@router.get("/email-preferences", response_model=EmailPreferences)
async def get_email_preferences(current_user: User = Depends(get_current_user)):
    return EmailPreferences(
        email_notifications_enabled=current_user.email_notifications_enabled,
        show_length_of_stay=current_user.show_length_of_stay,
    )


@router.put("/email-preferences")
async def update_email_preferences(
    body: EmailPreferences,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    current_user.email_notifications_enabled = body.email_notifications_enabled
    current_user.show_length_of_stay = body.show_length_of_stay
    await db.commit()
    return {"message": "Preferences updated successfully", **body.model_dump()}


@router.get("/default-group")
async def get_default_group(current_user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    if current_user.default_group_id is None:
        return {"default_group_id": None}
    group = await db.scalar(
        select(Group).where(Group.id == current_user.default_group_id, Group.deleted_at.is_(None))
    )
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Default group not found")
    return GroupResponse.model_validate(group)


@router.put("/default-group")
async def set_default_group(
    body: DefaultGroupRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    if not current_user.is_admin and not await is_group_member(db, current_user, body.group_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this group")
    await get_group_or_404(db, body.group_id)

    current_user.default_group_id = body.group_id
    await db.commit()
    return {"message": "Default group updated successfully", "default_group_id": body.group_id}


@router.get("/environment", response_model=EnvironmentResponse)
async def get_environment(current_user: User = Depends(get_current_user)):
    return EnvironmentResponse(
        environment=config.environment,
        is_development=config.is_development,
        developer_tools=config.is_development,
    )

