from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from volunteer_media.api.schemas import UTCDateTime
from volunteer_media.api.users.models import UserResponse


class UserLogin(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class Token(BaseModel):
    token: str
    user: UserResponse
    last_login: Optional[UTCDateTime] = None


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordTokenRequest(BaseModel):
    """Body shared by the reset and first-time setup flows."""
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=72)


class UpdateProfileRequest(BaseModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: EmailStr
    phone_number: str = Field(default="", max_length=20)
    hide_email: bool = False
    hide_phone_number: bool = False


class EmailPreferences(BaseModel):
    email_notifications_enabled: bool = False
    show_length_of_stay: bool = False


class DefaultGroupRequest(BaseModel):
    group_id: int


class EnvironmentResponse(BaseModel):
    environment: str
    is_development: bool
    developer_tools: bool

