from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from volunteer_media.api.groups.models import GroupResponse
from volunteer_media.api.schemas import ORMModel, USERNAME_PATTERN, UTCDateTime


class UserSummary(ORMModel):
    """Author block embedded in comments, updates and announcements."""
    id: int
    username: str
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False


class UserResponse(ORMModel):
    id: int
    username: str
    first_name: str = ""
    last_name: str = ""
    email: str
    phone_number: str = ""
    hide_email: bool = False
    hide_phone_number: bool = False
    is_admin: bool = False
    default_group_id: Optional[int] = None
    email_notifications_enabled: bool = False
    show_length_of_stay: bool = False
    requires_password_setup: bool = False
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None
    groups: List[GroupResponse] = []


class CurrentUserResponse(UserResponse):
    is_group_admin: bool = False
    last_login: Optional[UTCDateTime] = None


class AdminUserResponse(UserResponse):
    """Adds the lockout bookkeeping that only administrators see."""
    failed_login_attempts: int = 0
    locked_until: Optional[UTCDateTime] = None
    last_login: Optional[UTCDateTime] = None
    deleted_at: Optional[UTCDateTime] = None


class CreateUserRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: EmailStr
    password: Optional[str] = Field(default=None, min_length=8, max_length=72)
    send_setup_email: bool = False
    is_admin: bool = False
    group_ids: List[int] = []

    @field_validator("username", mode="before")
    @classmethod
    def normalize_username(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("password", mode="before")
    @classmethod
    def blank_password_is_none(cls, value):
        return value or None


class GroupAdminCreateUserRequest(CreateUserRequest):
    group_ids: List[int] = Field(min_length=1)


class UpdateUserRequest(BaseModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: EmailStr
    phone_number: str = Field(default="", max_length=20)


class ResetUserPasswordRequest(BaseModel):
    current_password: str = ""
    new_password: str = Field(min_length=8, max_length=72)


class GroupActivityInfo(BaseModel):
    group_id: int
    group_name: str
    comment_count: int


class UserProfileStatistics(BaseModel):
    total_comments: int = 0
    total_announcements: int = 0
    animals_interacted: int = 0
    most_active_group: Optional[GroupActivityInfo] = None
    last_active_date: Optional[UTCDateTime] = None


class UserCommentActivity(BaseModel):
    id: int
    animal_id: int
    animal_name: str
    group_id: int
    group_name: str
    content: str
    image_url: str = ""
    created_at: UTCDateTime


class UserAnnouncementActivity(BaseModel):
    id: int
    group_id: int = 0
    group_name: str = "Site-wide"
    title: str
    content: str
    created_at: UTCDateTime


class AnimalInteraction(BaseModel):
    animal_id: int
    animal_name: str
    group_id: int
    group_name: str
    image_url: str = ""
    comment_count: int
    last_comment_at: Optional[UTCDateTime] = None


class UserProfileResponse(BaseModel):
    id: int
    username: str
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone_number: Optional[str] = None
    is_admin: bool = False
    created_at: UTCDateTime
    default_group_id: Optional[int] = None
    groups: List[GroupResponse] = []
    statistics: Optional[UserProfileStatistics] = None
    recent_comments: Optional[List[UserCommentActivity]] = None
    recent_announcements: Optional[List[UserAnnouncementActivity]] = None
    animals_interacted_with: Optional[List[AnimalInteraction]] = None
