import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from volunteer_media.api.schemas import ORMModel, UTCDateTime

GROUPME_BOT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{26}$")


def is_valid_groupme_bot_id(bot_id: str) -> bool:
    """Empty means "not configured"; anything else must be 26 hex characters."""
    return not bot_id or bool(GROUPME_BOT_ID_PATTERN.match(bot_id))


class GroupResponse(ORMModel):
    id: int
    name: str
    description: str = ""
    image_url: str = ""
    hero_image_url: str = ""
    has_protocols: bool = False
    groupme_bot_id: str = ""
    groupme_enabled: bool = False
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None


class GroupRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: str = Field(default="", max_length=500)
    image_url: str = ""
    hero_image_url: str = ""
    has_protocols: bool = False
    groupme_bot_id: str = ""
    groupme_enabled: bool = False

    @field_validator("name", "groupme_bot_id")
    @classmethod
    def strip(cls, value: str) -> str:
        return value.strip()


class MembershipResponse(BaseModel):
    user_id: int
    group_id: int
    is_member: bool
    is_group_admin: bool
    is_site_admin: bool


class MemberResponse(BaseModel):
    user_id: int
    username: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_number: str = ""
    is_group_admin: bool
    is_site_admin: bool


class UploadResponse(BaseModel):
    url: str
