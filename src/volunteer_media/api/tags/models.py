from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from volunteer_media.api.schemas import ORMModel, UTCDateTime
from volunteer_media.models.comment import DEFAULT_TAG_COLOR


class AnimalTagResponse(ORMModel):
    id: int
    group_id: int
    name: str
    category: str
    color: str
    created_at: UTCDateTime


class AnimalTagRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    category: Literal["behavior", "walker_status"]
    color: str = Field(min_length=1, max_length=20)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()


class CommentTagResponse(ORMModel):
    id: int
    group_id: Optional[int] = None
    name: str
    color: str = DEFAULT_TAG_COLOR
    is_system: bool = False
    created_at: UTCDateTime


class CommentTagRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(default=DEFAULT_TAG_COLOR, max_length=20)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("color")
    @classmethod
    def default_color(cls, value: str) -> str:
        return value.strip() or DEFAULT_TAG_COLOR
