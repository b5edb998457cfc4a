from typing import Optional

from pydantic import BaseModel, Field, field_validator

from volunteer_media.api.schemas import ORMModel, UTCDateTime


class ProtocolResponse(ORMModel):
    id: int
    group_id: int
    title: str
    content: str
    image_url: str = ""
    order_index: int = 0
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None


class ProtocolRequest(BaseModel):
    title: str = Field(min_length=2, max_length=200)
    content: str = Field(min_length=10, max_length=1000)
    image_url: str = Field(default="", max_length=500)
    order_index: int = 0

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        return value.strip()
