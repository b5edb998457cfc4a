"""Pydantic building blocks shared by every API area."""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict

from volunteer_media.models.base import ensure_utc

# SQLite hands back naive datetimes; responses are always UTC-aware
UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]

USERNAME_PATTERN = r"^[A-Za-z0-9_.\-]+$"


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    message: str


class Timestamped(ORMModel):
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None
