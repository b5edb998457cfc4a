from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from volunteer_media.api.schemas import ORMModel, UTCDateTime
from volunteer_media.api.tags.models import AnimalTagResponse

AnimalStatus = Literal["available", "foster", "bite_quarantine", "archived"]


def _blank_is_none(value):
    # The frontend sends "" for cleared date inputs
    if isinstance(value, str) and not value.strip():
        return None
    return value


class AnimalResponse(ORMModel):
    id: int
    group_id: int
    name: str
    species: str = ""
    breed: str = ""
    age: int = 0
    estimated_birth_date: Optional[UTCDateTime] = None
    description: str = ""
    trainer_notes: str = ""
    image_url: str = ""
    status: str
    arrival_date: Optional[UTCDateTime] = None
    foster_start_date: Optional[UTCDateTime] = None
    quarantine_start_date: Optional[UTCDateTime] = None
    archived_date: Optional[UTCDateTime] = None
    last_status_change: Optional[UTCDateTime] = None
    return_count: int = 0
    is_returned: bool = False
    protocol_document_url: str = ""
    protocol_document_name: str = ""
    protocol_document_type: str = ""
    protocol_document_size: int = 0
    length_of_stay: int = 0
    current_status_duration: int = 0
    quarantine_end_date: Optional[UTCDateTime] = None
    tags: List[AnimalTagResponse] = []
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None


class AnimalSummary(ORMModel):
    """Animal reference embedded in comment feeds."""
    id: int
    group_id: int
    name: str
    species: str = ""
    status: str
    image_url: str = ""


class AnimalRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    species: str = Field(default="", max_length=100)
    breed: str = Field(default="", max_length=255)
    age: int = Field(default=0, ge=0)
    estimated_birth_date: Optional[datetime] = None
    description: str = ""
    trainer_notes: str = ""
    image_url: str = Field(default="", max_length=500)
    status: Optional[AnimalStatus] = None
    quarantine_start_date: Optional[datetime] = None
    is_returned: bool = False

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        return value.strip()

    @field_validator("estimated_birth_date", "quarantine_start_date", "status", mode="before")
    @classmethod
    def blank_is_none(cls, value):
        return _blank_is_none(value)


class AdminAnimalUpdate(BaseModel):
    """Partial update: only non-empty fields are applied."""
    name: str = Field(default="", max_length=255)
    species: str = ""
    breed: str = ""
    age: int = 0
    description: str = ""
    image_url: str = ""
    status: Optional[AnimalStatus] = None
    group_id: int = 0
    quarantine_start_date: Optional[datetime] = None

    @field_validator("quarantine_start_date", "status", mode="before")
    @classmethod
    def blank_is_none(cls, value):
        return _blank_is_none(value)


class BulkUpdateAnimalsRequest(BaseModel):
    animal_ids: List[int]
    group_id: Optional[int] = None
    status: Optional[AnimalStatus] = None


class AssignTagsRequest(BaseModel):
    tag_ids: List[int]


class DuplicateNameInfo(BaseModel):
    name: str
    count: int
    animals: List[AnimalResponse]
    has_duplicates: bool
