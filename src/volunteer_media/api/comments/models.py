import html
from typing import List, Optional

from pydantic import BaseModel, Field

from volunteer_media.api.animals.models import AnimalSummary
from volunteer_media.api.schemas import ORMModel, UTCDateTime
from volunteer_media.api.tags.models import CommentTagResponse
from volunteer_media.api.users.models import UserSummary

TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

ESCAPED_METADATA_FIELDS = ("session_goal", "session_outcome", "behavior_notes", "medical_notes", "other_notes")


class SessionMetadata(BaseModel):
    """Structured notes that turn a comment into a session note."""
    session_goal: str = Field(default="", max_length=200)
    session_outcome: str = Field(default="", max_length=2000)
    behavior_notes: str = Field(default="", max_length=1000)
    medical_notes: str = Field(default="", max_length=1000)
    # 0 means "not rated"
    session_rating: int = Field(default=0, ge=0, le=5)
    other_notes: str = Field(default="", max_length=1000)
    session_start_time: Optional[str] = Field(default=None, pattern=TIME_OF_DAY_PATTERN)
    session_end_time: Optional[str] = Field(default=None, pattern=TIME_OF_DAY_PATTERN)

    def sanitized(self) -> dict:
        """Stored form: free text HTML-escaped, unset times dropped."""
        data = self.model_dump(exclude_none=True)
        for field in ESCAPED_METADATA_FIELDS:
            data[field] = html.escape(data[field])
        return data


class CommentRequest(BaseModel):
    content: str = Field(min_length=1)
    image_url: str = Field(default="", max_length=500)
    tag_ids: List[int] = []
    metadata: Optional[SessionMetadata] = None


class CommentResponse(ORMModel):
    id: int
    animal_id: int
    user_id: int
    content: str
    image_url: str = ""
    metadata: Optional[dict] = Field(default=None, validation_alias="session_metadata")
    tags: List[CommentTagResponse] = []
    user: Optional[UserSummary] = None
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None
    deleted_at: Optional[UTCDateTime] = None


class CommentWithAnimal(CommentResponse):
    animal: AnimalSummary


class CommentHistoryResponse(ORMModel):
    id: int
    comment_id: int
    content: str
    image_url: str = ""
    metadata: Optional[dict] = Field(default=None, validation_alias="session_metadata")
    edited_by: int
    user: Optional[UserSummary] = None
    created_at: UTCDateTime


class CommentPage(BaseModel):
    comments: List[CommentResponse]
    total: int
    limit: int
    offset: int
    hasMore: bool
