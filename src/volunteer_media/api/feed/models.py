from typing import List, Optional

from pydantic import BaseModel, Field

from volunteer_media.api.animals.models import AnimalSummary
from volunteer_media.api.schemas import ORMModel, UTCDateTime
from volunteer_media.api.tags.models import CommentTagResponse
from volunteer_media.api.users.models import UserSummary


class UpdateResponse(ORMModel):
    id: int
    group_id: int
    user_id: int
    title: str
    content: str
    image_url: str = ""
    send_email: bool = False
    send_groupme: bool = False
    user: Optional[UserSummary] = None
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None


class UpdateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    image_url: str = Field(default="", max_length=500)
    send_groupme: bool = False


class AnnouncementResponse(ORMModel):
    id: int
    user_id: int
    title: str
    content: str
    send_email: bool = False
    send_groupme: bool = False
    user: Optional[UserSummary] = None
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None


class AnnouncementRequest(BaseModel):
    title: str = Field(min_length=2, max_length=200)
    content: str = Field(min_length=10)
    send_email: bool = False
    send_groupme: bool = False


class ActivityItem(BaseModel):
    id: int
    type: str
    created_at: UTCDateTime
    user_id: int
    user: Optional[UserSummary] = None
    content: str
    title: Optional[str] = None
    image_url: Optional[str] = None
    animal_id: Optional[int] = None
    animal: Optional[AnimalSummary] = None
    tags: Optional[List[CommentTagResponse]] = None
    metadata: Optional[dict] = None


class ActivityFeedSummary(BaseModel):
    behavior_concerns_count: int = 0
    medical_concerns_count: int = 0
    # Sessions rated 1-2
    poor_sessions_count: int = 0


class ActivityFeedResponse(BaseModel):
    items: List[ActivityItem]
    total: int
    limit: int
    offset: int
    hasMore: bool
    summary: ActivityFeedSummary
