from typing import List, Optional

from pydantic import BaseModel

from volunteer_media.api.schemas import ORMModel, UTCDateTime


class GroupStatistics(BaseModel):
    group_id: int
    group_name: str
    user_count: int
    animal_count: int
    last_activity: Optional[UTCDateTime] = None


class UserStatistics(BaseModel):
    user_id: int
    username: str
    comment_count: int
    last_active: Optional[UTCDateTime] = None
    animals_interacted_with: int


class CommentTagStatistics(BaseModel):
    tag_id: int
    tag_name: str
    usage_count: int
    last_used: Optional[UTCDateTime] = None
    most_tagged_animal_id: Optional[int] = None
    most_tagged_animal_name: Optional[str] = None


class GroupStatisticsPage(BaseModel):
    data: List[GroupStatistics]
    total: int
    limit: int
    offset: int
    hasMore: bool


class UserStatisticsPage(BaseModel):
    data: List[UserStatistics]
    total: int
    limit: int
    offset: int
    hasMore: bool


class CommentTagStatisticsPage(BaseModel):
    data: List[CommentTagStatistics]
    total: int
    limit: int
    offset: int
    hasMore: bool


class RecentUser(ORMModel):
    id: int
    username: str
    email: str
    is_admin: bool
    created_at: UTCDateTime


class ActiveGroup(BaseModel):
    group_id: int
    group_name: str
    user_count: int
    animal_count: int
    comment_count: int
    last_activity: Optional[UTCDateTime] = None


class AnimalAlert(BaseModel):
    animal_id: int
    animal_name: str
    group_id: int
    group_name: str
    image_url: str = ""
    alert_tags: List[str]
    last_comment: Optional[UTCDateTime] = None


class SystemHealth(BaseModel):
    active_users_last_24h: int
    comments_last_24h: int
    new_users_last_7_days: int
    average_comments_per_day: float


class DashboardStats(BaseModel):
    total_users: int
    total_groups: int
    total_animals: int
    total_comments: int
    recent_users: List[RecentUser]
    most_active_groups: List[ActiveGroup]
    animals_needing_attention: List[AnimalAlert]
    system_health: SystemHealth
