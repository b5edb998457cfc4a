from typing import List, Optional

from pydantic import BaseModel

from volunteer_media.api.animals.models import AnimalSummary
from volunteer_media.api.schemas import ORMModel, UTCDateTime
from volunteer_media.api.users.models import UserSummary


class AnimalImageResponse(ORMModel):
    id: int
    animal_id: Optional[int] = None
    user_id: int
    image_url: str
    caption: str = ""
    is_profile_picture: bool = False
    width: int = 0
    height: int = 0
    file_size: int = 0
    user: Optional[UserSummary] = None
    created_at: UTCDateTime
    updated_at: Optional[UTCDateTime] = None


class DeletedImageResponse(AnimalImageResponse):
    deleted_at: Optional[UTCDateTime] = None
    animal: Optional[AnimalSummary] = None


class DeletedImagesResponse(BaseModel):
    data: List[DeletedImageResponse]


class ProfilePictureResponse(BaseModel):
    message: str
    image: AnimalImageResponse


class ProtocolDocumentResponse(BaseModel):
    url: str
    name: str
    size: int
    type: str
    uploaded_by: int
