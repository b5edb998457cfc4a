"""
Volunteer Media Database Models

This package contains all SQLAlchemy models for the volunteer portal:
- User, UserGroup: Accounts and group membership
- Group: Volunteer teams
- Animal, AnimalTag, AnimalNameHistory: Animal profiles
- AnimalComment, CommentHistory, CommentTag: Comments and session notes
- Update, Announcement, Protocol, SiteSetting: Published content
- AnimalImage: Photo gallery and unlinked uploads
"""

from .base import Base
from .user import User, UserGroup
from .group import Group
from .animal import Animal, AnimalTag, AnimalNameHistory, animal_animal_tags
from .comment import AnimalComment, CommentHistory, CommentTag, animal_comment_tags
from .content import Update, Announcement, Protocol, SiteSetting
from .image import AnimalImage

__all__ = [
    "Base",
    "User",
    "UserGroup",
    "Group",
    "Animal",
    "AnimalTag",
    "AnimalNameHistory",
    "animal_animal_tags",
    "AnimalComment",
    "CommentHistory",
    "CommentTag",
    "animal_comment_tags",
    "Update",
    "Announcement",
    "Protocol",
    "SiteSetting",
    "AnimalImage",
]
