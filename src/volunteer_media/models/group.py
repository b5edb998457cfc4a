"""
Group model.

A group is a volunteer team (dogs, cats, modsquad, ...). Animals, updates,
protocols and tags all belong to exactly one group.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.orm import relationship
from .base import Base, utcnow

DEFAULT_HERO_IMAGE_URL = "/default-hero.svg"


class Group(Base):
    """Volunteer group with optional protocol and GroupMe features."""
    __tablename__ = "groups"

    # Primary fields
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    image_url = Column(String(500), nullable=False, default="")
    hero_image_url = Column(String(500), nullable=False, default="")

    # Feature switches
    has_protocols = Column(Boolean, nullable=False, default=False)
    groupme_bot_id = Column(String(64), nullable=False, default="")
    groupme_enabled = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    # Relationships
    memberships = relationship("UserGroup", back_populates="group", cascade="all, delete-orphan")

    def __init__(self, **kwargs):
        kwargs.setdefault("description", "")
        kwargs.setdefault("image_url", "")
        kwargs.setdefault("hero_image_url", "")
        kwargs.setdefault("has_protocols", False)
        kwargs.setdefault("groupme_bot_id", "")
        kwargs.setdefault("groupme_enabled", False)

        now = utcnow()
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)

        super().__init__(**kwargs)

    @property
    def can_post_to_groupme(self) -> bool:
        """Whether GroupMe posts for this group have somewhere to go."""
        return bool(self.groupme_enabled and self.groupme_bot_id)

    def __repr__(self):
        return f"<Group(id={self.id}, name='{self.name}')>"
