"""
Comment models.

Volunteers log comments against animals. A comment with structured
session metadata is a session note. Edits keep the previous version in
CommentHistory.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, ForeignKey, JSON, Table,
    Index, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from .base import Base, utcnow

DEFAULT_TAG_COLOR = "#6b7280"
SYSTEM_COMMENT_TAGS = (
    ("behavior", "#3b82f6"),
    ("medical", "#ef4444"),
)

MetadataType = JSON().with_variant(JSONB(), "postgresql")

animal_comment_tags = Table(
    "animal_comment_tags",
    Base.metadata,
    Column("animal_comment_id", Integer, ForeignKey("animal_comments.id", ondelete="CASCADE"), primary_key=True),
    Column("comment_tag_id", Integer, ForeignKey("comment_tags.id", ondelete="CASCADE"), primary_key=True),
)


class CommentTag(Base):
    """Group-scoped label for comments. System tags drive dashboard alerts."""
    __tablename__ = "comment_tags"
    __table_args__ = (
        UniqueConstraint("group_id", "name", name="idx_comment_tag_group_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # Legacy rows may predate group scoping; maintenance backfills them
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), index=True)
    name = Column(String(50), nullable=False)
    color = Column(String(20), nullable=False, default=DEFAULT_TAG_COLOR)
    is_system = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __init__(self, **kwargs):
        kwargs.setdefault("color", DEFAULT_TAG_COLOR)
        kwargs.setdefault("is_system", False)
        super().__init__(**kwargs)

    def __repr__(self):
        return f"<CommentTag(id={self.id}, group_id={self.group_id}, name='{self.name}', system={self.is_system})>"


class AnimalComment(Base):
    """Comment or session note about an animal."""
    __tablename__ = "animal_comments"
    __table_args__ = (
        Index("idx_comment_animal_created", "animal_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    animal_id = Column(Integer, ForeignKey("animals.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=False, default="")
    session_metadata = Column("metadata", MetadataType)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    tags = relationship("CommentTag", secondary=animal_comment_tags, lazy="selectin", order_by="CommentTag.name")
    user = relationship("User", lazy="selectin")
    animal = relationship("Animal")

    def __init__(self, **kwargs):
        kwargs.setdefault("image_url", "")
        kwargs.setdefault("tags", [])

        now = utcnow()
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)

        super().__init__(**kwargs)

    @property
    def session_rating(self) -> int:
        if not self.session_metadata:
            return 0
        return int(self.session_metadata.get("session_rating") or 0)

    def has_tag(self, name: str) -> bool:
        return any(tag.name == name for tag in self.tags)

    def __repr__(self):
        return f"<AnimalComment(id={self.id}, animal_id={self.animal_id}, user_id={self.user_id})>"


class CommentHistory(Base):
    """Previous version of an edited comment."""
    __tablename__ = "comment_histories"

    id = Column(Integer, primary_key=True, index=True)
    comment_id = Column(Integer, ForeignKey("animal_comments.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=False, default="")
    session_metadata = Column("metadata", MetadataType)
    # Author of this historical version
    edited_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", lazy="selectin")

    def __repr__(self):
        return f"<CommentHistory(id={self.id}, comment_id={self.comment_id})>"
