"""
Published content models: group updates, site-wide announcements,
group protocols and site settings.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from .base import Base, utcnow

DEFAULT_SITE_NAME = "MyHAWS"
DEFAULT_SITE_SHORT_NAME = "MyHAWS"
DEFAULT_SITE_DESCRIPTION = "MyHAWS Volunteer Portal - Internal volunteer management system"


class Update(Base):
    """Post made to a single group's feed."""
    __tablename__ = "updates"
    __table_args__ = (
        Index("idx_update_group_created", "group_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=False, default="")
    # Whether notification dispatch was requested at creation time
    send_email = Column(Boolean, nullable=False, default=False)
    send_groupme = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    user = relationship("User", lazy="selectin")

    def __repr__(self):
        return f"<Update(id={self.id}, group_id={self.group_id}, title='{self.title}')>"


class Announcement(Base):
    """Site-wide announcement written by a site admin."""
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    send_email = Column(Boolean, nullable=False, default=False)
    send_groupme = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    user = relationship("User", lazy="selectin")

    def __repr__(self):
        return f"<Announcement(id={self.id}, title='{self.title}')>"


class Protocol(Base):
    """Ordered standard operating procedure for a group."""
    __tablename__ = "protocols"
    __table_args__ = (
        Index("idx_protocols_group_order", "group_id", "order_index"),
    )

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    image_url = Column(String(500), nullable=False, default="")
    order_index = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    def __repr__(self):
        return f"<Protocol(id={self.id}, group_id={self.group_id}, order={self.order_index})>"


class SiteSetting(Base):
    """Key/value site configuration editable by admins."""
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<SiteSetting(key='{self.key}')>"
