"""
Animal models.

Represents shelter animals tracked by a group, the group-scoped tags
that describe them, and the history of name changes.
"""

from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, ForeignKey, LargeBinary,
    Table, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from .base import Base, utcnow, ensure_utc

ANIMAL_STATUSES = ("available", "foster", "bite_quarantine", "archived")
DEFAULT_VISIBLE_STATUSES = ("available", "bite_quarantine")
TAG_CATEGORIES = ("behavior", "walker_status")
QUARANTINE_DAYS = 10

animal_animal_tags = Table(
    "animal_animal_tags",
    Base.metadata,
    Column("animal_id", Integer, ForeignKey("animals.id", ondelete="CASCADE"), primary_key=True),
    Column("animal_tag_id", Integer, ForeignKey("animal_tags.id", ondelete="CASCADE"), primary_key=True),
)


class AnimalTag(Base):
    """Group-scoped label for animals (behavior traits, walker status)."""
    __tablename__ = "animal_tags"
    __table_args__ = (
        UniqueConstraint("group_id", "name", name="idx_animal_tag_group_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    category = Column(String(50), nullable=False)
    color = Column(String(20), nullable=False, default="#6b7280")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<AnimalTag(id={self.id}, group_id={self.group_id}, name='{self.name}')>"


class Animal(Base):
    """
    Animal in the care of a volunteer group.

    Status transitions stamp the matching date column so length of stay,
    foster time and quarantine windows can be derived later.
    """
    __tablename__ = "animals"
    __table_args__ = (
        Index("idx_animal_group_status", "group_id", "status"),
    )

    # Primary fields
    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    species = Column(String(100), nullable=False, default="")
    breed = Column(String(255), nullable=False, default="")
    age = Column(Integer, nullable=False, default=0)
    estimated_birth_date = Column(DateTime(timezone=True))
    description = Column(Text, nullable=False, default="")
    trainer_notes = Column(Text, nullable=False, default="")
    image_url = Column(String(500), nullable=False, default="")

    # Status tracking
    status = Column(String(50), nullable=False, default="available")
    arrival_date = Column(DateTime(timezone=True))
    foster_start_date = Column(DateTime(timezone=True))
    quarantine_start_date = Column(DateTime(timezone=True))
    archived_date = Column(DateTime(timezone=True))
    last_status_change = Column(DateTime(timezone=True))
    return_count = Column(Integer, nullable=False, default=0)
    is_returned = Column(Boolean, nullable=False, default=False)

    # Protocol document
    protocol_document_url = Column(String(500), nullable=False, default="")
    protocol_document_name = Column(String(255), nullable=False, default="")
    protocol_document_data = Column(LargeBinary)
    protocol_document_type = Column(String(100), nullable=False, default="")
    protocol_document_size = Column(Integer, nullable=False, default=0)
    protocol_document_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    protocol_document_provider = Column(String(20), nullable=False, default="postgres")
    protocol_document_blob_identifier = Column(String(100), nullable=False, default="")
    protocol_document_blob_extension = Column(String(10), nullable=False, default="")

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    # Relationships
    tags = relationship("AnimalTag", secondary=animal_animal_tags, lazy="selectin", order_by="AnimalTag.name")
    group = relationship("Group")

    def __init__(self, **kwargs):
        kwargs.setdefault("species", "")
        kwargs.setdefault("breed", "")
        kwargs.setdefault("age", 0)
        kwargs.setdefault("description", "")
        kwargs.setdefault("trainer_notes", "")
        kwargs.setdefault("image_url", "")
        kwargs.setdefault("status", "available")
        kwargs.setdefault("return_count", 0)
        kwargs.setdefault("is_returned", False)
        kwargs.setdefault("protocol_document_url", "")
        kwargs.setdefault("protocol_document_name", "")
        kwargs.setdefault("protocol_document_type", "")
        kwargs.setdefault("protocol_document_size", 0)
        kwargs.setdefault("protocol_document_provider", "postgres")
        kwargs.setdefault("protocol_document_blob_identifier", "")
        kwargs.setdefault("protocol_document_blob_extension", "")
        kwargs.setdefault("tags", [])

        now = utcnow()
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)

        super().__init__(**kwargs)

    def start_status(self, now: datetime, quarantine_start: Optional[datetime] = None):
        """Stamp the dates for a newly created animal's initial status."""
        self.arrival_date = now
        self.last_status_change = now
        if self.status == "foster":
            self.foster_start_date = now
        elif self.status == "bite_quarantine":
            self.quarantine_start_date = quarantine_start or now
        elif self.status == "archived":
            self.archived_date = now

    def change_status(self, new_status: str, now: datetime, quarantine_start: Optional[datetime] = None):
        """
        Move the animal to ``new_status`` and maintain the status dates.

        Args:
            new_status: One of ANIMAL_STATUSES
            now: Transition timestamp
            quarantine_start: Explicit quarantine start for bite_quarantine
        """
        if new_status == self.status:
            return

        previous = self.status
        self.status = new_status
        self.last_status_change = now

        if new_status == "available":
            if previous == "archived":
                self.return_count = (self.return_count or 0) + 1
            self.foster_start_date = None
            self.quarantine_start_date = None
            self.archived_date = None
        elif new_status == "foster":
            self.foster_start_date = now
            self.quarantine_start_date = None
            self.archived_date = None
        elif new_status == "bite_quarantine":
            self.quarantine_start_date = quarantine_start or now
            self.foster_start_date = None
            self.archived_date = None
        elif new_status == "archived":
            self.archived_date = now

    def age_display(self, now: Optional[datetime] = None) -> Tuple[int, int]:
        """Years and months of age, from the estimated birth date when known."""
        birth = ensure_utc(self.estimated_birth_date)
        if birth is None:
            return self.age or 0, 0

        now = now or utcnow()
        years = now.year - birth.year
        months = now.month - birth.month
        if now.day < birth.day:
            months -= 1
        if months < 0:
            years -= 1
            months += 12
        if years < 0:
            return 0, 0
        return years, months

    def age_years_from_birth_date(self) -> int:
        return self.age_display()[0]

    @property
    def length_of_stay(self) -> int:
        """Days since arrival."""
        arrival = ensure_utc(self.arrival_date)
        if arrival is None:
            return 0
        return (utcnow() - arrival).days

    @property
    def current_status_duration(self) -> int:
        """Days since the last status change."""
        changed = ensure_utc(self.last_status_change)
        if changed is None:
            return 0
        return (utcnow() - changed).days

    @property
    def quarantine_end_date(self) -> Optional[datetime]:
        """Quarantine start plus ten days, moved forward off a weekend."""
        start = ensure_utc(self.quarantine_start_date)
        if start is None:
            return None
        end = start + timedelta(days=QUARANTINE_DAYS)
        while end.weekday() >= 5:
            end += timedelta(days=1)
        return end

    def clear_protocol_document(self):
        self.protocol_document_url = ""
        self.protocol_document_name = ""
        self.protocol_document_data = None
        self.protocol_document_type = ""
        self.protocol_document_size = 0
        self.protocol_document_user_id = None
        self.protocol_document_provider = "postgres"
        self.protocol_document_blob_identifier = ""
        self.protocol_document_blob_extension = ""

    def __repr__(self):
        return f"<Animal(id={self.id}, group_id={self.group_id}, name='{self.name}', status='{self.status}')>"


class AnimalNameHistory(Base):
    """Record of an animal being renamed."""
    __tablename__ = "animal_name_histories"

    id = Column(Integer, primary_key=True, index=True)
    animal_id = Column(Integer, ForeignKey("animals.id", ondelete="CASCADE"), nullable=False, index=True)
    old_name = Column(String(255), nullable=False)
    new_name = Column(String(255), nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<AnimalNameHistory(animal_id={self.animal_id}, '{self.old_name}' -> '{self.new_name}')>"
