"""
User and group membership models.

Users are volunteers or administrators. Membership in a group is
tracked by UserGroup, which also carries the per-group admin flag.
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from .base import Base, utcnow, ensure_utc


class User(Base):
    """
    Portal account.

    Passwords, reset tokens and setup tokens are stored as bcrypt hashes.
    The *_token_lookup columns keep a short plaintext prefix of the token
    so a reset request can find its row without scanning every hash.
    """
    __tablename__ = "users"

    # Primary fields
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)
    is_admin = Column(Boolean, nullable=False, default=False)

    # Contact and privacy
    phone_number = Column(String(20), nullable=False, default="")
    hide_email = Column(Boolean, nullable=False, default=False)
    hide_phone_number = Column(Boolean, nullable=False, default=False)
    default_group_id = Column(Integer, ForeignKey("groups.id", ondelete="SET NULL"), index=True)

    # Login protection
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True))
    last_login = Column(DateTime(timezone=True))

    # Password reset and invite flow
    reset_token = Column(String(255), nullable=False, default="")
    reset_token_expiry = Column(DateTime(timezone=True))
    reset_token_lookup = Column(String(16), nullable=False, default="", index=True)
    setup_token = Column(String(255), nullable=False, default="")
    setup_token_expiry = Column(DateTime(timezone=True))
    setup_token_lookup = Column(String(16), nullable=False, default="", index=True)
    requires_password_setup = Column(Boolean, nullable=False, default=False)

    # Preferences
    email_notifications_enabled = Column(Boolean, nullable=False, default=False)
    show_length_of_stay = Column(Boolean, nullable=False, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    # Relationships
    memberships = relationship("UserGroup", back_populates="user", cascade="all, delete-orphan")
    groups = relationship(
        "Group",
        secondary="user_groups",
        primaryjoin="User.id == UserGroup.user_id",
        secondaryjoin="and_(UserGroup.group_id == Group.id, Group.deleted_at.is_(None))",
        viewonly=True,
        order_by="Group.name",
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("first_name", "")
        kwargs.setdefault("last_name", "")
        kwargs.setdefault("phone_number", "")
        kwargs.setdefault("is_admin", False)
        kwargs.setdefault("hide_email", False)
        kwargs.setdefault("hide_phone_number", False)
        kwargs.setdefault("failed_login_attempts", 0)
        kwargs.setdefault("reset_token", "")
        kwargs.setdefault("reset_token_lookup", "")
        kwargs.setdefault("setup_token", "")
        kwargs.setdefault("setup_token_lookup", "")
        kwargs.setdefault("requires_password_setup", False)
        kwargs.setdefault("email_notifications_enabled", False)
        kwargs.setdefault("show_length_of_stay", False)

        now = utcnow()
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)

        super().__init__(**kwargs)

    def is_locked(self, now) -> bool:
        """Check whether a lockout is still in force at ``now``."""
        locked_until = ensure_utc(self.locked_until)
        return locked_until is not None and now < locked_until

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', is_admin={self.is_admin})>"


class UserGroup(Base):
    """Membership of a user in a group."""
    __tablename__ = "user_groups"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True, index=True)
    is_group_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="memberships")
    group = relationship("Group", back_populates="memberships")

    def __init__(self, **kwargs):
        kwargs.setdefault("is_group_admin", False)
        kwargs.setdefault("created_at", utcnow())
        super().__init__(**kwargs)

    def __repr__(self):
        return (
            f"<UserGroup(user_id={self.user_id}, group_id={self.group_id}, "
            f"is_group_admin={self.is_group_admin})>"
        )
