"""
Animal image model.

Images are either stored inline (``image_data``) when the postgres
storage provider is active, or as Azure blobs referenced by
``blob_identifier`` + ``blob_extension``. Rows without an animal are
unlinked uploads (hero images, group images, editor uploads).
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, LargeBinary, Index
from sqlalchemy.orm import relationship
from .base import Base, utcnow


class AnimalImage(Base):
    """Uploaded photo, optionally attached to an animal's gallery."""
    __tablename__ = "animal_images"
    __table_args__ = (
        Index("idx_animal_images_profile", "animal_id", "is_profile_picture"),
    )

    id = Column(Integer, primary_key=True, index=True)
    animal_id = Column(Integer, ForeignKey("animals.id", ondelete="CASCADE"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    image_url = Column(String(500), nullable=False, index=True)
    image_data = Column(LargeBinary)
    mime_type = Column(String(100), nullable=False, default="image/jpeg")
    caption = Column(Text, nullable=False, default="")
    is_profile_picture = Column(Boolean, nullable=False, default=False)

    # Image properties
    width = Column(Integer, nullable=False, default=0)
    height = Column(Integer, nullable=False, default=0)
    file_size = Column(Integer, nullable=False, default=0)

    # Storage backend
    storage_provider = Column(String(20), nullable=False, default="postgres")
    blob_identifier = Column(String(100), nullable=False, default="")
    blob_extension = Column(String(10), nullable=False, default="")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), index=True)

    user = relationship("User", lazy="selectin")
    animal = relationship("Animal")

    def __init__(self, **kwargs):
        kwargs.setdefault("mime_type", "image/jpeg")
        kwargs.setdefault("caption", "")
        kwargs.setdefault("is_profile_picture", False)
        kwargs.setdefault("width", 0)
        kwargs.setdefault("height", 0)
        kwargs.setdefault("file_size", 0)
        kwargs.setdefault("storage_provider", "postgres")
        kwargs.setdefault("blob_identifier", "")
        kwargs.setdefault("blob_extension", "")

        now = utcnow()
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)

        super().__init__(**kwargs)

    @property
    def blob_name(self) -> str:
        """Identifier handed to the storage provider for this image."""
        return f"{self.blob_identifier}{self.blob_extension}"

    def __repr__(self):
        return f"<AnimalImage(id={self.id}, animal_id={self.animal_id}, provider='{self.storage_provider}')>"
