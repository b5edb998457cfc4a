"""File storage: backend providers and upload validation."""

from .providers import (
    StorageProvider,
    PostgresStorageProvider,
    AzureBlobStorageProvider,
    StorageNotFoundError,
    new_provider,
    get_storage_provider,
)
from .uploads import (
    UploadValidationError,
    validate_image_upload,
    validate_image_content,
    validate_document_upload,
    sanitize_filename,
    process_image,
)

__all__ = [
    "StorageProvider",
    "PostgresStorageProvider",
    "AzureBlobStorageProvider",
    "StorageNotFoundError",
    "new_provider",
    "get_storage_provider",
    "UploadValidationError",
    "validate_image_upload",
    "validate_image_content",
    "validate_document_upload",
    "sanitize_filename",
    "process_image",
]
