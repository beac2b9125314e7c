"""Constants shared across the media library server."""

from ..models.base import BaseEnum

SEPARATOR = "/"

# Zero-byte object that keeps an otherwise empty folder listable.
PLACEHOLDER_NAME = ".keep"

# Older folders were created with a ".folder" marker; treat it the same way.
PLACEHOLDER_NAMES = frozenset({PLACEHOLDER_NAME, ".folder"})

PLACEHOLDER_CONTENT_TYPE = "application/x-directory"

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# 100 MB
DEFAULT_MAX_UPLOAD_SIZE = 100 * 1024 * 1024

DEFAULT_PAGE_SIZE = 50


class BucketContext(str, BaseEnum):
    """Isolated storage contexts of the media library."""

    INTERNAL = "internal"
    COMPANY = "company"


class FileCategory(str, BaseEnum):
    """Coarse file type used for filtering and display."""

    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    OTHER = "other"
