"""Exceptions raised by the media library services."""

__all__ = [
    "MediaError",
    "InvalidPath",
    "AlreadyExists",
    "NotFound",
    "ConflictingOperation",
    "PartialFailure",
    "MetadataInconsistency",
    "StoreUnavailable",
    "UploadTooLarge",
    "InvalidQuery",
]


class MediaError(Exception):
    """Base exception for media library errors."""

    code = "MediaError"


class InvalidPath(MediaError):
    """A path segment is malformed or the path is not allowed here."""

    code = "InvalidPath"


class AlreadyExists(MediaError):
    """An object or folder already exists at the target path."""

    code = "AlreadyExists"


class NotFound(MediaError):
    """The target path has no objects."""

    code = "NotFound"


class ConflictingOperation(MediaError):
    """Another mutation on an overlapping prefix is in flight."""

    code = "ConflictingOperation"


class PartialFailure(MediaError):
    """A multi-object mutation completed for some but not all objects."""

    code = "PartialFailure"

    def __init__(
        self, message: str, succeeded: list[str], failed: list[str]
    ) -> None:
        super().__init__(message)
        self.succeeded = succeeded
        self.failed = failed


class MetadataInconsistency(MediaError):
    """An object and its metadata row disagree."""

    code = "MetadataInconsistency"

    def __init__(self, message: str, key: str) -> None:
        super().__init__(message)
        self.key = key


class StoreUnavailable(MediaError):
    """Transport level failure talking to the object store or metadata index."""

    code = "StoreUnavailable"


class UploadTooLarge(MediaError):
    """The uploaded file exceeds the configured size limit."""

    code = "UploadTooLarge"


class InvalidQuery(MediaError):
    """Filter, sort or pagination parameters are invalid."""

    code = "InvalidQuery"
