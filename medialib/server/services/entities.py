"""Domain objects produced by the listing and mutation services."""

from dataclasses import dataclass, field
from typing import Literal

from ..constants import BucketContext, FileCategory


@dataclass
class FolderEntry:
    """An immediate child folder, inferred from key prefixes."""

    name: str
    path: str
    """Full virtual path of the folder, no leading or trailing slashes."""

    file_count: int = 0
    created_at: int | None = None
    display_name: str | None = None
    kind: Literal["folder"] = "folder"

    @property
    def size(self) -> int:
        return 0

    @property
    def type_name(self) -> str:
        return "folder"

    @property
    def sort_time(self) -> int:
        return self.created_at or 0


@dataclass
class FileEntry:
    """An immediate child file joined with its metadata row."""

    name: str
    path: str
    size: int
    mime_type: str
    created_at: int
    url: str
    category: FileCategory
    favorited: bool = False
    uploaded_by: str | None = None
    tags: set[str] = field(default_factory=set)
    original_name: str | None = None
    has_metadata: bool = True
    kind: Literal["file"] = "file"

    @property
    def type_name(self) -> str:
        return self.mime_type

    @property
    def sort_time(self) -> int:
        return self.created_at


MediaItem = FolderEntry | FileEntry


@dataclass
class MetadataWarning:
    """A non-fatal disagreement between an object and its metadata row."""

    key: str
    message: str
    code: str = "MetadataInconsistency"


@dataclass
class DirectoryListing:
    """Immediate children of one virtual directory, rebuilt on every request."""

    bucket: BucketContext
    path: str
    folders: list[FolderEntry] = field(default_factory=list)
    files: list[FileEntry] = field(default_factory=list)
    warnings: list[MetadataWarning] = field(default_factory=list)


@dataclass
class MutationResult:
    """Outcome of a mutation, listing the source keys it handled."""

    bucket: BucketContext
    path: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    warnings: list[MetadataWarning] = field(default_factory=list)
    new_path: str | None = None

    @property
    def is_partial(self) -> bool:
        return bool(self.succeeded) and bool(self.failed)
