"""Media library API data models."""

from dataclasses import dataclass, field
from typing import List

from mashumaro import field_options
from mashumaro.config import BaseConfig
from mashumaro.mixins.json import DataClassJSONMixin

from ..server.constants import BucketContext
from .base import BaseResponse, PagedResponse


@dataclass
class ListDirectoryDTO(DataClassJSONMixin):
    """Request model for listing one virtual directory."""
    bucket: BucketContext = BucketContext.INTERNAL
    path: str = ""

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class MediaQueryDTO(DataClassJSONMixin):
    """Request model for a filtered, sorted and paginated directory listing."""
    bucket: BucketContext = BucketContext.INTERNAL
    path: str = ""
    search: str | None = None
    file_types: List[str] = field(
        metadata=field_options(alias="fileTypes"), default_factory=list
    )
    date_from: int | None = field(metadata=field_options(alias="dateFrom"), default=None)
    date_to: int | None = field(metadata=field_options(alias="dateTo"), default=None)
    favorites_only: bool = field(
        metadata=field_options(alias="favoritesOnly"), default=False
    )
    tags: List[str] = field(default_factory=list)
    sort_key: str = field(metadata=field_options(alias="sortKey"), default="name")
    sort_dir: str = field(metadata=field_options(alias="sortDir"), default="asc")
    page: int = 1
    page_size: int | None = field(
        metadata=field_options(alias="pageSize"), default=None
    )
    """Items per page. Omitted means the server's configured default."""

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class CreateFolderDTO(DataClassJSONMixin):
    """Request model for creating a folder."""
    name: str
    bucket: BucketContext = BucketContext.INTERNAL
    parent_path: str = field(metadata=field_options(alias="parentPath"), default="")

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class RenameOrMoveDTO(DataClassJSONMixin):
    """Request model for moving a file or folder to an explicit new path."""
    old_path: str = field(metadata=field_options(alias="oldPath"))
    new_path: str = field(metadata=field_options(alias="newPath"))
    bucket: BucketContext = BucketContext.INTERNAL

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class RenameDTO(DataClassJSONMixin):
    """Request model for renaming a file or folder in place."""
    path: str
    new_name: str = field(metadata=field_options(alias="newName"))
    bucket: BucketContext = BucketContext.INTERNAL

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class MoveDTO(DataClassJSONMixin):
    """Request model for moving a file or folder into another folder."""
    path: str
    new_parent: str = field(metadata=field_options(alias="newParent"))
    bucket: BucketContext = BucketContext.INTERNAL

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class DeleteDTO(DataClassJSONMixin):
    """Request model for deleting a file or a folder tree."""
    path: str
    is_folder: bool = field(metadata=field_options(alias="isFolder"), default=False)
    bucket: BucketContext = BucketContext.INTERNAL

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class ToggleFavoriteDTO(DataClassJSONMixin):
    """Request model for setting a favorite mark."""
    file_path: str = field(metadata=field_options(alias="filePath"))
    favorite: bool = True
    bucket: BucketContext = BucketContext.INTERNAL

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class FavoriteListDTO(DataClassJSONMixin):
    bucket: BucketContext = BucketContext.INTERNAL


@dataclass
class RecentUploadsDTO(DataClassJSONMixin):
    bucket: BucketContext = BucketContext.INTERNAL
    limit: int = 20


@dataclass
class ReconcileDTO(DataClassJSONMixin):
    bucket: BucketContext = BucketContext.INTERNAL
    fix: bool = False


@dataclass
class RegisterCompanyDTO(DataClassJSONMixin):
    company_id: str = field(metadata=field_options(alias="companyId"))
    name: str

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class MediaItemVO(DataClassJSONMixin):
    """A folder or a file. File-only fields are omitted for folders."""
    name: str
    path: str
    is_folder: bool = field(metadata=field_options(alias="isFolder"))
    size: int = 0
    created_at: int | None = field(
        metadata=field_options(alias="createdAt"), default=None
    )
    file_count: int | None = field(
        metadata=field_options(alias="fileCount"), default=None
    )
    display_name: str | None = field(
        metadata=field_options(alias="displayName"), default=None
    )
    mime_type: str | None = field(metadata=field_options(alias="mimeType"), default=None)
    category: str | None = None
    url: str | None = None
    favorited: bool | None = None
    uploaded_by: str | None = field(
        metadata=field_options(alias="uploadedBy"), default=None
    )
    original_name: str | None = field(
        metadata=field_options(alias="originalName"), default=None
    )
    tags: List[str] | None = None

    class Config(BaseConfig):
        serialize_by_alias = True
        omit_none = True


@dataclass
class MediaWarningVO(DataClassJSONMixin):
    key: str
    message: str
    code: str

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class DirectoryListingVO(BaseResponse):
    """Response model for a directory listing."""
    bucket: str = ""
    path: str = ""
    folders: List[MediaItemVO] = field(default_factory=list)
    files: List[MediaItemVO] = field(default_factory=list)
    warnings: List[MediaWarningVO] = field(default_factory=list)


@dataclass
class MediaPageVO(PagedResponse):
    """Response model for one page of a queried directory."""

    items: List[MediaItemVO] = field(default_factory=list)
    warnings: List[MediaWarningVO] = field(default_factory=list)


@dataclass
class MutationVO(BaseResponse):
    """Response model for a mutation.

    On a partial failure ``succeeded`` and ``failed`` list the source keys
    that were and were not handled, so the caller can retry the remainder.
    """
    bucket: str = ""
    path: str = ""
    new_path: str | None = field(metadata=field_options(alias="newPath"), default=None)
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    warnings: List[MediaWarningVO] = field(default_factory=list)


@dataclass
class FavoriteVO(BaseResponse):
    file_path: str = field(metadata=field_options(alias="filePath"), default="")
    favorite: bool = False


@dataclass
class FavoriteListVO(BaseResponse):
    paths: List[str] = field(default_factory=list)


@dataclass
class RecentUploadsVO(BaseResponse):
    items: List[MediaItemVO] = field(default_factory=list)


@dataclass
class FavoriteRefVO(DataClassJSONMixin):
    user_id: str = field(metadata=field_options(alias="userId"))
    file_path: str = field(metadata=field_options(alias="filePath"))

    class Config(BaseConfig):
        serialize_by_alias = True


@dataclass
class IntegrityReportVO(BaseResponse):
    """Response model for a reconciliation sweep."""
    bucket: str = ""
    scanned: int = 0
    ok: int = 0
    fixed: int = 0
    missing_metadata: List[str] = field(
        metadata=field_options(alias="missingMetadata"), default_factory=list
    )
    dangling_metadata: List[str] = field(
        metadata=field_options(alias="danglingMetadata"), default_factory=list
    )
    orphan_favorites: List[FavoriteRefVO] = field(
        metadata=field_options(alias="orphanFavorites"), default_factory=list
    )
    skipped: List[str] = field(default_factory=list)


@dataclass
class CompanyVO(BaseResponse):
    company_id: str = field(metadata=field_options(alias="companyId"), default="")
    name: str = ""
