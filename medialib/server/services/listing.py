"""Builds directory listings from a prefix listing and the metadata index."""

import asyncio
import logging
from collections.abc import Mapping

from ..constants import SEPARATOR, BucketContext, FileCategory
from ..exceptions import NotFound, StoreUnavailable
from ..utils.paths import (
    VirtualPath,
    folder_prefix,
    is_placeholder,
    join_path,
    parse_path,
    to_key,
)
from .entities import DirectoryListing, FileEntry, FolderEntry, MetadataWarning
from .metadata import MediaRecord, MetadataIndex
from .object_store import ObjectStore, StoredObject, guess_content_type

logger = logging.getLogger(__name__)

_DOCUMENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/rtf",
    "application/vnd.ms-excel",
    "application/vnd.ms-powerpoint",
    "application/vnd.oasis.opendocument.text",
    "application/vnd.oasis.opendocument.spreadsheet",
    "application/vnd.oasis.opendocument.presentation",
}


def categorize(mime_type: str | None, file_name: str) -> FileCategory:
    """Map a mime type (or, failing that, a file name) to a file category."""
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = guess_content_type(file_name)
    major = mime_type.split("/", 1)[0]
    if major == "image":
        return FileCategory.IMAGE
    if major == "video":
        return FileCategory.VIDEO
    if major == "audio":
        return FileCategory.AUDIO
    if (
        major == "text"
        or mime_type in _DOCUMENT_TYPES
        or "officedocument" in mime_type
    ):
        return FileCategory.DOCUMENT
    return FileCategory.OTHER


class ListingService:
    """Read-only view of one virtual directory."""

    def __init__(
        self,
        object_store: ObjectStore,
        metadata_index: MetadataIndex,
        bucket_names: Mapping[BucketContext, str],
    ) -> None:
        self.object_store = object_store
        self.metadata_index = metadata_index
        self.bucket_names = bucket_names

    async def list_directory(
        self,
        bucket: BucketContext,
        path: str | VirtualPath,
        user_id: str | None = None,
    ) -> DirectoryListing:
        """List the immediate folders and files of ``path``.

        A transport failure is retried once. A non-root path with no objects
        under it raises NotFound.
        """
        segments = parse_path(path)
        try:
            return await self._list(bucket, segments, user_id)
        except StoreUnavailable as err:
            logger.warning(
                f"Listing {bucket.value}:{join_path(segments)!r} failed, retrying: {err}"
            )
            return await self._list(bucket, segments, user_id)

    async def _list(
        self, bucket: BucketContext, segments: VirtualPath, user_id: str | None
    ) -> DirectoryListing:
        bucket_name = self.bucket_names[bucket]
        key = to_key(segments)
        prefix = folder_prefix(key)

        listing = await self.object_store.list_by_prefix(
            bucket_name, prefix, delimiter=SEPARATOR
        )
        if key and not listing.objects and not listing.prefixes:
            raise NotFound(f"Folder '{key}' not found")

        result = DirectoryListing(bucket=bucket, path=key)
        result.folders = await self._build_folders(bucket_name, prefix, listing.prefixes)
        if bucket == BucketContext.COMPANY and not key:
            await self._merge_companies(result)

        leaves = [o for o in listing.objects if not is_placeholder(o.key)]
        records = {
            r.file_path: r
            for r in await self.metadata_index.list_metadata(bucket, prefix)
        }
        favorites: set[str] = set()
        if user_id and leaves:
            favorites = await self.metadata_index.favorited_paths(
                user_id, bucket, [o.key for o in leaves]
            )

        for obj in leaves:
            record = records.pop(obj.key, None)
            entry = self._build_file(bucket_name, prefix, obj, record)
            entry.favorited = obj.key in favorites
            if record is None:
                logger.warning(
                    f"Object {bucket.value}:{obj.key} has no metadata row, "
                    "listing it with degraded metadata"
                )
                result.warnings.append(
                    MetadataWarning(key=obj.key, message="Missing metadata row")
                )
            result.files.append(entry)

        for file_path in records:
            logger.warning(
                f"Metadata row {bucket.value}:{file_path} has no backing object"
            )
            result.warnings.append(
                MetadataWarning(key=file_path, message="Metadata row without object")
            )
        return result

    async def _build_folders(
        self, bucket_name: str, prefix: str, prefixes: list[str]
    ) -> list[FolderEntry]:
        async def build(common: str) -> FolderEntry:
            children = await self.object_store.list_by_prefix(
                bucket_name, common, delimiter=SEPARATOR
            )
            created_at = None
            file_count = 0
            for obj in children.objects:
                if is_placeholder(obj.key):
                    created_at = obj.created_at
                else:
                    file_count += 1
            name = common[len(prefix) :].rstrip(SEPARATOR)
            return FolderEntry(
                name=name,
                path=common.rstrip(SEPARATOR),
                file_count=file_count,
                created_at=created_at,
            )

        return list(await asyncio.gather(*(build(p) for p in prefixes)))

    async def _merge_companies(self, result: DirectoryListing) -> None:
        companies = await self.metadata_index.list_companies()
        existing = {f.name: f for f in result.folders}
        for company_id, name in companies.items():
            if company_id in existing:
                existing[company_id].display_name = name
            else:
                result.folders.append(
                    FolderEntry(name=company_id, path=company_id, display_name=name)
                )

    def _build_file(
        self,
        bucket_name: str,
        prefix: str,
        obj: StoredObject,
        record: MediaRecord | None,
    ) -> FileEntry:
        name = obj.key[len(prefix) :]
        url = self.object_store.public_url(bucket_name, obj.key)
        if record is None:
            mime_type = obj.content_type or guess_content_type(name)
            return FileEntry(
                name=name,
                path=obj.key,
                size=obj.size,
                mime_type=mime_type,
                created_at=obj.created_at,
                url=url,
                category=categorize(mime_type, name),
                has_metadata=False,
            )
        mime_type = record.mime_type or obj.content_type or guess_content_type(name)
        return FileEntry(
            name=name,
            path=obj.key,
            size=obj.size,
            mime_type=mime_type,
            created_at=record.upload_date or obj.created_at,
            url=url,
            category=categorize(mime_type, name),
            uploaded_by=record.uploaded_by,
            tags=set(record.tags),
            original_name=record.original_name,
        )
