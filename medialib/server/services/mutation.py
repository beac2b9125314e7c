"""Folder and file mutations over the flat object store.

Each mutation holds the prefixes it touches in the PrefixLockManager and runs
as a tracked task, so it completes even if the caller goes away. Multi-object
mutations copy before they delete and never roll back: a failure part way
through is reported as a PartialFailure listing the keys that moved and the
keys that did not.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Collection, Mapping
from typing import TypeVar

from ..constants import (
    DEFAULT_MAX_UPLOAD_SIZE,
    PLACEHOLDER_CONTENT_TYPE,
    PLACEHOLDER_NAME,
    PLACEHOLDER_NAMES,
    BucketContext,
)
from ..exceptions import (
    AlreadyExists,
    InvalidPath,
    MediaError,
    NotFound,
    PartialFailure,
    UploadTooLarge,
)
from ..utils.paths import (
    VirtualPath,
    child_of,
    folder_prefix,
    is_placeholder,
    is_prefix_of,
    join_path,
    name_of,
    parent_of,
    parse_path,
    replace_prefix,
    to_key,
    validate_segment,
)
from .coordination import PrefixLockManager
from .entities import MetadataWarning, MutationResult
from .metadata import MediaRecord, MetadataIndex
from .object_store import ObjectStore, StoredObject, guess_content_type

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class MutationService:
    """Create, upload, move and delete operations."""

    def __init__(
        self,
        object_store: ObjectStore,
        metadata_index: MetadataIndex,
        bucket_names: Mapping[BucketContext, str],
        lock_manager: PrefixLockManager | None = None,
        max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE,
    ) -> None:
        self.object_store = object_store
        self.metadata_index = metadata_index
        self.bucket_names = bucket_names
        self.locks = lock_manager or PrefixLockManager()
        self.max_upload_size = max_upload_size
        self._tasks: set[asyncio.Task] = set()

    async def wait_idle(self) -> None:
        """Wait for every in-flight mutation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(
        self,
        bucket: BucketContext,
        prefixes: Collection[str],
        operation: Callable[[], Awaitable[_T]],
    ) -> _T:
        # Acquired before the first await so a conflict is reported at once.
        self.locks.acquire(bucket, *prefixes)
        try:
            task = asyncio.create_task(self._locked(bucket, prefixes, operation))
        except BaseException:
            self.locks.release(bucket, *prefixes)
            raise
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return await asyncio.shield(task)

    async def _locked(
        self,
        bucket: BucketContext,
        prefixes: Collection[str],
        operation: Callable[[], Awaitable[_T]],
    ) -> _T:
        try:
            return await operation()
        finally:
            self.locks.release(bucket, *prefixes)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        # Retrieve the exception so an abandoned caller does not leave it unseen.
        if (err := task.exception()) is not None and not isinstance(err, MediaError):
            logger.error(f"Mutation task failed: {err!r}")

    async def _snapshot(self, bucket_name: str, key: str) -> list[StoredObject]:
        """All objects at ``key`` or underneath it, in key order."""
        listing = await self.object_store.list_by_prefix(bucket_name, key)
        return sorted(
            (o for o in listing.objects if is_prefix_of(key, o.key)),
            key=lambda o: o.key,
        )

    async def _forget(
        self, bucket: BucketContext, key: str, warnings: list[MetadataWarning]
    ) -> None:
        """Drop the metadata row and favorite marks of a deleted object."""
        if is_placeholder(key):
            return
        try:
            await self.metadata_index.delete_metadata(bucket, key)
            await self.metadata_index.delete_favorites_for_path(bucket, key)
        except MediaError as err:
            logger.warning(f"Failed to remove metadata for {bucket.value}:{key}: {err}")
            warnings.append(
                MetadataWarning(key=key, message=f"Metadata not removed: {err}")
            )

    @staticmethod
    def _check_company_path(
        bucket: BucketContext, path: VirtualPath, min_depth: int, action: str
    ) -> None:
        if bucket == BucketContext.COMPANY and len(path) < min_depth:
            if not path:
                raise InvalidPath(f"Cannot {action} at the company root")
            raise InvalidPath(f"Cannot {action} the company folder '{path[0]}'")

    async def create_folder(
        self, bucket: BucketContext, parent_path: str | VirtualPath, name: str
    ) -> MutationResult:
        """Create an empty folder by writing its placeholder object."""
        parent = parse_path(parent_path)
        validate_segment(name)
        if name in PLACEHOLDER_NAMES:
            raise InvalidPath(f"'{name}' is a reserved name")
        self._check_company_path(bucket, parent, 1, "create a folder")
        key = to_key(child_of(parent, name))
        bucket_name = self.bucket_names[bucket]

        async def operation() -> MutationResult:
            if await self._snapshot(bucket_name, key):
                raise AlreadyExists(f"'{key}' already exists")
            placeholder = f"{folder_prefix(key)}{PLACEHOLDER_NAME}"
            await self.object_store.put_object(
                bucket_name, placeholder, b"", PLACEHOLDER_CONTENT_TYPE
            )
            logger.info(f"Created folder {bucket.value}:{key}")
            return MutationResult(bucket=bucket, path=key, succeeded=[placeholder])

        return await self._run(bucket, [key], operation)

    async def upload(
        self,
        bucket: BucketContext,
        path: str | VirtualPath,
        file_name: str,
        data: bytes,
        content_type: str | None = None,
        user_id: str | None = None,
        tags: Collection[str] = (),
    ) -> MutationResult:
        """Write a file into a folder and record its metadata.

        The object is kept even if the metadata write fails; the result then
        carries a warning instead.
        """
        folder = parse_path(path)
        validate_segment(file_name)
        if file_name in PLACEHOLDER_NAMES:
            raise InvalidPath(f"'{file_name}' is a reserved name")
        self._check_company_path(bucket, folder, 1, "upload")
        if len(data) > self.max_upload_size:
            raise UploadTooLarge(
                f"File is {len(data)} bytes, the limit is {self.max_upload_size}"
            )
        key = to_key(child_of(folder, file_name))
        bucket_name = self.bucket_names[bucket]
        mime_type = content_type or guess_content_type(file_name)

        async def operation() -> MutationResult:
            existing = await self.object_store.list_by_prefix(
                bucket_name, folder_prefix(key)
            )
            if existing.objects:
                raise AlreadyExists(f"A folder named '{key}' already exists")
            stored = await self.object_store.put_object(
                bucket_name, key, data, mime_type
            )
            result = MutationResult(bucket=bucket, path=key, succeeded=[key])
            record = MediaRecord(
                bucket=bucket,
                file_path=key,
                original_name=file_name,
                mime_type=mime_type,
                file_size=stored.size,
                uploaded_by=user_id,
                tags=set(tags),
            )
            try:
                await self.metadata_index.upsert_metadata(record)
            except MediaError as err:
                logger.warning(
                    f"Uploaded {bucket.value}:{key} but failed to record metadata: {err}"
                )
                result.warnings.append(
                    MetadataWarning(key=key, message=f"Metadata not recorded: {err}")
                )
            logger.info(f"Uploaded {bucket.value}:{key} ({stored.size} bytes)")
            return result

        return await self._run(bucket, [key], operation)

    async def rename_or_move(
        self,
        bucket: BucketContext,
        old_path: str | VirtualPath,
        new_path: str | VirtualPath,
    ) -> MutationResult:
        """Move a file or folder, with everything underneath it, to ``new_path``."""
        old = parse_path(old_path)
        new = parse_path(new_path)
        if not old or not new:
            raise InvalidPath("Cannot move the root folder")
        self._check_company_path(bucket, old, 2, "move or rename")
        self._check_company_path(bucket, new, 2, "move into")
        old_key = to_key(old)
        new_key = to_key(new)
        if old_key == new_key:
            raise InvalidPath(f"'{old_key}' is already at that path")
        if is_prefix_of(old_key, new_key):
            raise InvalidPath(f"Cannot move '{old_key}' into itself")
        bucket_name = self.bucket_names[bucket]

        async def operation() -> MutationResult:
            objects = await self._snapshot(bucket_name, old_key)
            if not objects:
                raise NotFound(f"'{old_key}' not found")
            if await self._snapshot(bucket_name, new_key):
                raise AlreadyExists(f"'{new_key}' already exists")

            result = MutationResult(bucket=bucket, path=old_key, new_path=new_key)
            for index, obj in enumerate(objects):
                target = replace_prefix(obj.key, old_key, new_key)
                try:
                    await self.object_store.copy_object(bucket_name, obj.key, target)
                    await self.object_store.delete_object(bucket_name, obj.key)
                except MediaError as err:
                    result.failed = [o.key for o in objects[index:]]
                    logger.warning(
                        f"Move of {bucket.value}:{old_key} stopped at {obj.key}: {err}"
                    )
                    if not result.succeeded:
                        raise
                    raise PartialFailure(
                        f"Moved {len(result.succeeded)} of {len(objects)} objects "
                        f"from '{old_key}' to '{new_key}': {err}",
                        succeeded=result.succeeded,
                        failed=result.failed,
                    ) from err
                result.succeeded.append(obj.key)
                if is_placeholder(obj.key):
                    continue
                try:
                    await self.metadata_index.rekey(bucket, obj.key, target)
                except MediaError as err:
                    logger.warning(
                        f"Moved {bucket.value}:{obj.key} but failed to rekey metadata: {err}"
                    )
                    result.warnings.append(
                        MetadataWarning(
                            key=target, message=f"Metadata not moved from {obj.key}"
                        )
                    )
            logger.info(
                f"Moved {bucket.value}:{old_key} to {new_key} "
                f"({len(result.succeeded)} objects)"
            )
            return result

        return await self._run(bucket, [old_key, new_key], operation)

    async def rename(
        self, bucket: BucketContext, path: str | VirtualPath, new_name: str
    ) -> MutationResult:
        """Rename a file or folder in place."""
        segments = parse_path(path)
        if not segments:
            raise InvalidPath("Cannot rename the root folder")
        validate_segment(new_name)
        if new_name in PLACEHOLDER_NAMES:
            raise InvalidPath(f"'{new_name}' is a reserved name")
        return await self.rename_or_move(
            bucket, segments, child_of(parent_of(segments), new_name)
        )

    async def move(
        self,
        bucket: BucketContext,
        path: str | VirtualPath,
        new_parent: str | VirtualPath,
    ) -> MutationResult:
        """Move a file or folder into another folder, keeping its name."""
        segments = parse_path(path)
        if not segments:
            raise InvalidPath("Cannot move the root folder")
        return await self.rename_or_move(
            bucket, segments, child_of(parse_path(new_parent), name_of(segments))
        )

    async def delete(
        self, bucket: BucketContext, path: str | VirtualPath, is_folder: bool
    ) -> MutationResult:
        """Delete a file, or a folder and everything underneath it.

        A folder is enumerated once up front; objects written into it after
        that are left alone.
        """
        segments = parse_path(path)
        if not segments:
            raise InvalidPath("Cannot delete the root folder")
        self._check_company_path(bucket, segments, 2, "delete")
        key = to_key(segments)
        bucket_name = self.bucket_names[bucket]

        async def operation() -> MutationResult:
            if is_folder:
                listing = await self.object_store.list_by_prefix(
                    bucket_name, folder_prefix(key)
                )
                objects = sorted(listing.objects, key=lambda o: o.key)
            else:
                objects = [o for o in await self._snapshot(bucket_name, key) if o.key == key]
            if not objects:
                raise NotFound(f"'{key}' not found")

            result = MutationResult(bucket=bucket, path=key)
            last_error: MediaError | None = None
            for obj in objects:
                try:
                    await self.object_store.delete_object(bucket_name, obj.key)
                except MediaError as err:
                    logger.warning(f"Failed to delete {bucket.value}:{obj.key}: {err}")
                    result.failed.append(obj.key)
                    last_error = err
                    continue
                result.succeeded.append(obj.key)
                await self._forget(bucket, obj.key, result.warnings)

            if last_error is not None:
                if not result.succeeded:
                    raise last_error
                raise PartialFailure(
                    f"Deleted {len(result.succeeded)} of {len(objects)} objects "
                    f"under '{key}'",
                    succeeded=result.succeeded,
                    failed=result.failed,
                ) from last_error
            logger.info(
                f"Deleted {bucket.value}:{join_path(segments)} "
                f"({len(result.succeeded)} objects)"
            )
            return result

        return await self._run(bucket, [key], operation)
