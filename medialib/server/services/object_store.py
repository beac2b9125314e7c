"""Object store clients.

The object store is a flat key/value blob store with no folder concept. Keys
are virtual paths joined with ``/``; folders are emulated by prefixes.
"""

import asyncio
import logging
import mimetypes
import os
import secrets
import time
import urllib.parse
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles
from mashumaro.mixins.json import DataClassJSONMixin

from ..constants import DEFAULT_CONTENT_TYPE, SEPARATOR
from ..exceptions import NotFound, StoreUnavailable

logger = logging.getLogger(__name__)

__all__ = [
    "StoredObject",
    "ObjectListing",
    "ObjectStore",
    "MemoryObjectStore",
    "LocalObjectStore",
    "group_by_delimiter",
    "guess_content_type",
]


@dataclass
class StoredObject:
    """A single object in the store."""

    bucket: str
    key: str
    size: int
    content_type: str
    created_at: int
    """Creation time in milliseconds since the epoch."""


@dataclass
class ObjectListing:
    """Result of a prefix listing.

    With a delimiter, ``objects`` holds only the immediate children and
    ``prefixes`` the distinct sub-prefixes (each ending with the delimiter).
    """

    objects: list[StoredObject] = field(default_factory=list)
    prefixes: list[str] = field(default_factory=list)


def now_ms() -> int:
    return int(time.time() * 1000)


def guess_content_type(file_name: str) -> str:
    """Guess the mime type from a file name."""
    mime_type, _ = mimetypes.guess_type(file_name)
    if mime_type is None:
        if file_name.endswith(".webp"):
            return "image/webp"
        return DEFAULT_CONTENT_TYPE
    return mime_type


def group_by_delimiter(
    objects: list[StoredObject], prefix: str, delimiter: str | None
) -> ObjectListing:
    """Split a flat recursive listing into immediate children and sub-prefixes.

    Used by backends without native delimiter support: objects are grouped by
    the first path segment remaining after the prefix.
    """
    matching = sorted(
        (o for o in objects if o.key.startswith(prefix)), key=lambda o: o.key
    )
    if not delimiter:
        return ObjectListing(objects=matching)

    listing = ObjectListing()
    seen: set[str] = set()
    for obj in matching:
        remainder = obj.key[len(prefix) :]
        head, sep, _ = remainder.partition(delimiter)
        if sep:
            common = f"{prefix}{head}{delimiter}"
            if common not in seen:
                seen.add(common)
                listing.prefixes.append(common)
        else:
            listing.objects.append(obj)
    return listing


class ObjectStore(ABC):
    """Interface for the flat, key addressed object store."""

    @abstractmethod
    async def list_by_prefix(
        self, bucket: str, prefix: str, delimiter: str | None = None
    ) -> ObjectListing:
        """List objects whose key starts with ``prefix``."""

    @abstractmethod
    async def put_object(
        self, bucket: str, key: str, data: bytes, content_type: str
    ) -> StoredObject:
        """Write an object, replacing any existing one at the key."""

    @abstractmethod
    async def copy_object(self, bucket: str, src_key: str, dst_key: str) -> StoredObject:
        """Copy an object within a bucket. Raises NotFound if the source is missing."""

    @abstractmethod
    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error."""

    @abstractmethod
    async def get_object(self, bucket: str, key: str) -> tuple[bytes, str]:
        """Read an object's content and content type."""

    @abstractmethod
    def public_url(self, bucket: str, key: str) -> str:
        """Return the public URL of an object."""

    async def close(self) -> None:
        """Release any held resources."""


class MemoryObjectStore(ObjectStore):
    """In-memory object store, used for development and tests."""

    def __init__(self, public_base_url: str = "memory://") -> None:
        self._buckets: dict[str, dict[str, tuple[bytes, StoredObject]]] = {}
        self._public_base_url = public_base_url.rstrip("/")

    def _bucket(self, bucket: str) -> dict[str, tuple[bytes, StoredObject]]:
        return self._buckets.setdefault(bucket, {})

    def keys(self, bucket: str) -> list[str]:
        """All keys in a bucket, sorted."""
        return sorted(self._bucket(bucket))

    async def list_by_prefix(
        self, bucket: str, prefix: str, delimiter: str | None = None
    ) -> ObjectListing:
        objects = [obj for _, obj in self._bucket(bucket).values()]
        return group_by_delimiter(objects, prefix, delimiter)

    async def put_object(
        self, bucket: str, key: str, data: bytes, content_type: str
    ) -> StoredObject:
        obj = StoredObject(
            bucket=bucket,
            key=key,
            size=len(data),
            content_type=content_type,
            created_at=now_ms(),
        )
        self._bucket(bucket)[key] = (data, obj)
        return obj

    async def copy_object(self, bucket: str, src_key: str, dst_key: str) -> StoredObject:
        items = self._bucket(bucket)
        if src_key not in items:
            raise NotFound(f"Object {src_key} not found in {bucket}")
        data, src = items[src_key]
        obj = StoredObject(
            bucket=bucket,
            key=dst_key,
            size=src.size,
            content_type=src.content_type,
            created_at=now_ms(),
        )
        items[dst_key] = (data, obj)
        return obj

    async def delete_object(self, bucket: str, key: str) -> None:
        self._bucket(bucket).pop(key, None)

    async def get_object(self, bucket: str, key: str) -> tuple[bytes, str]:
        items = self._bucket(bucket)
        if key not in items:
            raise NotFound(f"Object {key} not found in {bucket}")
        data, obj = items[key]
        return data, obj.content_type

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self._public_base_url}/{bucket}/{urllib.parse.quote(key)}"


@dataclass
class _ObjectInfo(DataClassJSONMixin):
    """Sidecar describing a locally stored object."""

    key: str
    content_type: str
    created_at: int


class LocalObjectStore(ObjectStore):
    """Local filesystem implementation of the object store.

    Keys are stored flat, one file per key, so ``a`` and ``a/b`` can coexist
    exactly as they can in a real object store.

    Path structure: <root>/<bucket>/objects/<quoted key>
                    <root>/<bucket>/info/<quoted key>.json
    """

    def __init__(self, storage_root: Path, public_base_url: str = "") -> None:
        """Create a local object store instance."""
        self.root = storage_root
        self.root.mkdir(parents=True, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")

    @staticmethod
    def _encode(key: str) -> str:
        return urllib.parse.quote(key, safe="")

    def _object_path(self, bucket: str, key: str) -> Path:
        return self.root / bucket / "objects" / self._encode(key)

    def _info_path(self, bucket: str, key: str) -> Path:
        return self.root / bucket / "info" / f"{self._encode(key)}.json"

    async def _read_info(self, bucket: str, key: str) -> StoredObject:
        path = self._object_path(bucket, key)
        info_path = self._info_path(bucket, key)
        try:
            async with aiofiles.open(info_path, "r") as f:
                info = _ObjectInfo.from_json(await f.read())
            size = (await asyncio.to_thread(path.stat)).st_size
        except FileNotFoundError as err:
            raise NotFound(f"Object {key} not found in {bucket}") from err
        except OSError as err:
            raise StoreUnavailable(f"Failed to read {key}: {err}") from err
        return StoredObject(
            bucket=bucket,
            key=info.key,
            size=size,
            content_type=info.content_type,
            created_at=info.created_at,
        )

    def _scan_keys(self, bucket: str) -> list[str]:
        objects_dir = self.root / bucket / "objects"
        if not objects_dir.exists():
            return []
        return [
            urllib.parse.unquote(entry.name)
            for entry in os.scandir(objects_dir)
            if entry.is_file() and not entry.name.endswith(".tmp")
        ]

    async def list_by_prefix(
        self, bucket: str, prefix: str, delimiter: str | None = None
    ) -> ObjectListing:
        try:
            keys = await asyncio.to_thread(self._scan_keys, bucket)
        except OSError as err:
            raise StoreUnavailable(f"Failed to list {bucket}: {err}") from err
        objects = []
        for key in keys:
            if not key.startswith(prefix):
                continue
            try:
                objects.append(await self._read_info(bucket, key))
            except NotFound:
                # Deleted between the scan and the read.
                continue
        return group_by_delimiter(objects, prefix, delimiter)

    async def _write(self, bucket: str, key: str, data: bytes, info: _ObjectInfo) -> None:
        path = self._object_path(bucket, key)
        info_path = self._info_path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        info_path.parent.mkdir(parents=True, exist_ok=True)

        # Write both files to temp names, then move the object before its sidecar
        suffix = f".{secrets.token_hex(4)}.tmp"
        temp_path = path.with_name(f"{path.name}{suffix}")
        temp_info_path = info_path.with_name(f"{info_path.name}{suffix}")
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(data)
            async with aiofiles.open(temp_info_path, "w") as f:
                await f.write(info.to_json())
            temp_path.replace(path)
            temp_info_path.replace(info_path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            temp_info_path.unlink(missing_ok=True)
            raise

    async def put_object(
        self, bucket: str, key: str, data: bytes, content_type: str
    ) -> StoredObject:
        info = _ObjectInfo(key=key, content_type=content_type, created_at=now_ms())
        try:
            await self._write(bucket, key, data, info)
        except OSError as err:
            raise StoreUnavailable(f"Failed to write {key}: {err}") from err
        logger.debug(f"Object written: {bucket}/{key} ({len(data)} bytes)")
        return StoredObject(
            bucket=bucket,
            key=key,
            size=len(data),
            content_type=content_type,
            created_at=info.created_at,
        )

    async def copy_object(self, bucket: str, src_key: str, dst_key: str) -> StoredObject:
        data, content_type = await self.get_object(bucket, src_key)
        return await self.put_object(bucket, dst_key, data, content_type)

    async def delete_object(self, bucket: str, key: str) -> None:
        try:
            self._object_path(bucket, key).unlink(missing_ok=True)
            self._info_path(bucket, key).unlink(missing_ok=True)
        except OSError as err:
            raise StoreUnavailable(f"Failed to delete {key}: {err}") from err

    async def get_object(self, bucket: str, key: str) -> tuple[bytes, str]:
        info = await self._read_info(bucket, key)
        try:
            async with aiofiles.open(self._object_path(bucket, key), "rb") as f:
                return await f.read(), info.content_type
        except FileNotFoundError as err:
            raise NotFound(f"Object {key} not found in {bucket}") from err
        except OSError as err:
            raise StoreUnavailable(f"Failed to read {key}: {err}") from err

    def public_url(self, bucket: str, key: str) -> str:
        quoted = SEPARATOR.join(urllib.parse.quote(s) for s in key.split(SEPARATOR))
        if self._public_base_url:
            return f"{self._public_base_url}/{bucket}/{quoted}"
        return self._object_path(bucket, key).resolve().as_uri()
