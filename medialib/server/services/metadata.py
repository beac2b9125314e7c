"""Relational metadata index for stored media.

Rows are keyed by ``(bucket_id, file_path)`` and hold descriptive data the
object store does not keep: original name, tags, uploader and favorite marks.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Collection
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..constants import SEPARATOR, BucketContext
from ..db.models.media import MediaCompanyDO, MediaFavoriteDO, MediaMetadataDO
from ..db.session import DatabaseSessionManager
from ..exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

__all__ = [
    "MediaRecord",
    "MetadataIndex",
    "SqlMetadataIndex",
]


@dataclass
class MediaRecord:
    """Metadata describing one stored file."""

    bucket: BucketContext
    file_path: str
    original_name: str
    mime_type: str | None
    file_size: int
    uploaded_by: str | None = None
    tags: set[str] = field(default_factory=set)
    upload_date: int = field(default_factory=lambda: int(time.time() * 1000))


def _encode_tags(tags: Collection[str]) -> str | None:
    cleaned = sorted({t.strip() for t in tags if t.strip()})
    return ",".join(cleaned) if cleaned else None


def _decode_tags(value: str | None) -> set[str]:
    if not value:
        return set()
    return {t for t in value.split(",") if t}


def _to_record(row: MediaMetadataDO) -> MediaRecord:
    return MediaRecord(
        bucket=BucketContext.from_value(row.bucket_id),
        file_path=row.file_path,
        original_name=row.original_name,
        mime_type=row.mime_type,
        file_size=row.file_size,
        uploaded_by=row.uploaded_by,
        tags=_decode_tags(row.tags),
        upload_date=row.upload_date,
    )


def _is_immediate_child(prefix: str, path: str) -> bool:
    return SEPARATOR not in path[len(prefix) :]


class MetadataIndex(ABC):
    """Interface for the metadata index consumed by the media services."""

    @abstractmethod
    async def upsert_metadata(self, record: MediaRecord) -> None:
        """Insert a record, replacing any existing row for the same key."""

    @abstractmethod
    async def get_metadata(
        self, bucket: BucketContext, file_path: str
    ) -> MediaRecord | None:
        """Get the record for a key, if any."""

    @abstractmethod
    async def delete_metadata(self, bucket: BucketContext, file_path: str) -> None:
        """Delete the record for a key. Missing rows are ignored."""

    @abstractmethod
    async def list_metadata(
        self, bucket: BucketContext, prefix: str, recursive: bool = False
    ) -> list[MediaRecord]:
        """List records whose key starts with ``prefix``.

        ``prefix`` is a folder prefix ending with ``/`` (or empty for the root).
        Without ``recursive`` only the immediate children are returned.
        """

    @abstractmethod
    async def rekey(self, bucket: BucketContext, old_path: str, new_path: str) -> None:
        """Point the metadata row and all favorite marks of a key at a new key."""

    @abstractmethod
    async def upsert_favorite(
        self, user_id: str, bucket: BucketContext, file_path: str
    ) -> None:
        """Mark a file as a favorite of a user."""

    @abstractmethod
    async def delete_favorite(
        self, user_id: str, bucket: BucketContext, file_path: str
    ) -> None:
        """Remove a user's favorite mark."""

    @abstractmethod
    async def list_favorites(self, user_id: str, bucket: BucketContext) -> list[str]:
        """List the keys a user has marked as favorite."""

    @abstractmethod
    async def favorited_paths(
        self, user_id: str, bucket: BucketContext, paths: Collection[str]
    ) -> set[str]:
        """Return the subset of ``paths`` the user has marked as favorite."""

    @abstractmethod
    async def delete_favorites_for_path(
        self, bucket: BucketContext, file_path: str
    ) -> None:
        """Delete the favorite marks of every user on a key."""

    @abstractmethod
    async def list_all_favorites(
        self, bucket: BucketContext
    ) -> list[tuple[str, str]]:
        """List ``(user_id, file_path)`` for every favorite mark in a bucket."""

    @abstractmethod
    async def list_recent(self, bucket: BucketContext, limit: int) -> list[MediaRecord]:
        """List the most recently uploaded records, newest first."""

    @abstractmethod
    async def register_company(self, company_id: str, name: str) -> None:
        """Register (or rename) a company folder."""

    @abstractmethod
    async def list_companies(self) -> dict[str, str]:
        """Map company id to company name."""


class SqlMetadataIndex(MetadataIndex):
    """SQLAlchemy backed metadata index."""

    def __init__(self, session_manager: DatabaseSessionManager) -> None:
        self._session_manager = session_manager

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self._session_manager.session() as session:
                yield session
        except SQLAlchemyError as err:
            logger.error(f"Metadata index request failed: {err}")
            raise StoreUnavailable(f"Metadata index unavailable: {err}") from err

    async def upsert_metadata(self, record: MediaRecord) -> None:
        async with self._session() as session:
            stmt = select(MediaMetadataDO).where(
                MediaMetadataDO.bucket_id == record.bucket.value,
                MediaMetadataDO.file_path == record.file_path,
            )
            existing = (await session.execute(stmt)).scalar_one_or_none()
            if existing is None:
                existing = MediaMetadataDO(
                    bucket_id=record.bucket.value, file_path=record.file_path
                )
                session.add(existing)
            existing.original_name = record.original_name
            existing.mime_type = record.mime_type
            existing.file_size = record.file_size
            existing.tags = _encode_tags(record.tags)
            existing.uploaded_by = record.uploaded_by
            existing.upload_date = record.upload_date
            await session.commit()

    async def get_metadata(
        self, bucket: BucketContext, file_path: str
    ) -> MediaRecord | None:
        async with self._session() as session:
            stmt = select(MediaMetadataDO).where(
                MediaMetadataDO.bucket_id == bucket.value,
                MediaMetadataDO.file_path == file_path,
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_record(row) if row else None

    async def delete_metadata(self, bucket: BucketContext, file_path: str) -> None:
        async with self._session() as session:
            await session.execute(
                delete(MediaMetadataDO).where(
                    MediaMetadataDO.bucket_id == bucket.value,
                    MediaMetadataDO.file_path == file_path,
                )
            )
            await session.commit()

    async def list_metadata(
        self, bucket: BucketContext, prefix: str, recursive: bool = False
    ) -> list[MediaRecord]:
        async with self._session() as session:
            stmt = select(MediaMetadataDO).where(
                MediaMetadataDO.bucket_id == bucket.value
            )
            if prefix:
                stmt = stmt.where(
                    MediaMetadataDO.file_path.startswith(prefix, autoescape=True)
                )
            rows = (await session.execute(stmt)).scalars().all()
        records = [_to_record(row) for row in rows]
        if not recursive:
            records = [r for r in records if _is_immediate_child(prefix, r.file_path)]
        return records

    async def rekey(self, bucket: BucketContext, old_path: str, new_path: str) -> None:
        async with self._session() as session:
            # A stale row at the destination would violate the unique key.
            await session.execute(
                delete(MediaMetadataDO).where(
                    MediaMetadataDO.bucket_id == bucket.value,
                    MediaMetadataDO.file_path == new_path,
                )
            )
            await session.execute(
                update(MediaMetadataDO)
                .where(
                    MediaMetadataDO.bucket_id == bucket.value,
                    MediaMetadataDO.file_path == old_path,
                )
                .values(file_path=new_path)
            )
            await session.execute(
                delete(MediaFavoriteDO).where(
                    MediaFavoriteDO.bucket_id == bucket.value,
                    MediaFavoriteDO.file_path == new_path,
                )
            )
            await session.execute(
                update(MediaFavoriteDO)
                .where(
                    MediaFavoriteDO.bucket_id == bucket.value,
                    MediaFavoriteDO.file_path == old_path,
                )
                .values(file_path=new_path)
            )
            await session.commit()

    async def upsert_favorite(
        self, user_id: str, bucket: BucketContext, file_path: str
    ) -> None:
        async with self._session() as session:
            stmt = select(MediaFavoriteDO).where(
                MediaFavoriteDO.user_id == user_id,
                MediaFavoriteDO.bucket_id == bucket.value,
                MediaFavoriteDO.file_path == file_path,
            )
            if (await session.execute(stmt)).scalar_one_or_none() is not None:
                return
            session.add(
                MediaFavoriteDO(
                    user_id=user_id, bucket_id=bucket.value, file_path=file_path
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                # A concurrent toggle inserted the same mark first.
                await session.rollback()

    async def delete_favorite(
        self, user_id: str, bucket: BucketContext, file_path: str
    ) -> None:
        async with self._session() as session:
            await session.execute(
                delete(MediaFavoriteDO).where(
                    MediaFavoriteDO.user_id == user_id,
                    MediaFavoriteDO.bucket_id == bucket.value,
                    MediaFavoriteDO.file_path == file_path,
                )
            )
            await session.commit()

    async def list_favorites(self, user_id: str, bucket: BucketContext) -> list[str]:
        async with self._session() as session:
            stmt = (
                select(MediaFavoriteDO.file_path)
                .where(
                    MediaFavoriteDO.user_id == user_id,
                    MediaFavoriteDO.bucket_id == bucket.value,
                )
                .order_by(MediaFavoriteDO.file_path)
            )
            return list((await session.execute(stmt)).scalars().all())

    async def favorited_paths(
        self, user_id: str, bucket: BucketContext, paths: Collection[str]
    ) -> set[str]:
        if not paths:
            return set()
        async with self._session() as session:
            stmt = select(MediaFavoriteDO.file_path).where(
                MediaFavoriteDO.user_id == user_id,
                MediaFavoriteDO.bucket_id == bucket.value,
                MediaFavoriteDO.file_path.in_(list(paths)),
            )
            return set((await session.execute(stmt)).scalars().all())

    async def delete_favorites_for_path(
        self, bucket: BucketContext, file_path: str
    ) -> None:
        async with self._session() as session:
            await session.execute(
                delete(MediaFavoriteDO).where(
                    MediaFavoriteDO.bucket_id == bucket.value,
                    MediaFavoriteDO.file_path == file_path,
                )
            )
            await session.commit()

    async def list_all_favorites(
        self, bucket: BucketContext
    ) -> list[tuple[str, str]]:
        async with self._session() as session:
            stmt = select(MediaFavoriteDO.user_id, MediaFavoriteDO.file_path).where(
                MediaFavoriteDO.bucket_id == bucket.value
            )
            return [(row[0], row[1]) for row in (await session.execute(stmt)).all()]

    async def list_recent(self, bucket: BucketContext, limit: int) -> list[MediaRecord]:
        async with self._session() as session:
            stmt = (
                select(MediaMetadataDO)
                .where(MediaMetadataDO.bucket_id == bucket.value)
                .order_by(MediaMetadataDO.upload_date.desc(), MediaMetadataDO.id.desc())
                .limit(limit)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_record(row) for row in rows]

    async def register_company(self, company_id: str, name: str) -> None:
        async with self._session() as session:
            existing = await session.get(MediaCompanyDO, company_id)
            if existing:
                existing.name = name
            else:
                session.add(MediaCompanyDO(id=company_id, name=name))
            await session.commit()

    async def list_companies(self) -> dict[str, str]:
        async with self._session() as session:
            rows = (await session.execute(select(MediaCompanyDO))).scalars().all()
            return {row.id: row.name for row in rows}
