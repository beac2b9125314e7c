import time

from sqlalchemy import BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from medialib.server.db.base import Base


def _now_ms() -> int:
    return int(time.time() * 1000)


class MediaMetadataDO(Base):
    """Descriptive row for one stored object."""

    __tablename__ = "media_metadata"
    __table_args__ = (UniqueConstraint("bucket_id", "file_path"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    bucket_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    """Bucket context the object lives in."""

    file_path: Mapped[str] = mapped_column(String, index=True, nullable=False)
    """Object store key of the file."""

    original_name: Mapped[str] = mapped_column(String, nullable=False)

    mime_type: Mapped[str | None] = mapped_column(String, nullable=True)

    file_size: Mapped[int] = mapped_column(BigInteger, default=0)

    tags: Mapped[str | None] = mapped_column(String, nullable=True)
    """Comma-separated list of tag names."""

    uploaded_by: Mapped[str | None] = mapped_column(String, nullable=True)

    upload_date: Mapped[int] = mapped_column(BigInteger, default=_now_ms)
    """Upload timestamp in milliseconds."""

    def __repr__(self) -> str:
        return f"<MediaMetadataDO(bucket_id='{self.bucket_id}', file_path='{self.file_path}')>"


class MediaFavoriteDO(Base):
    """A user's favorite mark on a file. Existence means favorited."""

    __tablename__ = "media_favorites"
    __table_args__ = (UniqueConstraint("user_id", "bucket_id", "file_path"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    bucket_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    file_path: Mapped[str] = mapped_column(String, index=True, nullable=False)
    create_time: Mapped[int] = mapped_column(BigInteger, default=_now_ms)


class MediaCompanyDO(Base):
    """A company whose folder is shown at the root of the company context."""

    __tablename__ = "media_companies"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    """Company id, also the name of its top level folder."""

    name: Mapped[str] = mapped_column(String, nullable=False)
    create_time: Mapped[int] = mapped_column(BigInteger, default=_now_ms)
