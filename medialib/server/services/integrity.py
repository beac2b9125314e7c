import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from ..constants import BucketContext
from ..exceptions import ConflictingOperation
from ..utils.paths import is_placeholder
from .coordination import PrefixLockManager
from .metadata import MetadataIndex
from .object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class IntegrityReport:
    bucket: BucketContext
    scanned: int = 0
    missing_metadata: list[str] = field(default_factory=list)
    dangling_metadata: list[str] = field(default_factory=list)
    orphan_favorites: list[tuple[str, str]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    """Keys under a mutation in flight, left for the next sweep."""
    ok: int = 0
    fixed: int = 0


class IntegrityService:
    """Service to correlate stored objects with metadata rows and favorites.

    Objects left behind by a partially failed move show up here as missing
    metadata; metadata and favorites whose object is gone are dangling. Keys
    touched by an in-flight mutation are skipped, since a move rekeys its
    rows only after the objects are copied.
    """

    def __init__(
        self,
        object_store: ObjectStore,
        metadata_index: MetadataIndex,
        bucket_names: Mapping[BucketContext, str],
        lock_manager: PrefixLockManager | None = None,
    ) -> None:
        """Create an integrity service instance."""
        self.object_store = object_store
        self.metadata_index = metadata_index
        self.bucket_names = bucket_names
        self.locks = lock_manager or PrefixLockManager()

    async def reconcile(
        self, bucket: BucketContext, fix: bool = False
    ) -> IntegrityReport:
        """Check every object in a bucket.

        With ``fix`` set, dangling metadata rows and orphan favorites are
        deleted. Objects are never deleted.
        """
        report = IntegrityReport(bucket=bucket)
        listing = await self.object_store.list_by_prefix(self.bucket_names[bucket], "")
        keys = {o.key for o in listing.objects if not is_placeholder(o.key)}
        records = {
            r.file_path
            for r in await self.metadata_index.list_metadata(bucket, "", recursive=True)
        }
        favorites = await self.metadata_index.list_all_favorites(bucket)

        # Checked after the last await so the lock table matches the snapshots
        busy = {k for k in keys | records if self.locks.is_locked(bucket, k)}
        busy.update(p for _, p in favorites if self.locks.is_locked(bucket, p))
        report.skipped = sorted(busy)

        for key in sorted(keys - busy):
            report.scanned += 1
            if key not in records:
                logger.error(f"Integrity Fail: Object {bucket.value}:{key} has no metadata")
                report.missing_metadata.append(key)
                continue
            report.ok += 1

        for file_path in sorted(records - keys - busy):
            logger.warning(
                f"Integrity Warning: Metadata {bucket.value}:{file_path} has no object"
            )
            report.dangling_metadata.append(file_path)

        for user_id, file_path in favorites:
            if file_path not in keys and file_path not in busy:
                logger.warning(
                    f"Integrity Warning: Favorite of {user_id} on "
                    f"{bucket.value}:{file_path} has no object"
                )
                report.orphan_favorites.append((user_id, file_path))

        if fix:
            for file_path in report.dangling_metadata:
                if await self._fix_path(
                    bucket, file_path, self.metadata_index.delete_metadata
                ):
                    report.fixed += 1
            for user_id, file_path in report.orphan_favorites:
                if await self._fix_path(
                    bucket,
                    file_path,
                    lambda b, p: self.metadata_index.delete_favorite(user_id, b, p),
                ):
                    report.fixed += 1
            logger.info(f"Reconcile {bucket.value}: removed {report.fixed} stale rows")
        return report

    async def _fix_path(self, bucket: BucketContext, file_path: str, remove) -> bool:
        """Remove a stale row while holding its key, if its object is still gone."""
        try:
            self.locks.acquire(bucket, file_path)
        except ConflictingOperation:
            logger.info(f"Reconcile skipping {bucket.value}:{file_path}, it is in use")
            return False
        try:
            listing = await self.object_store.list_by_prefix(
                self.bucket_names[bucket], file_path
            )
            if any(o.key == file_path for o in listing.objects):
                logger.info(f"Reconcile keeping {bucket.value}:{file_path}, object is back")
                return False
            await remove(bucket, file_path)
            return True
        finally:
            self.locks.release(bucket, file_path)

    async def run_periodically(self, interval: float) -> None:
        """Reconcile every bucket forever, sleeping ``interval`` seconds between sweeps."""
        while True:
            for bucket in BucketContext:
                try:
                    report = await self.reconcile(bucket, fix=True)
                except Exception as err:
                    logger.error(f"Reconcile of {bucket.value} failed: {err}")
                    continue
                logger.info(
                    f"Reconcile {bucket.value}: scanned={report.scanned} ok={report.ok} "
                    f"missing_metadata={len(report.missing_metadata)}"
                )
            await asyncio.sleep(interval)
