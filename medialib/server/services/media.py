"""Media library operations exposed to the HTTP layer and the CLI.

Every method returns a response object; service errors are reported through
the ``success``, ``errorCode`` and ``errorMsg`` fields instead of raised.
"""

import logging
from collections.abc import Collection, Mapping

from ...models.media import (
    CompanyVO,
    DirectoryListingVO,
    FavoriteListVO,
    FavoriteRefVO,
    FavoriteVO,
    IntegrityReportVO,
    MediaItemVO,
    MediaPageVO,
    MediaQueryDTO,
    MediaWarningVO,
    MutationVO,
    RecentUploadsVO,
)
from ..constants import DEFAULT_PAGE_SIZE, SEPARATOR, BucketContext
from ..exceptions import InvalidQuery, MediaError, PartialFailure
from ..utils.paths import VirtualPath, join_path, validate_segment
from .entities import FileEntry, FolderEntry, MediaItem, MetadataWarning, MutationResult
from .favorites import FavoritesService
from .integrity import IntegrityService
from .listing import ListingService, categorize
from .metadata import MetadataIndex
from .mutation import MutationService
from .object_store import ObjectStore
from .query import MediaQuery, SortDirection, SortKey, apply_query

logger = logging.getLogger(__name__)


def to_item_vo(item: MediaItem) -> MediaItemVO:
    if isinstance(item, FolderEntry):
        return MediaItemVO(
            name=item.name,
            path=item.path,
            is_folder=True,
            created_at=item.created_at,
            file_count=item.file_count,
            display_name=item.display_name,
        )
    return MediaItemVO(
        name=item.name,
        path=item.path,
        is_folder=False,
        size=item.size,
        created_at=item.created_at,
        mime_type=item.mime_type,
        category=item.category.value,
        url=item.url,
        favorited=item.favorited,
        uploaded_by=item.uploaded_by,
        original_name=item.original_name,
        tags=sorted(item.tags),
    )


def _warning_vos(warnings: list[MetadataWarning]) -> list[MediaWarningVO]:
    return [MediaWarningVO(key=w.key, message=w.message, code=w.code) for w in warnings]


def _mutation_vo(result: MutationResult) -> MutationVO:
    return MutationVO(
        bucket=result.bucket.value,
        path=result.path,
        new_path=result.new_path,
        succeeded=result.succeeded,
        failed=result.failed,
        warnings=_warning_vos(result.warnings),
    )


def to_media_query(
    dto: MediaQueryDTO, default_page_size: int = DEFAULT_PAGE_SIZE
) -> MediaQuery:
    """Convert a request model into a query, validating the sort fields."""
    try:
        sort_key = SortKey.from_value(dto.sort_key)
        sort_dir = SortDirection.from_value(dto.sort_dir)
    except ValueError as err:
        raise InvalidQuery(str(err)) from err
    return MediaQuery(
        search=dto.search,
        file_types=set(dto.file_types),
        date_from=dto.date_from,
        date_to=dto.date_to,
        favorites_only=dto.favorites_only,
        tags=set(dto.tags),
        sort_key=sort_key,
        sort_dir=sort_dir,
        page=dto.page,
        page_size=dto.page_size if dto.page_size is not None else default_page_size,
    )


class MediaLibrary:
    """Facade over the listing, mutation, favorites and integrity services."""

    def __init__(
        self,
        object_store: ObjectStore,
        metadata_index: MetadataIndex,
        bucket_names: Mapping[BucketContext, str],
        listing: ListingService,
        mutations: MutationService,
        favorites: FavoritesService,
        integrity: IntegrityService,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.object_store = object_store
        self.metadata_index = metadata_index
        self.bucket_names = bucket_names
        self.listing = listing
        self.mutations = mutations
        self.favorites = favorites
        self.integrity = integrity
        self.default_page_size = default_page_size

    async def list_directory(
        self,
        bucket: BucketContext,
        path: str | VirtualPath,
        user_id: str | None = None,
    ) -> DirectoryListingVO:
        """List a directory. Failures return an empty listing carrying the error."""
        path_str = path if isinstance(path, str) else join_path(path)
        try:
            listing = await self.listing.list_directory(bucket, path, user_id)
        except MediaError as err:
            logger.info(f"Listing {bucket.value}:{path_str!r} failed: {err}")
            return DirectoryListingVO.failure(
                str(err), err.code, bucket=bucket.value, path=path_str.strip("/")
            )
        return DirectoryListingVO(
            bucket=bucket.value,
            path=listing.path,
            folders=[to_item_vo(f) for f in listing.folders],
            files=[to_item_vo(f) for f in listing.files],
            warnings=_warning_vos(listing.warnings),
        )

    async def query(
        self, dto: MediaQueryDTO, user_id: str | None = None
    ) -> MediaPageVO:
        """List a directory and return one filtered, sorted page of it."""
        page_size = dto.page_size if dto.page_size is not None else self.default_page_size
        try:
            media_query = to_media_query(dto, self.default_page_size)
            listing = await self.listing.list_directory(dto.bucket, dto.path, user_id)
            page = apply_query(listing, media_query)
        except MediaError as err:
            return MediaPageVO.failure(
                str(err),
                err.code,
                page=dto.page,
                page_size=page_size,
            )
        return MediaPageVO(
            items=[to_item_vo(item) for item in page.items],
            total_count=page.total_count,
            total_pages=page.total_pages,
            page=page.page,
            page_size=page.page_size,
            warnings=_warning_vos(listing.warnings),
        )

    async def _mutate(self, bucket: BucketContext, path: str, operation) -> MutationVO:
        try:
            result = await operation
        except PartialFailure as err:
            logger.warning(f"Partial failure on {bucket.value}:{path}: {err}")
            return MutationVO.failure(
                str(err),
                err.code,
                bucket=bucket.value,
                path=path,
                succeeded=err.succeeded,
                failed=err.failed,
            )
        except MediaError as err:
            return MutationVO.failure(str(err), err.code, bucket=bucket.value, path=path)
        return _mutation_vo(result)

    async def create_folder(
        self, bucket: BucketContext, parent_path: str, name: str
    ) -> MutationVO:
        return await self._mutate(
            bucket, parent_path, self.mutations.create_folder(bucket, parent_path, name)
        )

    async def upload(
        self,
        bucket: BucketContext,
        path: str,
        file_name: str,
        data: bytes,
        content_type: str | None = None,
        user_id: str | None = None,
        tags: Collection[str] = (),
    ) -> MutationVO:
        return await self._mutate(
            bucket,
            path,
            self.mutations.upload(
                bucket,
                path,
                file_name,
                data,
                content_type=content_type,
                user_id=user_id,
                tags=tags,
            ),
        )

    async def rename_or_move(
        self, bucket: BucketContext, old_path: str, new_path: str
    ) -> MutationVO:
        return await self._mutate(
            bucket, old_path, self.mutations.rename_or_move(bucket, old_path, new_path)
        )

    async def rename(self, bucket: BucketContext, path: str, new_name: str) -> MutationVO:
        return await self._mutate(bucket, path, self.mutations.rename(bucket, path, new_name))

    async def move(self, bucket: BucketContext, path: str, new_parent: str) -> MutationVO:
        return await self._mutate(bucket, path, self.mutations.move(bucket, path, new_parent))

    async def delete(self, bucket: BucketContext, path: str, is_folder: bool) -> MutationVO:
        return await self._mutate(
            bucket, path, self.mutations.delete(bucket, path, is_folder)
        )

    async def toggle_favorite(
        self, user_id: str, bucket: BucketContext, file_path: str, desired_state: bool
    ) -> FavoriteVO:
        try:
            state = await self.favorites.toggle_favorite(
                user_id, bucket, file_path, desired_state
            )
        except MediaError as err:
            return FavoriteVO.failure(str(err), err.code, file_path=file_path)
        return FavoriteVO(file_path=file_path.strip("/"), favorite=state)

    async def list_favorites(self, user_id: str, bucket: BucketContext) -> FavoriteListVO:
        try:
            paths = await self.favorites.list_favorites(user_id, bucket)
        except MediaError as err:
            return FavoriteListVO.failure(str(err), err.code)
        return FavoriteListVO(paths=paths)

    async def recent_uploads(
        self, bucket: BucketContext, limit: int = 20, user_id: str | None = None
    ) -> RecentUploadsVO:
        """Most recently uploaded files of a bucket, newest first."""
        if limit < 1:
            return RecentUploadsVO.failure(
                f"Limit must be at least 1, got {limit}", InvalidQuery.code
            )
        bucket_name = self.bucket_names[bucket]
        try:
            records = await self.metadata_index.list_recent(bucket, limit)
            favorites: set[str] = set()
            if user_id:
                favorites = await self.metadata_index.favorited_paths(
                    user_id, bucket, [r.file_path for r in records]
                )
        except MediaError as err:
            return RecentUploadsVO.failure(str(err), err.code)
        items = []
        for record in records:
            name = record.file_path.rsplit(SEPARATOR, 1)[-1]
            mime_type = record.mime_type or ""
            entry = FileEntry(
                name=name,
                path=record.file_path,
                size=record.file_size,
                mime_type=mime_type,
                created_at=record.upload_date,
                url=self.object_store.public_url(bucket_name, record.file_path),
                category=categorize(mime_type, name),
                favorited=record.file_path in favorites,
                uploaded_by=record.uploaded_by,
                tags=record.tags,
                original_name=record.original_name,
            )
            items.append(to_item_vo(entry))
        return RecentUploadsVO(items=items)

    async def register_company(self, company_id: str, name: str) -> CompanyVO:
        """Show a company folder at the company root before it holds any media."""
        try:
            validate_segment(company_id)
            await self.metadata_index.register_company(company_id, name)
        except MediaError as err:
            return CompanyVO.failure(str(err), err.code)
        logger.info(f"Registered company {company_id} ({name})")
        return CompanyVO(company_id=company_id, name=name)

    async def reconcile(self, bucket: BucketContext, fix: bool = False) -> IntegrityReportVO:
        try:
            report = await self.integrity.reconcile(bucket, fix=fix)
        except MediaError as err:
            return IntegrityReportVO.failure(str(err), err.code, bucket=bucket.value)
        return IntegrityReportVO(
            bucket=bucket.value,
            scanned=report.scanned,
            ok=report.ok,
            fixed=report.fixed,
            missing_metadata=report.missing_metadata,
            dangling_metadata=report.dangling_metadata,
            skipped=report.skipped,
            orphan_favorites=[
                FavoriteRefVO(user_id=user_id, file_path=file_path)
                for user_id, file_path in report.orphan_favorites
            ],
        )

    async def close(self) -> None:
        await self.mutations.wait_idle()
        await self.object_store.close()
