"""Shared pytest fixtures for server tests."""

from pathlib import Path

import pytest

from medialib.server.config import BucketsConfig, ServerConfig, StorageConfig
from medialib.server.constants import BucketContext
from medialib.server.db.session import DatabaseSessionManager
from medialib.server.services.coordination import PrefixLockManager
from medialib.server.services.favorites import FavoritesService
from medialib.server.services.integrity import IntegrityService
from medialib.server.services.listing import ListingService
from medialib.server.services.media import MediaLibrary
from medialib.server.services.mutation import MutationService
from tests.server.services.fakes import FailingMetadataIndex, FakeObjectStore

MAX_UPLOAD_SIZE = 4096


@pytest.fixture
def bucket_names() -> dict[BucketContext, str]:
    return BucketsConfig(internal="media", company="companies-media").names()


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def metadata_index(session_manager: DatabaseSessionManager) -> FailingMetadataIndex:
    return FailingMetadataIndex(session_manager)


@pytest.fixture
def lock_manager() -> PrefixLockManager:
    return PrefixLockManager()


@pytest.fixture
def listing_service(
    object_store: FakeObjectStore,
    metadata_index: FailingMetadataIndex,
    bucket_names: dict[BucketContext, str],
) -> ListingService:
    return ListingService(object_store, metadata_index, bucket_names)


@pytest.fixture
def mutation_service(
    object_store: FakeObjectStore,
    metadata_index: FailingMetadataIndex,
    bucket_names: dict[BucketContext, str],
    lock_manager: PrefixLockManager,
) -> MutationService:
    return MutationService(
        object_store,
        metadata_index,
        bucket_names,
        lock_manager=lock_manager,
        max_upload_size=MAX_UPLOAD_SIZE,
    )


@pytest.fixture
def favorites_service(metadata_index: FailingMetadataIndex) -> FavoritesService:
    return FavoritesService(metadata_index)


@pytest.fixture
def integrity_service(
    object_store: FakeObjectStore,
    metadata_index: FailingMetadataIndex,
    bucket_names: dict[BucketContext, str],
    lock_manager: PrefixLockManager,
) -> IntegrityService:
    return IntegrityService(
        object_store, metadata_index, bucket_names, lock_manager=lock_manager
    )


@pytest.fixture
def media_library(
    object_store: FakeObjectStore,
    metadata_index: FailingMetadataIndex,
    bucket_names: dict[BucketContext, str],
    listing_service: ListingService,
    mutation_service: MutationService,
    favorites_service: FavoritesService,
    integrity_service: IntegrityService,
) -> MediaLibrary:
    return MediaLibrary(
        object_store=object_store,
        metadata_index=metadata_index,
        bucket_names=bucket_names,
        listing=listing_service,
        mutations=mutation_service,
        favorites=favorites_service,
        integrity=integrity_service,
    )


@pytest.fixture
def server_config(tmp_path: Path) -> ServerConfig:
    """Create a ServerConfig object for testing."""
    return ServerConfig(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'medialib.db'}",
        max_upload_size=MAX_UPLOAD_SIZE,
        storage=StorageConfig(backend="memory", root=str(tmp_path / "storage")),
    )
