import asyncio
from pathlib import Path

import pytest

from medialib.server.constants import BucketContext
from medialib.server.db.session import DatabaseSessionManager
from medialib.server.exceptions import InvalidPath
from medialib.server.services.favorites import FavoritesService
from medialib.server.services.listing import ListingService
from medialib.server.services.metadata import SqlMetadataIndex
from medialib.server.services.mutation import MutationService
from medialib.server.services.query import MediaQuery, apply_query
from tests.conftest import OTHER_USER, TEST_USER

INTERNAL = BucketContext.INTERNAL


async def test_toggle_is_idempotent(favorites_service: FavoritesService) -> None:
    assert await favorites_service.toggle_favorite(TEST_USER, INTERNAL, "Docs/a.png", True)
    await favorites_service.toggle_favorite(TEST_USER, INTERNAL, "/Docs/a.png", True)
    assert await favorites_service.list_favorites(TEST_USER, INTERNAL) == ["Docs/a.png"]

    assert not await favorites_service.toggle_favorite(
        TEST_USER, INTERNAL, "Docs/a.png", False
    )
    await favorites_service.toggle_favorite(TEST_USER, INTERNAL, "Docs/a.png", False)
    assert await favorites_service.list_favorites(TEST_USER, INTERNAL) == []


async def test_toggle_root_is_invalid(favorites_service: FavoritesService) -> None:
    with pytest.raises(InvalidPath):
        await favorites_service.toggle_favorite(TEST_USER, INTERNAL, "", True)


async def test_favorites_only_query_is_per_user(
    mutation_service: MutationService,
    listing_service: ListingService,
    favorites_service: FavoritesService,
) -> None:
    await mutation_service.create_folder(INTERNAL, "", "Reports")
    await mutation_service.upload(INTERNAL, "Reports", "q1.pdf", b"x" * 1024)
    await mutation_service.upload(INTERNAL, "Reports", "q2.pdf", b"x" * 10)

    await favorites_service.toggle_favorite(TEST_USER, INTERNAL, "Reports/q1.pdf", True)

    query = MediaQuery(favorites_only=True)
    mine = apply_query(
        await listing_service.list_directory(INTERNAL, "Reports", TEST_USER), query
    )
    theirs = apply_query(
        await listing_service.list_directory(INTERNAL, "Reports", OTHER_USER), query
    )
    assert [item.name for item in mine.items] == ["q1.pdf"]
    assert theirs.items == []


async def test_toggle_is_not_blocked_by_mutations(
    mutation_service: MutationService, favorites_service: FavoritesService
) -> None:
    await mutation_service.upload(INTERNAL, "Docs", "a.png", b"a")
    mutation_service.locks.acquire(INTERNAL, "Docs")
    try:
        await favorites_service.toggle_favorite(TEST_USER, INTERNAL, "Docs/a.png", True)
    finally:
        mutation_service.locks.release(INTERNAL, "Docs")
    assert await favorites_service.list_favorites(TEST_USER, INTERNAL) == ["Docs/a.png"]


async def test_concurrent_toggles_agree(tmp_path: Path) -> None:
    # A file database gives each session its own connection
    manager = DatabaseSessionManager(f"sqlite+aiosqlite:///{tmp_path / 'favorites.db'}")
    await manager.create_all()
    service = FavoritesService(SqlMetadataIndex(manager))
    try:
        results = await asyncio.gather(
            *(
                service.toggle_favorite(TEST_USER, INTERNAL, "A/f.txt", True)
                for _ in range(3)
            )
        )
        assert results == [True, True, True]
        assert await service.list_favorites(TEST_USER, INTERNAL) == ["A/f.txt"]
    finally:
        await manager.close()
