import asyncio

import pytest

from medialib.server.constants import BucketContext
from medialib.server.exceptions import PartialFailure
from medialib.server.services.coordination import PrefixLockManager
from medialib.server.services.integrity import IntegrityService
from medialib.server.services.metadata import MediaRecord
from medialib.server.services.mutation import MutationService
from tests.conftest import TEST_USER
from tests.server.services.fakes import FailingMetadataIndex, FakeObjectStore

INTERNAL = BucketContext.INTERNAL


async def test_consistent_bucket(
    mutation_service: MutationService, integrity_service: IntegrityService
) -> None:
    await mutation_service.create_folder(INTERNAL, "", "Docs")
    await mutation_service.upload(INTERNAL, "Docs", "a.png", b"a")
    await mutation_service.upload(INTERNAL, "Docs", "b.png", b"b")

    report = await integrity_service.reconcile(INTERNAL)
    # Folder placeholders are not media
    assert report.scanned == 2
    assert report.ok == 2
    assert report.missing_metadata == []
    assert report.dangling_metadata == []
    assert report.orphan_favorites == []


async def test_detects_inconsistencies(
    object_store: FakeObjectStore,
    metadata_index: FailingMetadataIndex,
    integrity_service: IntegrityService,
) -> None:
    await object_store.put_object("media", "Docs/no-row.png", b"x", "image/png")
    await metadata_index.upsert_metadata(
        MediaRecord(
            bucket=INTERNAL,
            file_path="Docs/gone.png",
            original_name="gone.png",
            mime_type="image/png",
            file_size=1,
        )
    )
    await metadata_index.upsert_favorite(TEST_USER, INTERNAL, "Docs/gone.png")

    report = await integrity_service.reconcile(INTERNAL)
    assert report.scanned == 1
    assert report.ok == 0
    assert report.missing_metadata == ["Docs/no-row.png"]
    assert report.dangling_metadata == ["Docs/gone.png"]
    assert report.orphan_favorites == [(TEST_USER, "Docs/gone.png")]
    assert report.fixed == 0

    # Without fix nothing changes
    assert await metadata_index.get_metadata(INTERNAL, "Docs/gone.png") is not None


async def test_fix_removes_stale_rows_only(
    object_store: FakeObjectStore,
    metadata_index: FailingMetadataIndex,
    integrity_service: IntegrityService,
) -> None:
    await object_store.put_object("media", "Docs/no-row.png", b"x", "image/png")
    await metadata_index.upsert_metadata(
        MediaRecord(
            bucket=INTERNAL,
            file_path="Docs/gone.png",
            original_name="gone.png",
            mime_type="image/png",
            file_size=1,
        )
    )
    await metadata_index.upsert_favorite(TEST_USER, INTERNAL, "Docs/gone.png")

    report = await integrity_service.reconcile(INTERNAL, fix=True)
    assert report.fixed == 2
    assert await metadata_index.get_metadata(INTERNAL, "Docs/gone.png") is None
    assert await metadata_index.list_favorites(TEST_USER, INTERNAL) == []
    # Objects are never deleted
    data, _ = await object_store.get_object("media", "Docs/no-row.png")
    assert data == b"x"

    report = await integrity_service.reconcile(INTERNAL)
    assert report.dangling_metadata == []
    assert report.orphan_favorites == []
    assert report.missing_metadata == ["Docs/no-row.png"]


async def test_partial_delete_keeps_rows_of_failed_objects(
    object_store: FakeObjectStore,
    mutation_service: MutationService,
    integrity_service: IntegrityService,
) -> None:
    await mutation_service.upload(INTERNAL, "Docs", "a.png", b"a")
    await mutation_service.upload(INTERNAL, "Docs", "b.png", b"b")
    object_store.fail_delete.add("Docs/b.png")

    with pytest.raises(PartialFailure):
        await mutation_service.delete(INTERNAL, "Docs", is_folder=True)

    report = await integrity_service.reconcile(INTERNAL)
    assert report.ok == 1
    assert report.missing_metadata == []


async def test_buckets_are_separate(
    mutation_service: MutationService, integrity_service: IntegrityService
) -> None:
    await mutation_service.upload(INTERNAL, "Docs", "a.png", b"a")
    report = await integrity_service.reconcile(BucketContext.COMPANY)
    assert report.scanned == 0
    assert report.dangling_metadata == []


async def test_fix_leaves_rows_of_inflight_move(
    object_store: FakeObjectStore,
    metadata_index: FailingMetadataIndex,
    mutation_service: MutationService,
    integrity_service: IntegrityService,
) -> None:
    await mutation_service.upload(INTERNAL, "A", "f.txt", b"x")
    await metadata_index.upsert_favorite(TEST_USER, INTERNAL, "A/f.txt")
    metadata_index.rekey_gate = asyncio.Event()

    move = asyncio.create_task(mutation_service.rename_or_move(INTERNAL, "A", "B"))
    await metadata_index.rekey_started.wait()

    # Object already at B, row still at A
    report = await integrity_service.reconcile(INTERNAL, fix=True)
    assert report.dangling_metadata == []
    assert report.orphan_favorites == []
    assert report.missing_metadata == []
    assert report.skipped == ["A/f.txt", "B/f.txt"]
    assert report.fixed == 0

    metadata_index.rekey_gate.set()
    await move

    assert await metadata_index.get_metadata(INTERNAL, "B/f.txt") is not None
    assert await metadata_index.list_favorites(TEST_USER, INTERNAL) == ["B/f.txt"]
    report = await integrity_service.reconcile(INTERNAL)
    assert report.ok == 1
    assert report.skipped == []


async def test_fix_skips_locked_prefixes(
    metadata_index: FailingMetadataIndex,
    lock_manager: PrefixLockManager,
    integrity_service: IntegrityService,
) -> None:
    await metadata_index.upsert_metadata(
        MediaRecord(
            bucket=INTERNAL,
            file_path="Docs/gone.png",
            original_name="gone.png",
            mime_type="image/png",
            file_size=1,
        )
    )

    with lock_manager.hold(INTERNAL, "Docs"):
        report = await integrity_service.reconcile(INTERNAL, fix=True)
    assert report.skipped == ["Docs/gone.png"]
    assert report.fixed == 0
    assert await metadata_index.get_metadata(INTERNAL, "Docs/gone.png") is not None

    report = await integrity_service.reconcile(INTERNAL, fix=True)
    assert report.fixed == 1
    assert not lock_manager.is_locked(INTERNAL, "Docs/gone.png")
