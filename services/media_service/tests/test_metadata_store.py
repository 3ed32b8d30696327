import datetime as dt
from dataclasses import replace

import pytest

from media_service.domain import FileMetadata
from media_service.file_types import FileType
from media_service.metadata_store import InMemoryMetadataStore, SqlMetadataStore


def _meta(name: str, minutes: int) -> FileMetadata:
    m = FileMetadata.create(name, FileType.VIDEO, "video/mp4", 10, f"/tmp/{name}")
    return replace(m, created_at=dt.datetime(2026, 1, 1, 12, minutes, tzinfo=dt.timezone.utc))


@pytest.fixture(params=["memory", "sql"])
def metadata_store(request, session_factory):
    if request.param == "memory":
        return InMemoryMetadataStore()
    return SqlMetadataStore(session_factory)


def test_save_find_and_thumbnail_backfill(metadata_store):
    meta = _meta("a.mp4", 0)
    metadata_store.save(meta)

    found = metadata_store.find_by_id(meta.id)
    assert found.original_name == "a.mp4"
    assert found.file_type is FileType.VIDEO
    assert not found.has_thumbnail

    metadata_store.save(meta.with_thumbnail("/tmp/a_thumb.jpg"))
    assert metadata_store.find_by_id(meta.id).thumbnail_location == "/tmp/a_thumb.jpg"
    assert metadata_store.count() == 1


def test_find_missing_returns_none(metadata_store):
    assert metadata_store.find_by_id("nope") is None


def test_delete_is_idempotent(metadata_store):
    meta = metadata_store.save(_meta("a.mp4", 0))
    metadata_store.delete_by_id(meta.id)
    metadata_store.delete_by_id(meta.id)
    assert metadata_store.find_by_id(meta.id) is None
    assert metadata_store.count() == 0


def test_find_page_is_newest_first(metadata_store):
    for minute, name in enumerate(["old.mp4", "mid.mp4", "new.mp4"]):
        metadata_store.save(_meta(name, minute))

    first = metadata_store.find_page(0, 2)
    second = metadata_store.find_page(1, 2)

    assert [m.original_name for m in first] == ["new.mp4", "mid.mp4"]
    assert [m.original_name for m in second] == ["old.mp4"]


def test_blank_name_is_rejected():
    with pytest.raises(ValueError):
        FileMetadata.create("  ", FileType.OTHER, "application/octet-stream", 0, "/tmp/x")


def test_round_trip_preserves_metadata(metadata_store):
    meta = FileMetadata.create("clip.mp4", FileType.VIDEO, "video/mp4", 10, "/tmp/clip.mp4")
    metadata_store.save(meta)

    found = metadata_store.find_by_id(meta.id)
    assert found == meta
    assert found.created_at.tzinfo is not None
    assert metadata_store.find_page(0, 1) == [meta]
