import io

import pytest

from media_service.errors import FileNotFound, StorageFailure
from media_service.storage import LocalFileStorage


def test_save_and_load_full(storage):
    location = storage.save("a.bin", io.BytesIO(b"hello world"), 11)
    assert storage.exists(location)
    assert storage.size(location) == 11
    with storage.load_full(location) as f:
        assert f.read() == b"hello world"


def test_load_range_is_inclusive_and_bounded(storage):
    data = bytes(range(200))
    location = storage.save("r.bin", io.BytesIO(data))
    with storage.load_range(location, 10, 19) as f:
        assert f.read() == data[10:20]
        assert f.read() == b""


def test_delete_is_idempotent(storage):
    location = storage.save("d.bin", io.BytesIO(b"x"))
    storage.delete(location)
    storage.delete(location)
    assert not storage.exists(location)


def test_missing_file_raises_not_found(storage):
    missing = str(storage.base_dir / "missing.bin")
    with pytest.raises(FileNotFound):
        storage.load_full(missing)
    with pytest.raises(FileNotFound):
        storage.load_range(missing, 0, 1)


def test_path_traversal_is_rejected(storage):
    with pytest.raises(ValueError):
        storage.save("../escape.bin", io.BytesIO(b"x"))


class ExplodingStream:
    def __init__(self):
        self.calls = 0

    def read(self, size=-1):
        self.calls += 1
        if self.calls > 1:
            raise OSError("disk went away")
        return b"partial"


def test_failed_write_leaves_no_partial_file(storage):
    with pytest.raises(StorageFailure):
        storage.save("broken.bin", ExplodingStream())
    assert list(storage.base_dir.iterdir()) == []


def test_base_dir_is_created(tmp_path):
    target = tmp_path / "nested" / "dir"
    LocalFileStorage(target)
    assert target.is_dir()


def test_local_path(storage):
    location = storage.save("v.mp4", io.BytesIO(b"video"))
    assert storage.local_path(location) == location
    storage.delete(location)
    assert storage.local_path(location) is None
