from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO

from .errors import FileNotFound, StorageFailure
from .ranges import BoundedReader

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB


class LocalFileStorage:
    """Файлы на локальном диске. Токен расположения = абсолютный путь файла."""

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir).resolve()
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageFailure(f"Failed to create directory: {self.base_dir} ({e})") from e

    def _resolve_name(self, name: str) -> Path:
        resolved = (self.base_dir / name).resolve()
        if resolved == self.base_dir or self.base_dir not in resolved.parents:
            raise ValueError(f"Invalid file path: {name}")
        return resolved

    def _existing(self, location: str) -> Path:
        path = Path(location)
        if not path.is_file():
            raise FileNotFound(message=f"File not found at path: {location}")
        return path

    def save(self, name: str, stream: BinaryIO, size: int | None = None) -> str:
        destination = self._resolve_name(name)
        written = 0
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with destination.open("wb") as out:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    out.write(chunk)
        except OSError as e:
            destination.unlink(missing_ok=True)
            raise StorageFailure.save_failed(name, e) from e
        except BaseException:
            # прерванная запись не должна оставлять обрубок файла
            destination.unlink(missing_ok=True)
            raise

        if size is not None and size >= 0 and written != size:
            logger.warning("Declared size %d differs from written %d for %s", size, written, name)
        logger.debug("File saved: %s (%d bytes)", destination, written)
        return str(destination)

    def load_full(self, location: str) -> BinaryIO:
        path = self._existing(location)
        try:
            return path.open("rb")
        except OSError as e:
            raise StorageFailure.load_failed(location, e) from e

    def load_range(self, location: str, start: int, end: int) -> BoundedReader:
        path = self._existing(location)
        try:
            handle = path.open("rb")
        except OSError as e:
            raise StorageFailure.load_failed(location, e) from e
        try:
            handle.seek(start)
        except OSError as e:
            handle.close()
            raise StorageFailure.load_failed(location, e) from e
        return BoundedReader(handle, end - start + 1)

    def delete(self, location: str):
        path = Path(location)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure.delete_failed(location, e) from e
        logger.debug("File deleted: %s", path)

    def local_path(self, location: str) -> str | None:
        """Путь на диске для внешних инструментов (ffmpeg) без лишней копии."""
        path = Path(location)
        return str(path) if path.is_file() else None

    def exists(self, location: str) -> bool:
        return Path(location).is_file()

    def size(self, location: str) -> int:
        path = self._existing(location)
        try:
            return path.stat().st_size
        except OSError as e:
            raise StorageFailure.load_failed(location, e) from e
