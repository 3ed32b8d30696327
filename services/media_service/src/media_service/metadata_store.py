from __future__ import annotations

import datetime as dt
import threading

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from .domain import FileMetadata
from .file_types import FileType
from .models import StoredFile


def _as_utc(value: dt.datetime) -> dt.datetime:
    # SQLite теряет tzinfo, а пишем мы всегда UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def _to_domain(record: StoredFile) -> FileMetadata:
    return FileMetadata(
        id=record.id,
        original_name=record.original_filename,
        file_type=FileType(record.file_type),
        content_type=record.content_type,
        size=record.size_bytes,
        storage_location=record.stored_path,
        created_at=_as_utc(record.created_at),
        thumbnail_location=record.thumbnail_path,
    )


class SqlMetadataStore:
    """Метаданные в БД через SQLAlchemy, одна сессия на операцию."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def save(self, metadata: FileMetadata) -> FileMetadata:
        with self._session_factory() as db:
            record = db.get(StoredFile, metadata.id)
            if record is None:
                record = StoredFile(id=metadata.id, created_at=metadata.created_at)
                db.add(record)
            record.original_filename = metadata.original_name
            record.file_type = metadata.file_type.value
            record.content_type = metadata.content_type
            record.size_bytes = metadata.size
            record.stored_path = metadata.storage_location
            record.thumbnail_path = metadata.thumbnail_location
            db.commit()
        return metadata

    def find_by_id(self, file_id: str) -> FileMetadata | None:
        with self._session_factory() as db:
            record = db.get(StoredFile, file_id)
            return _to_domain(record) if record else None

    def delete_by_id(self, file_id: str):
        with self._session_factory() as db:
            db.execute(delete(StoredFile).where(StoredFile.id == file_id))
            db.commit()

    def count(self) -> int:
        with self._session_factory() as db:
            return db.execute(select(func.count()).select_from(StoredFile)).scalar_one()

    def find_page(self, page: int, size: int) -> list[FileMetadata]:
        with self._session_factory() as db:
            rows = db.execute(
                select(StoredFile)
                .order_by(StoredFile.created_at.desc(), StoredFile.id)
                .offset(page * size)
                .limit(size)
            ).scalars().all()
            return [_to_domain(r) for r in rows]


class InMemoryMetadataStore:
    """Хранилище в памяти процесса: для тестов и запуска без БД."""

    def __init__(self):
        self._items: dict[str, FileMetadata] = {}
        self._lock = threading.Lock()

    def save(self, metadata: FileMetadata) -> FileMetadata:
        with self._lock:
            self._items[metadata.id] = metadata
        return metadata

    def find_by_id(self, file_id: str) -> FileMetadata | None:
        with self._lock:
            return self._items.get(file_id)

    def delete_by_id(self, file_id: str):
        with self._lock:
            self._items.pop(file_id, None)

    def count(self) -> int:
        with self._lock:
            return len(self._items)

    def find_page(self, page: int, size: int) -> list[FileMetadata]:
        with self._lock:
            ordered = sorted(self._items.values(), key=lambda m: m.created_at, reverse=True)
        start = page * size
        return ordered[start:start + size]
