from __future__ import annotations

import datetime as dt
import enum
import uuid
from dataclasses import dataclass, replace

from .file_types import FileType, extract_extension


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class FileMetadata:
    id: str
    original_name: str
    file_type: FileType
    content_type: str
    size: int
    storage_location: str
    created_at: dt.datetime
    thumbnail_location: str | None = None

    def __post_init__(self):
        if self.size < 0:
            raise ValueError("size must be >= 0")
        if not self.original_name or not self.original_name.strip():
            raise ValueError("original_name must not be blank")

    @classmethod
    def create(
        cls,
        original_name: str,
        file_type: FileType,
        content_type: str,
        size: int,
        storage_location: str,
        file_id: str | None = None,
    ) -> FileMetadata:
        return cls(
            id=file_id or str(uuid.uuid4()),
            original_name=original_name,
            file_type=file_type,
            content_type=content_type,
            size=size,
            storage_location=storage_location,
            created_at=utcnow(),
        )

    @property
    def has_thumbnail(self) -> bool:
        return bool(self.thumbnail_location and self.thumbnail_location.strip())

    @property
    def extension(self) -> str:
        return extract_extension(self.original_name)

    def with_thumbnail(self, thumbnail_location: str) -> FileMetadata:
        return replace(self, thumbnail_location=thumbnail_location)


class ThumbnailStatus(str, enum.Enum):
    GENERATED = "GENERATED"
    SKIPPED = "SKIPPED"  # выключено или нет подходящего генератора
    FAILED = "FAILED"  # файл сохранён, превью нет


@dataclass(frozen=True)
class UploadResult:
    metadata: FileMetadata
    thumbnail: ThumbnailStatus = ThumbnailStatus.SKIPPED

    @property
    def thumbnail_generated(self) -> bool:
        return self.thumbnail is ThumbnailStatus.GENERATED


@dataclass(frozen=True)
class Page:
    items: list[FileMetadata]
    page: int
    size: int
    total: int = 0

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages
