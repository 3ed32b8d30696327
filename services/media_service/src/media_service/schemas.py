import datetime as dt
from pydantic import BaseModel

from .domain import FileMetadata


class FileMeta(BaseModel):
    id: str
    original_filename: str
    file_type: str
    content_type: str
    size_bytes: int
    has_thumbnail: bool
    stream_url: str
    thumbnail_url: str | None = None
    created_at: dt.datetime

    @classmethod
    def from_metadata(cls, m: FileMetadata) -> "FileMeta":
        return cls(
            id=m.id,
            original_filename=m.original_name,
            file_type=m.file_type.value,
            content_type=m.content_type,
            size_bytes=m.size,
            has_thumbnail=m.has_thumbnail,
            stream_url=f"/files/{m.id}/stream",
            thumbnail_url=f"/files/{m.id}/thumbnail" if m.has_thumbnail else None,
            created_at=m.created_at,
        )


class UploadResponse(BaseModel):
    file: FileMeta
    thumbnail_status: str


class PagedResponse(BaseModel):
    items: list[FileMeta]
    page: int
    size: int
    total: int
    total_pages: int
    has_next: bool


class ErrorResponse(BaseModel):
    detail: str
    code: str


class StreamingStatsResponse(BaseModel):
    active_sessions: int
    total_sessions: int
    total_bytes: int
    avg_duration_ms: float
