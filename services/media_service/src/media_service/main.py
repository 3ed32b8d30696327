import logging
import time
from pathlib import Path

import anyio
from fastapi import FastAPI, UploadFile, File, Depends, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response, StreamingResponse

from .config import settings
from .db import SessionLocal, init_db
from .errors import (
    FileNotFound,
    InvalidFileType,
    MediaServiceError,
    RangeNotSatisfiable,
    SizeExceeded,
)
from .file_types import FileType
from .logging_config import setup_logging
from .metadata_store import SqlMetadataStore
from .monitoring import StreamingMonitor
from .ranges import StreamableContent
from .schemas import ErrorResponse, FileMeta, PagedResponse, StreamingStatsResponse, UploadResponse
from .services import MediaService
from .storage import LocalFileStorage
from .thumbnails import FFmpegThumbnailGenerator, ImageThumbnailGenerator, ThumbnailRegistry

logger = logging.getLogger(__name__)

app = FastAPI(title="Media Service", version="1.0.0")

INVALID_PAGINATION = "INVALID_PAGINATION"

_ERROR_STATUS = (
    (FileNotFound, 404),
    (InvalidFileType, 400),
    (SizeExceeded, 413),
)


def get_media(request: Request) -> MediaService:
    return request.app.state.media


def get_monitor(request: Request) -> StreamingMonitor:
    return request.app.state.monitor


def build_thumbnail_registry() -> ThumbnailRegistry:
    generators = [ImageThumbnailGenerator()]
    ffmpeg = FFmpegThumbnailGenerator(settings.ffmpeg_path, settings.ffmpeg_timeout)
    if ffmpeg.is_available():
        generators.append(ffmpeg)
    else:
        logger.warning("ffmpeg not found at %r, video thumbnails disabled", settings.ffmpeg_path)
    return ThumbnailRegistry(generators)


@app.on_event("startup")
def _startup():
    setup_logging(settings.log_level)
    Path(settings.files_dir).mkdir(parents=True, exist_ok=True)
    init_db()

    app.state.media = MediaService(
        LocalFileStorage(settings.files_dir),
        SqlMetadataStore(SessionLocal),
        build_thumbnail_registry() if settings.thumbnail_enabled else ThumbnailRegistry(),
        max_file_size=settings.max_file_size,
        allowed_types=[FileType.parse(t) for t in settings.allowed_types],
        thumbnail_enabled=settings.thumbnail_enabled,
        thumbnail_width=settings.thumbnail_width,
        thumbnail_height=settings.thumbnail_height,
    )
    app.state.monitor = StreamingMonitor(SessionLocal)


@app.exception_handler(MediaServiceError)
async def _media_error(request: Request, exc: MediaServiceError):
    if isinstance(exc, RangeNotSatisfiable):
        logger.info("Range not satisfiable: %s", exc)
        return JSONResponse(
            status_code=416,
            content={"detail": str(exc), "code": exc.code},
            headers={"Content-Range": f"bytes */{exc.total_size}"},
        )

    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        # внутренние детали хранилища наружу не отдаём
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        detail = "An error occurred while processing the file"
    else:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        detail = str(exc)
    return JSONResponse(status_code=status, content={"detail": detail, "code": exc.code})


async def _send_body(body, chunk_size: int, monitor: StreamingMonitor | None = None, session_id: int | None = None):
    sent = 0
    started = time.monotonic()
    finished = False
    try:
        while True:
            chunk = await run_in_threadpool(body.read, chunk_size)
            if not chunk:
                break
            if sent == 0 and monitor is not None:
                await run_in_threadpool(monitor.update_progress, session_id, 0)
            sent += len(chunk)
            yield chunk
        finished = True
    except Exception:
        finished = True
        logger.exception("Streaming failed after %d bytes", sent)
        if monitor is not None:
            await run_in_threadpool(monitor.error_session, session_id, sent)
        raise
    finally:
        body.close()
        if not finished and monitor is not None:
            # клиент отключился: отмена уже запрошена, запись в БД экранируем от неё
            with anyio.CancelScope(shield=True):
                await run_in_threadpool(monitor.cancel_session, session_id, sent)

    if monitor is not None:
        duration_ms = int((time.monotonic() - started) * 1000)
        await run_in_threadpool(monitor.complete_session, session_id, sent, duration_ms)


def _streaming_response(
    content: StreamableContent,
    body,
    monitor: StreamingMonitor | None = None,
    session_id: int | None = None,
) -> StreamingResponse:
    return StreamingResponse(
        _send_body(body, settings.stream_chunk_size, monitor, session_id),
        status_code=content.status_code,
        media_type=content.content_type,
        headers=content.headers(),
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post(
    "/files",
    response_model=UploadResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def upload_file(file: UploadFile = File(...), media: MediaService = Depends(get_media)):
    safe_name = (file.filename or "uploaded.bin").replace("/", "_").replace("\\", "_")
    try:
        result = media.upload(safe_name, file.content_type, file.size, file.file)
    finally:
        file.file.close()
    return UploadResponse(file=FileMeta.from_metadata(result.metadata), thumbnail_status=result.thumbnail.value)


@app.get("/files", response_model=PagedResponse, responses={400: {"model": ErrorResponse}})
def list_files(
    page: int = Query(0),
    size: int = Query(20),
    media: MediaService = Depends(get_media),
):
    try:
        result = media.list_metadata(page, size)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"detail": str(e), "code": INVALID_PAGINATION})
    return PagedResponse(
        items=[FileMeta.from_metadata(m) for m in result.items],
        page=result.page,
        size=result.size,
        total=result.total,
        total_pages=result.total_pages,
        has_next=result.has_next,
    )


@app.get("/files/{file_id}/meta", response_model=FileMeta, responses={404: {"model": ErrorResponse}})
def get_file_meta(file_id: str, media: MediaService = Depends(get_media)):
    return FileMeta.from_metadata(media.get_metadata(file_id))


@app.get(
    "/files/{file_id}/stream",
    responses={404: {"model": ErrorResponse}, 416: {"model": ErrorResponse}},
)
def stream_file(
    file_id: str,
    request: Request,
    range_header: str | None = Header(default=None, alias="Range"),
    media: MediaService = Depends(get_media),
    monitor: StreamingMonitor = Depends(get_monitor),
):
    content = media.stream(file_id, range_header)
    # сессию заводим только когда файл реально открыт
    body = content.open()
    session_id = monitor.start_session(
        file_id,
        client_ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        range_start=content.range.start if content.range else None,
        range_end=content.range.end if content.range else None,
    )
    return _streaming_response(content, body, monitor, session_id)


@app.get("/files/{file_id}/thumbnail", responses={404: {"model": ErrorResponse}})
def get_thumbnail(file_id: str, media: MediaService = Depends(get_media)):
    content = media.get_thumbnail(file_id)
    return _streaming_response(content, content.open())


@app.delete("/files/{file_id}", status_code=204)
def delete_file(file_id: str, media: MediaService = Depends(get_media)):
    media.delete(file_id)
    return Response(status_code=204)


@app.get("/stats/streaming", response_model=StreamingStatsResponse)
def streaming_stats(monitor: StreamingMonitor = Depends(get_monitor)):
    stats = monitor.stats()
    return StreamingStatsResponse(
        active_sessions=stats.active_sessions,
        total_sessions=stats.total_sessions,
        total_bytes=stats.total_bytes,
        avg_duration_ms=stats.avg_duration_ms,
    )


@app.get("/stats/streaming/files/{file_id}")
def file_streaming_stats(file_id: str, monitor: StreamingMonitor = Depends(get_monitor)):
    stats = monitor.file_stats(file_id)
    return {"file_id": stats.file_id, "stream_count": stats.stream_count, "total_bytes_sent": stats.total_bytes_sent}


@app.post("/stats/streaming/cleanup")
def cleanup_sessions(retention_days: int = Query(30, ge=1), monitor: StreamingMonitor = Depends(get_monitor)):
    return {"deleted": monitor.cleanup(retention_days)}
