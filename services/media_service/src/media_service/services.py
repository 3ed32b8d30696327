from __future__ import annotations

import io
import logging
import uuid
from typing import BinaryIO, Iterable, Protocol

from .domain import FileMetadata, Page, ThumbnailStatus, UploadResult
from .errors import FileNotFound, InvalidFileType, RangeNotSatisfiable, SizeExceeded, StorageFailure
from .file_types import DEFAULT_CONTENT_TYPE, FileType, detect, extract_extension, guess_content_type
from .ranges import RangeStatus, StreamableContent, resolve_range
from .thumbnails import ThumbnailRegistry

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
THUMBNAIL_CONTENT_TYPE = "image/jpeg"


class Storage(Protocol):
    def save(self, name: str, stream: BinaryIO, size: int | None = None) -> str: ...
    def load_full(self, location: str) -> BinaryIO: ...
    def load_range(self, location: str, start: int, end: int) -> BinaryIO: ...
    def delete(self, location: str) -> None: ...
    def size(self, location: str) -> int: ...
    def local_path(self, location: str) -> str | None: ...


class MetadataStore(Protocol):
    def save(self, metadata: FileMetadata) -> FileMetadata: ...
    def find_by_id(self, file_id: str) -> FileMetadata | None: ...
    def delete_by_id(self, file_id: str) -> None: ...
    def count(self) -> int: ...
    def find_page(self, page: int, size: int) -> list[FileMetadata]: ...


class _SizeLimitedReader:
    """Считает прочитанные байты и обрывает запись при превышении лимита."""

    def __init__(self, source: BinaryIO, maximum: int, file_name: str):
        self._source = source
        self._maximum = maximum
        self._file_name = file_name
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        data = self._source.read(size)
        self.bytes_read += len(data)
        if self._maximum > 0 and self.bytes_read > self._maximum:
            raise SizeExceeded(self.bytes_read, self._maximum, self._file_name)
        return data


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 ** 3:
        return f"{size / 1024 ** 2:.1f} MB"
    return f"{size / 1024 ** 3:.2f} GB"


class MediaService:
    def __init__(
        self,
        storage: Storage,
        metadata_store: MetadataStore,
        thumbnails: ThumbnailRegistry | None = None,
        *,
        max_file_size: int = 0,
        allowed_types: Iterable[FileType] = (),
        thumbnail_enabled: bool = True,
        thumbnail_width: int = 320,
        thumbnail_height: int = 180,
    ):
        self.storage = storage
        self.metadata_store = metadata_store
        self.thumbnails = thumbnails or ThumbnailRegistry()
        self.max_file_size = max_file_size
        self.allowed_types = frozenset(allowed_types)
        self.thumbnail_enabled = thumbnail_enabled
        self.thumbnail_width = thumbnail_width
        self.thumbnail_height = thumbnail_height

        logger.info(
            "MediaService initialized: max_file_size=%s, allowed_types=%s, thumbnails=%s",
            format_size(max_file_size) if max_file_size > 0 else "unlimited",
            sorted(t.value for t in self.allowed_types) or "all",
            [g.name for g in self.thumbnails.generators] if thumbnail_enabled else "disabled",
        )

    # ---- upload ----

    def upload(
        self,
        original_name: str,
        content_type: str | None,
        size: int | None,
        source: BinaryIO,
    ) -> UploadResult:
        logger.info("Uploading file: %s, size: %s", original_name, format_size(size) if size is not None else "unknown")

        if not original_name or not original_name.strip():
            raise InvalidFileType("", content_type, "File name must not be blank")
        if not content_type or content_type == DEFAULT_CONTENT_TYPE:
            content_type = guess_content_type(original_name)

        # 1) тип
        file_type = detect(original_name, content_type)
        if self.allowed_types and file_type not in self.allowed_types:
            logger.warning("File type not allowed: %s (%s)", original_name, file_type.value)
            raise InvalidFileType(
                extract_extension(original_name),
                content_type,
                f"File type {file_type.value} is not allowed. Allowed types: "
                f"{', '.join(sorted(t.value for t in self.allowed_types))}",
            )

        # 2) размер, до любой записи в хранилище
        if self.max_file_size > 0 and size is not None and size > self.max_file_size:
            logger.warning("File size exceeded: %s (%d > %d)", original_name, size, self.max_file_size)
            raise SizeExceeded(size, self.max_file_size, original_name)

        # 3) запись файла
        file_id = str(uuid.uuid4())
        extension = extract_extension(original_name)
        stored_name = f"{file_id}.{extension}" if extension else file_id
        reader = _SizeLimitedReader(source, self.max_file_size, original_name)
        try:
            location = self.storage.save(stored_name, reader, size)
        except SizeExceeded:
            logger.warning("File size exceeded while writing: %s (> %d)", original_name, self.max_file_size)
            raise
        except StorageFailure:
            logger.exception("Storage write failed for %s", original_name)
            raise
        except OSError as e:
            raise StorageFailure.save_failed(stored_name, e) from e

        # 4) метаданные: после этого файл виден для stream/get
        metadata = FileMetadata.create(
            original_name=original_name,
            file_type=file_type,
            content_type=content_type,
            size=reader.bytes_read,
            storage_location=location,
            file_id=file_id,
        )
        try:
            metadata = self.metadata_store.save(metadata)
        except Exception:
            logger.exception("Metadata save failed for %s, removing stored file", file_id)
            self._delete_quietly(location, "file")
            raise

        # 5) превью: ошибки только логируются
        thumbnail = ThumbnailStatus.SKIPPED
        if self.thumbnail_enabled and self.thumbnails.supports(file_type):
            metadata, thumbnail = self._attach_thumbnail(metadata)

        logger.info(
            "Upload completed: id=%s, name=%s, type=%s, thumbnail=%s",
            metadata.id, metadata.original_name, metadata.file_type.value, thumbnail.value,
        )
        return UploadResult(metadata=metadata, thumbnail=thumbnail)

    def _attach_thumbnail(self, metadata: FileMetadata) -> tuple[FileMetadata, ThumbnailStatus]:
        try:
            data = self.thumbnails.generate_for(
                metadata.file_type,
                lambda: self.storage.load_full(metadata.storage_location),
                self.thumbnail_width,
                self.thumbnail_height,
                path=self.storage.local_path(metadata.storage_location),
            )
        except Exception as e:
            logger.warning("Thumbnail generation failed for file %s: %s", metadata.id, e)
            return metadata, ThumbnailStatus.FAILED
        if data is None:
            logger.warning("No thumbnail produced for file %s (%s)", metadata.id, metadata.file_type.value)
            return metadata, ThumbnailStatus.FAILED

        thumb_location = None
        try:
            thumb_location = self.storage.save(f"{metadata.id}_thumb.jpg", io.BytesIO(data), len(data))
            updated = self.metadata_store.save(metadata.with_thumbnail(thumb_location))
        except Exception as e:
            logger.warning("Failed to store thumbnail for file %s: %s", metadata.id, e)
            if thumb_location:
                self._delete_quietly(thumb_location, "thumbnail")
            return metadata, ThumbnailStatus.FAILED

        logger.debug("Thumbnail stored: %s", thumb_location)
        return updated, ThumbnailStatus.GENERATED

    # ---- read ----

    def get_metadata(self, file_id: str) -> FileMetadata:
        metadata = self.metadata_store.find_by_id(file_id)
        if metadata is None:
            raise FileNotFound(file_id)
        return metadata

    def list_metadata(self, page: int, size: int) -> Page:
        if page < 0:
            raise ValueError("Page must be >= 0")
        if size <= 0 or size > MAX_PAGE_SIZE:
            raise ValueError(f"Size must be between 1 and {MAX_PAGE_SIZE}")
        items = self.metadata_store.find_page(page, size)
        return Page(items=items, page=page, size=size, total=self.metadata_store.count())

    def stream(self, file_id: str, range_header: str | None = None) -> StreamableContent:
        logger.debug("Streaming file: %s, range: %s", file_id, range_header)
        metadata = self.get_metadata(file_id)
        location = metadata.storage_location

        resolution = resolve_range(range_header, metadata.size)
        if resolution.status is RangeStatus.UNSATISFIABLE:
            raise RangeNotSatisfiable(metadata.size, range_header)

        if resolution.status is RangeStatus.FULL:
            return StreamableContent(
                content_type=metadata.content_type,
                total_size=metadata.size,
                range=None,
                body_factory=lambda: self.storage.load_full(location),
            )

        spec = resolution.spec
        return StreamableContent(
            content_type=metadata.content_type,
            total_size=metadata.size,
            range=spec,
            body_factory=lambda: self.storage.load_range(location, spec.start, spec.end),
        )

    def get_thumbnail(self, file_id: str) -> StreamableContent:
        metadata = self.get_metadata(file_id)
        if not metadata.has_thumbnail:
            raise FileNotFound(file_id, f"Thumbnail not found for file: {file_id}")
        location = metadata.thumbnail_location
        return StreamableContent(
            content_type=THUMBNAIL_CONTENT_TYPE,
            total_size=self.storage.size(location),
            range=None,
            body_factory=lambda: self.storage.load_full(location),
        )

    # ---- delete ----

    def delete(self, file_id: str) -> bool:
        """Повторное удаление не ошибка. True, если что-то было удалено."""
        metadata = self.metadata_store.find_by_id(file_id)
        if metadata is None:
            logger.debug("Delete skipped, file already absent: %s", file_id)
            return False

        logger.info("Deleting file: %s", file_id)
        self._delete_quietly(metadata.storage_location, "file")
        if metadata.has_thumbnail:
            self._delete_quietly(metadata.thumbnail_location, "thumbnail")
        self.metadata_store.delete_by_id(file_id)
        logger.info("File deleted successfully: %s", file_id)
        return True

    def _delete_quietly(self, location: str, kind: str):
        try:
            self.storage.delete(location)
        except Exception as e:
            logger.warning("Failed to delete %s %s: %s", kind, location, e)
