from __future__ import annotations


class MediaServiceError(Exception):
    code = "MEDIA_ERROR"


class FileNotFound(MediaServiceError):
    code = "FILE_NOT_FOUND"

    def __init__(self, file_id: str | None = None, message: str | None = None):
        super().__init__(message or f"File not found: {file_id}")
        self.file_id = file_id


class InvalidFileType(MediaServiceError):
    code = "INVALID_FILE_TYPE"

    def __init__(self, extension: str, content_type: str | None = None, message: str | None = None):
        super().__init__(
            message or f"Unsupported file type - extension: {extension or '-'}, contentType: {content_type or '-'}"
        )
        self.extension = extension
        self.content_type = content_type


class SizeExceeded(MediaServiceError):
    code = "FILE_TOO_LARGE"

    def __init__(self, actual: int, maximum: int, file_name: str | None = None):
        target = f"File '{file_name}' size" if file_name else "File size"
        super().__init__(f"{target} {actual} bytes exceeds maximum allowed size {maximum} bytes")
        self.actual = actual
        self.maximum = maximum
        self.file_name = file_name

    @property
    def exceeded_by(self) -> int:
        return self.actual - self.maximum


class StorageFailure(MediaServiceError):
    code = "STORAGE_ERROR"

    @classmethod
    def save_failed(cls, name: str, cause: BaseException) -> StorageFailure:
        return cls(f"Failed to save file: {name} ({cause})")

    @classmethod
    def load_failed(cls, location: str, cause: BaseException) -> StorageFailure:
        return cls(f"Failed to load file: {location} ({cause})")

    @classmethod
    def delete_failed(cls, location: str, cause: BaseException) -> StorageFailure:
        return cls(f"Failed to delete file: {location} ({cause})")


class ThumbnailFailure(MediaServiceError):
    code = "THUMBNAIL_ERROR"


class ThumbnailTimeout(ThumbnailFailure):
    code = "THUMBNAIL_TIMEOUT"

    def __init__(self, timeout: float):
        super().__init__(f"Thumbnail process timed out after {timeout:g} seconds")
        self.timeout = timeout


class RangeNotSatisfiable(MediaServiceError):
    code = "RANGE_NOT_SATISFIABLE"

    def __init__(self, total_size: int, range_header: str | None = None):
        super().__init__(f"Range {range_header!r} not satisfiable for size {total_size}")
        self.total_size = total_size
        self.range_header = range_header
