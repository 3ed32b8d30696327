from __future__ import annotations

import enum
import mimetypes

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class FileType(str, enum.Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    AUDIO = "AUDIO"
    DOCUMENT = "DOCUMENT"
    ARCHIVE = "ARCHIVE"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: str) -> FileType:
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown file type: {value}")


EXTENSIONS: dict[FileType, frozenset[str]] = {
    FileType.IMAGE: frozenset({"jpg", "jpeg", "png", "gif", "webp", "bmp", "svg", "ico", "tiff", "tif"}),
    FileType.VIDEO: frozenset({"mp4", "avi", "mov", "wmv", "mkv", "webm", "flv", "m4v", "mpeg", "mpg", "3gp"}),
    FileType.AUDIO: frozenset({"mp3", "wav", "flac", "aac", "ogg", "m4a", "wma", "opus", "aiff"}),
    FileType.DOCUMENT: frozenset(
        {"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "rtf", "csv", "md", "json", "xml", "html", "htm"}
    ),
    FileType.ARCHIVE: frozenset({"zip", "rar", "7z", "tar", "gz", "bz2", "xz", "tgz"}),
}

_CONTENT_TYPE_PREFIXES = {
    "image/": FileType.IMAGE,
    "video/": FileType.VIDEO,
    "audio/": FileType.AUDIO,
}

_DOCUMENT_CONTENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/rtf",
    "application/json",
    "application/xml",
}

_ARCHIVE_CONTENT_TYPES = {
    "application/zip",
    "application/gzip",
    "application/x-tar",
    "application/x-7z-compressed",
    "application/x-rar-compressed",
    "application/x-bzip2",
    "application/x-xz",
}


def extract_extension(file_name: str | None) -> str:
    if not file_name or not file_name.strip():
        return ""
    dot = file_name.rfind(".")
    if dot == -1 or dot == len(file_name) - 1:
        return ""
    return file_name[dot + 1:].lower()


def from_extension(extension: str) -> FileType:
    ext = extension.strip().lower()
    for file_type, known in EXTENSIONS.items():
        if ext in known:
            return file_type
    return FileType.OTHER


def from_content_type(content_type: str | None) -> FileType:
    if not content_type:
        return FileType.OTHER
    value = content_type.split(";", 1)[0].strip().lower()
    for prefix, file_type in _CONTENT_TYPE_PREFIXES.items():
        if value.startswith(prefix):
            return file_type
    if value.startswith("text/") or value in _DOCUMENT_CONTENT_TYPES or value.startswith("application/vnd."):
        return FileType.DOCUMENT
    if value in _ARCHIVE_CONTENT_TYPES:
        return FileType.ARCHIVE
    return FileType.OTHER


def detect(file_name: str | None, content_type: str | None = None) -> FileType:
    """Расширение важнее content-type: браузеры часто присылают octet-stream."""
    by_extension = from_extension(extract_extension(file_name))
    if by_extension is not FileType.OTHER:
        return by_extension
    return from_content_type(content_type)


def guess_content_type(file_name: str | None) -> str:
    if not file_name:
        return DEFAULT_CONTENT_TYPE
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or DEFAULT_CONTENT_TYPE
