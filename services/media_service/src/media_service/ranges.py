"""
Разбор HTTP Range и ограниченная выдача байтов.

Поддерживается только одиночный диапазон:
    bytes=0-1023   первые 1024 байта
    bytes=1024-    с 1024 до конца
    bytes=-500     последние 500 байт
Всё остальное считается отсутствием Range (отдаём файл целиком).
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator

DEFAULT_CHUNK_SIZE = 64 * 1024

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)

# позиция из большего числа цифр заведомо больше любого файла
_MAX_DIGITS = 18
_HUGE_POSITION = 10 ** _MAX_DIGITS


def _position(digits: str) -> int:
    digits = digits.lstrip("0") or "0"
    if len(digits) > _MAX_DIGITS:
        return _HUGE_POSITION
    return int(digits)


@dataclass(frozen=True)
class RangeSpec:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


class RangeStatus(str, enum.Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"
    UNSATISFIABLE = "UNSATISFIABLE"


@dataclass(frozen=True)
class RangeResolution:
    status: RangeStatus
    spec: RangeSpec | None = None


FULL_CONTENT = RangeResolution(RangeStatus.FULL)
UNSATISFIABLE = RangeResolution(RangeStatus.UNSATISFIABLE)


def resolve_range(range_header: str | None, total_size: int) -> RangeResolution:
    if range_header is None:
        return FULL_CONTENT

    match = _RANGE_RE.match(range_header)
    if not match:
        return FULL_CONTENT
    raw_start, raw_end = match.groups()

    if not raw_start and not raw_end:
        # "bytes=-" не по грамматике
        return FULL_CONTENT

    last = total_size - 1
    if not raw_start:
        start = max(0, total_size - _position(raw_end))
        end = last
    elif not raw_end:
        start = _position(raw_start)
        end = last
    else:
        start = _position(raw_start)
        end = min(_position(raw_end), last)

    if start > end or start >= total_size:
        return UNSATISFIABLE
    return RangeResolution(RangeStatus.PARTIAL, RangeSpec(start, end))


class BoundedReader:
    """Читает из source не больше limit байт, затем отдаёт EOF."""

    def __init__(self, source: BinaryIO, limit: int):
        self._source = source
        self._remaining = max(0, limit)

    @property
    def remaining(self) -> int:
        return self._remaining

    def read(self, size: int = -1) -> bytes:
        if self._remaining <= 0:
            return b""
        if size is None or size < 0 or size > self._remaining:
            size = self._remaining
        data = self._source.read(size)
        if len(data) > size:
            # источник отдал больше, чем просили: лишнее не отправляем
            data = data[:size]
        self._remaining -= len(data)
        return data

    def close(self):
        self._source.close()

    @property
    def closed(self) -> bool:
        return getattr(self._source, "closed", False)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


@dataclass(frozen=True)
class StreamableContent:
    content_type: str
    total_size: int
    range: RangeSpec | None
    body_factory: Callable[[], BinaryIO]

    @property
    def is_partial(self) -> bool:
        return self.range is not None

    @property
    def content_length(self) -> int:
        return self.range.length if self.range else self.total_size

    @property
    def status_code(self) -> int:
        return 206 if self.is_partial else 200

    @property
    def content_range(self) -> str | None:
        if self.range is None:
            return None
        return f"bytes {self.range.start}-{self.range.end}/{self.total_size}"

    def headers(self) -> dict[str, str]:
        headers = {
            "Accept-Ranges": "bytes",
            "Content-Length": str(self.content_length),
        }
        if self.content_range:
            headers["Content-Range"] = self.content_range
        return headers

    def open(self) -> BoundedReader:
        # вызывающий обязан закрыть поток
        return BoundedReader(self.body_factory(), self.content_length)

    def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        with self.open() as body:
            while True:
                chunk = body.read(chunk_size)
                if not chunk:
                    break
                yield chunk
