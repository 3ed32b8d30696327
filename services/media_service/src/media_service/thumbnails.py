from __future__ import annotations

import io
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable, Iterable

from PIL import Image, UnidentifiedImageError

from .errors import ThumbnailFailure, ThumbnailTimeout
from .file_types import FileType

logger = logging.getLogger(__name__)

JPEG_QUALITY = 80
STDERR_EXCERPT_LIMIT = 500


class ThumbnailGenerator:
    """Базовый генератор превью. Меньший priority пробуется раньше."""

    name = "generator"
    priority = 1000
    file_types: frozenset[FileType] = frozenset()

    def supports(self, file_type: FileType) -> bool:
        return file_type in self.file_types

    def generate(self, stream: BinaryIO, width: int, height: int) -> bytes:
        raise NotImplementedError

    def generate_from_path(self, path: str, width: int, height: int) -> bytes:
        with open(path, "rb") as stream:
            return self.generate(stream, width, height)

    def __repr__(self):
        return f"<{type(self).__name__} name={self.name} priority={self.priority}>"


class ImageThumbnailGenerator(ThumbnailGenerator):
    name = "image"
    priority = 100
    file_types = frozenset({FileType.IMAGE})

    def generate(self, stream: BinaryIO, width: int, height: int) -> bytes:
        try:
            with Image.open(stream) as img:
                img = img.convert("RGB")
                img.thumbnail((width, height), Image.Resampling.LANCZOS)
                out = io.BytesIO()
                img.save(out, "JPEG", quality=JPEG_QUALITY)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise ThumbnailFailure(f"Failed to generate image thumbnail: {e}") from e
        logger.debug("Image thumbnail generated: %dx%d", width, height)
        return out.getvalue()


class FFmpegThumbnailGenerator(ThumbnailGenerator):
    """
    Кадр из видео через внешний ffmpeg.

    Кадр берётся с 1-й секунды (первые кадры часто чёрные), масштабируется
    с сохранением пропорций и отдаётся в stdout как один JPEG.
    """

    name = "ffmpeg"
    priority = 500
    file_types = frozenset({FileType.VIDEO})

    SEEK_POSITION = "00:00:01"
    DEFAULT_TIMEOUT = 30.0

    def __init__(self, binary: str = "ffmpeg", timeout: float | None = None):
        self.binary = binary
        self.timeout = float(timeout) if timeout is not None else self.DEFAULT_TIMEOUT

    def is_available(self) -> bool:
        if shutil.which(self.binary) is None:
            return False
        try:
            completed = subprocess.run(
                [self.binary, "-version"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=5,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("ffmpeg not available at %r: %s", self.binary, e)
            return False
        return completed.returncode == 0

    def build_command(self, path: str, width: int, height: int) -> list[str]:
        return [
            self.binary,
            "-hide_banner",
            "-loglevel", "error",
            "-ss", self.SEEK_POSITION,
            "-i", path,
            "-frames:v", "1",
            "-vf", f"scale={width}:{height}:force_original_aspect_ratio=decrease",
            "-q:v", "2",
            "-f", "image2pipe",
            "-vcodec", "mjpeg",
            "-",
        ]

    def generate(self, stream: BinaryIO, width: int, height: int) -> bytes:
        fd, temp_path = tempfile.mkstemp(prefix="media-video-", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as tmp:
                shutil.copyfileobj(stream, tmp)
            logger.debug("Video saved to temp file for thumbnail generation: %s", temp_path)
            return self.generate_from_path(temp_path, width, height)
        except OSError as e:
            raise ThumbnailFailure(f"Failed to create temp file for video thumbnail: {e}") from e
        finally:
            try:
                Path(temp_path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Failed to delete temp file %s: %s", temp_path, e)

    def generate_from_path(self, path: str, width: int, height: int) -> bytes:
        cmd = self.build_command(path, width, height)
        logger.debug("Generating video thumbnail: path=%s size=%dx%d", path, width, height)

        try:
            process = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            raise ThumbnailFailure(f"Failed to execute ffmpeg: {e}") from e

        # stdout и stderr читаются параллельно в communicate(), пайп не переполнится
        with process:
            try:
                stdout, stderr = process.communicate(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.communicate()
                logger.error("ffmpeg timed out after %ss for %s", self.timeout, path)
                raise ThumbnailTimeout(self.timeout)
            except BaseException:
                # прерывание потока: процесс не должен пережить вызов
                process.kill()
                raise

        if process.returncode != 0:
            excerpt = _excerpt(stderr)
            logger.error("ffmpeg failed with exit code %s: %s", process.returncode, excerpt)
            raise ThumbnailFailure(f"ffmpeg failed with exit code {process.returncode}: {excerpt}")

        if not stdout:
            raise ThumbnailFailure("ffmpeg produced empty output")

        logger.debug("Video thumbnail generated: %d bytes", len(stdout))
        return stdout


def _excerpt(stderr: bytes | None) -> str:
    text = (stderr or b"").decode("utf-8", errors="replace").strip()
    if len(text) > STDERR_EXCERPT_LIMIT:
        text = text[:STDERR_EXCERPT_LIMIT] + "..."
    return text


class ThumbnailRegistry:
    """
    Упорядоченный набор генераторов. Заполняется один раз при старте,
    во время обработки запросов только читается.
    """

    def __init__(self, generators: Iterable[ThumbnailGenerator] = ()):
        # sorted стабилен: при равном priority сохраняется порядок регистрации
        self._generators: tuple[ThumbnailGenerator, ...] = tuple(
            sorted(generators, key=lambda g: g.priority)
        )

    @property
    def generators(self) -> tuple[ThumbnailGenerator, ...]:
        return self._generators

    def candidates(self, file_type: FileType) -> list[ThumbnailGenerator]:
        return [g for g in self._generators if g.supports(file_type)]

    def supports(self, file_type: FileType) -> bool:
        return bool(self.candidates(file_type))

    def generate_for(
        self,
        file_type: FileType,
        open_source: Callable[[], BinaryIO],
        width: int,
        height: int,
        path: str | None = None,
    ) -> bytes | None:
        """
        Пробует генераторы по порядку, первый успешный результат возвращается.
        None = превью нет (нет подходящего генератора или все упали).

        Если известен локальный path, генераторы читают файл напрямую,
        open_source не вызывается.
        """
        for generator in self.candidates(file_type):
            try:
                if path is not None:
                    data = generator.generate_from_path(path, width, height)
                else:
                    with open_source() as source:
                        data = generator.generate(source, width, height)
            except Exception as e:
                logger.warning("Thumbnail generator %s failed for %s: %s", generator.name, file_type.value, e)
                continue
            if data:
                return data
            logger.warning("Thumbnail generator %s returned no data for %s", generator.name, file_type.value)
        return None
