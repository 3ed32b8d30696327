import io
import stat

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from media_service.db import Base
from media_service import models  # noqa: F401
from media_service.metadata_store import InMemoryMetadataStore
from media_service.storage import LocalFileStorage


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(tmp_path / "files")


@pytest.fixture
def store():
    return InMemoryMetadataStore()


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def png_bytes():
    out = io.BytesIO()
    Image.new("RGB", (640, 480), "navy").save(out, "PNG")
    return out.getvalue()


@pytest.fixture
def fake_transcoder(tmp_path):
    """Пишет исполняемый shell-скрипт, который подменяет ffmpeg."""

    def _make(body: str, name: str = "fake-ffmpeg") -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


