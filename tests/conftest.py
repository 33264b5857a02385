"""Shared fixtures: a SQLite metadata store and disk services in tmp_path."""
import contextlib
import io
import os
import shutil
from pathlib import Path
from typing import List

os.environ.setdefault("VIO_DATABASE_URI", "sqlite://")

import pytest
from PIL import Image
from sqlalchemy import event

from variantsio import crud, database, models
from variantsio.services import ByteStore, DiskService
from variantsio.transformers import ImageTransformer, TransformerRegistry
from variantsio.variants import VariantEngine

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg is not installed",
)


def make_image(width: int = 600, height: int = 400, fmt: str = "JPEG") -> bytes:
    image = Image.new("RGB", (width, height), color=(200, 30, 30))
    out = io.BytesIO()
    image.save(out, format=fmt)
    return out.getvalue()


def read_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def make_video(path: Path, duration: int = 2) -> bytes:
    import ffmpeg

    video = ffmpeg.input(f"testsrc=duration={duration}:size=64x48:rate=10", f="lavfi")
    audio = ffmpeg.input(f"sine=frequency=440:duration={duration}", f="lavfi")
    ffmpeg.output(video, audio, str(path), pix_fmt="yuv420p").overwrite_output().run(
        quiet=True
    )
    return path.read_bytes()


class CountingTransformer(ImageTransformer):
    """Image transformer that remembers how often it ran"""

    def __init__(self):
        self.calls = 0

    def transform(self, data, content_type, variation):
        self.calls += 1
        return super().transform(data, content_type, variation)


@pytest.fixture
def db_engine(tmp_path: Path):
    engine = database.make_engine(
        f"sqlite:///{tmp_path / 'variants.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    database.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return database.make_sessionmaker(db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "storage"


@pytest.fixture
def byte_store(storage_root: Path) -> ByteStore:
    return ByteStore(
        {
            "local": DiskService(
                "local", str(storage_root / "local"), public_url="http://localhost:8100"
            ),
            "local_public": DiskService(
                "local_public",
                str(storage_root / "local_public"),
                public_url="http://localhost:8100",
            ),
        }
    )


@pytest.fixture
def transformer() -> CountingTransformer:
    return CountingTransformer()


@pytest.fixture
def registry(transformer) -> TransformerRegistry:
    return TransformerRegistry([transformer])


@pytest.fixture
def variants(byte_store, registry) -> VariantEngine:
    return VariantEngine(byte_store, registry)


@pytest.fixture
def create_file_blob(db, byte_store):
    def create(
        filename: str = "racecar.jpg",
        data: bytes = None,
        service_name: str = "local",
        content_type: str = None,
    ) -> models.Blob:
        if data is None:
            data = make_image()
        return crud.blob_create(
            db,
            byte_store,
            data,
            filename,
            content_type=content_type,
            service_name=service_name,
        )

    return create


@pytest.fixture
def count_queries(db_engine):
    @contextlib.contextmanager
    def counter():
        statements: List[str] = []

        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(db_engine, "before_cursor_execute", before_cursor_execute)
        try:
            yield statements
        finally:
            event.remove(db_engine, "before_cursor_execute", before_cursor_execute)

    return counter


def stored_files(root: Path) -> List[Path]:
    return [p for p in root.rglob("*") if p.is_file()]
