import io
import random
from typing import Any

import pytest
from PIL import Image

from config import settings
from schemas import EncodedImage, SourceImage
from storage.base import AssetRecordStore, ObjectStorage
from storage.entities import EntitySpec


def make_image_bytes(size=(100, 100), fmt="PNG", mode="RGB", color=(200, 30, 30), **save_kwargs):
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def make_noise_bytes(size=(400, 300), fmt="PNG", seed=7):
    """Incompressible content, so encodes stay large."""
    rng = random.Random(seed)
    img = Image.frombytes("RGB", size, rng.randbytes(size[0] * size[1] * 3))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_encoded(name="photo.webp", data=b"RIFF\x00\x00\x00\x00WEBPVP8 fake"):
    return EncodedImage(filename=name, data=data, content_type="image/webp")


@pytest.fixture(autouse=True)
def preview_dir(tmp_path, monkeypatch):
    """Keep preview temp files inside the test's tmp dir."""
    directory = tmp_path / "previews"
    directory.mkdir()
    monkeypatch.setattr(settings, "preview_dir", str(directory))
    return directory


@pytest.fixture
def sample_png():
    return SourceImage(filename="sample.png", data=make_image_bytes())


@pytest.fixture
def sample_jpeg():
    return SourceImage(
        filename="sample.jpg",
        data=make_image_bytes(size=(300, 200), fmt="JPEG", quality=95),
    )


@pytest.fixture
def fake_encode():
    """Encode stand-in that records call order and returns placeholder WebP."""
    calls = []

    async def encode(source: SourceImage) -> EncodedImage:
        calls.append(source.filename)
        stem = source.filename.rsplit(".", 1)[0]
        return make_encoded(f"{stem}.webp", data=source.data)

    encode.calls = calls
    return encode


class FakeStorage(ObjectStorage):
    def __init__(self):
        self.uploads: list[tuple[str, str, str]] = []
        self.removals: list[tuple[str, list[str]]] = []

    async def upload(self, data, path, bucket, content_type):
        self.uploads.append((bucket, path, content_type))
        return f"https://storage.googleapis.com/{bucket}/{path}"

    async def remove(self, paths, bucket):
        self.removals.append((bucket, list(paths)))


class FakeRecordStore(AssetRecordStore):
    def __init__(self, rows: dict[str, dict[str, Any]] | None = None):
        self.rows = dict(rows or {})
        self.flag_updates: list[tuple[str, bool]] = []
        self.deleted: list[str] = []
        self._next_id = 100

    async def select_asset_records(self, entity: EntitySpec, ids):
        return [dict(self.rows[i], id=i) for i in ids if i in self.rows]

    async def insert_asset_records(self, entity: EntitySpec, records):
        ids = []
        for record in records:
            self._next_id += 1
            new_id = str(self._next_id)
            self.rows[new_id] = dict(record)
            ids.append(new_id)
        return ids

    async def delete_asset_records(self, entity: EntitySpec, ids):
        for i in ids:
            self.rows.pop(i, None)
            self.deleted.append(i)

    async def update_asset_flag(self, entity: EntitySpec, id, value):
        self.flag_updates.append((id, value))
        if id in self.rows:
            self.rows[id][entity.flag_column] = value


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_records():
    return FakeRecordStore()
