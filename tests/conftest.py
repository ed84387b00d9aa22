"""
Shared fixtures: an in-memory blob store with the BlobStore interface and a
unit directory patched onto the image service.
"""
import io
import os
import tempfile
from contextlib import contextmanager

# db.py builds its engine at import time
os.environ.setdefault(
    "DATABASE_URL", "sqlite:///" + os.path.join(tempfile.gettempdir(), "unit-images-tests.db")
)

import pytest
from PIL import Image

from services import unit_image_service
from services.errors import Conflict

VIN = "1FTFW1E50PFA00001"
UNIT_ID = 7


class MemoryLock:
    def __init__(self):
        self.renewals = 0

    def renew(self):
        self.renewals += 1


class MemoryStore:
    """Dict-backed stand-in for services.blob_service.BlobStore."""

    def __init__(self, path_prefix="invpics/units/", base_url="https://cdn.example.com/invpics/units"):
        self.path_prefix = path_prefix
        self.base_url = base_url
        self.blobs = {}  # path -> (bytes, content_type)
        self.ops = []  # (op, path) for every mutation
        self.locks = []
        self.fail_on = None  # callable(op, path) -> raise to inject faults

    def _check(self, op, path):
        if self.fail_on:
            self.fail_on(op, path)

    def namespace(self, natural_key):
        return f"{self.path_prefix}{natural_key}/"

    def list(self, namespace):
        self._check("list", namespace)
        for path in sorted(self.blobs):
            if path.startswith(namespace) and path != namespace:
                yield path[len(namespace):]

    def exists(self, path):
        self._check("exists", path)
        return path in self.blobs

    def get_content_type(self, path):
        item = self.blobs.get(path)
        return item[1] if item else None

    def download(self, path):
        self._check("download", path)
        item = self.blobs.get(path)
        return item[0] if item else None

    def upload(self, path, data, content_type, overwrite=False):
        self._check("upload", path)
        if not overwrite and path in self.blobs:
            raise Conflict(f"Blob '{path}' already exists")
        self.blobs[path] = (bytes(data), content_type)
        self.ops.append(("upload", path))

    def delete(self, path):
        self._check("delete", path)
        self.ops.append(("delete", path))
        return self.blobs.pop(path, None) is not None

    def public_url(self, natural_key, filename):
        return f"{self.base_url}/{natural_key}/{filename}"

    @contextmanager
    def lock(self, namespace):
        held = MemoryLock()
        self.locks.append((namespace, held))
        yield held

    # helpers for tests
    def seed(self, namespace, names, content_types=None):
        for n in names:
            ext = n.rsplit(".", 1)[-1].lower()
            ctype = (content_types or {}).get(n) or ("image/jpeg" if ext in ("jpg", "jpeg") else f"image/{ext}")
            self.blobs[namespace + n] = (f"data:{n}".encode(), ctype)

    def names(self, namespace):
        return sorted(p[len(namespace):] for p in self.blobs if p.startswith(namespace))


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def ns(store) -> str:
    return store.namespace(VIN)


@pytest.fixture
def collection(monkeypatch, store):
    """Image service wired to the memory store; UNIT_ID resolves to VIN."""
    monkeypatch.setattr(unit_image_service, "get_store", lambda: store)
    monkeypatch.setattr(
        unit_image_service, "get_vin_for_unit", lambda unit_id: VIN if unit_id == UNIT_ID else None
    )
    return store


def make_image_bytes(fmt="PNG", mode="RGB", size=(8, 6), color=(200, 30, 30)) -> bytes:
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    if mode == "P":
        im = Image.new("RGB", size, color).convert("P")
    else:
        im = Image.new(mode, size, color)
    buf = io.BytesIO()
    im.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")
