"""Shared fixtures: in-memory table store and an API client."""

import copy
import io
import itertools
import struct
import zlib
from collections import defaultdict
from typing import Optional

import pytest
from fastapi import Header
from fastapi.testclient import TestClient
from PIL import Image

from farm_monitor.auth import get_current_user_id
from farm_monitor.router import get_store
from main import app

SAMPLE_COORDS = [
    [-122.4194, 37.7749],
    [-122.4094, 37.7749],
    [-122.4094, 37.7849],
    [-122.4194, 37.7849],
    [-122.4194, 37.7749],
]


class MemoryStore:
    """Dict-backed stand-in for the Supabase table store."""

    def __init__(self):
        self.tables: dict[str, dict[str, dict]] = defaultdict(dict)
        self._ids = itertools.count(1)

    def insert(self, table, record):
        record_id = f"{table}-{next(self._ids)}"
        row = copy.deepcopy(record)
        row["id"] = record_id
        self.tables[table][record_id] = row
        return record_id

    def get(self, table, record_id):
        row = self.tables[table].get(record_id)
        return copy.deepcopy(row) if row is not None else None

    def query(self, table, filters=None, *, gte=None, lte=None, order_by=None, desc=False, limit=None):
        rows = [copy.deepcopy(r) for r in self.tables[table].values()]
        for column, value in (filters or {}).items():
            rows = [r for r in rows if r.get(column) == value]
        for column, value in (gte or {}).items():
            rows = [r for r in rows if r.get(column) is not None and r[column] >= value]
        for column, value in (lte or {}).items():
            rows = [r for r in rows if r.get(column) is not None and r[column] <= value]
        if order_by:
            if desc:
                # newest insert first among ties
                rows.reverse()
            rows.sort(key=lambda r: r.get(order_by), reverse=desc)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def patch(self, table, record_id, partial):
        self.tables[table][record_id].update(copy.deepcopy(partial))

    def delete(self, table, record_id):
        self.tables[table].pop(record_id, None)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


async def _user_from_test_header(x_test_user: Optional[str] = Header(None)) -> Optional[str]:
    return x_test_user


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_current_user_id] = _user_from_test_header
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def as_user(user_id: str) -> dict:
    return {"X-Test-User": user_id}


def png_bytes(color, size=(8, 8)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def forged_png(width: int, height: int) -> bytes:
    """A 1x1 PNG whose IHDR claims ``width`` x ``height``."""
    data = bytearray(png_bytes((0, 255, 0, 255), size=(1, 1)))
    # signature(8) + length(4) + b"IHDR"(4), then width/height
    data[16:24] = struct.pack(">II", width, height)
    crc = zlib.crc32(bytes(data[12:29])) & 0xFFFFFFFF
    data[29:33] = struct.pack(">I", crc)
    return bytes(data)
