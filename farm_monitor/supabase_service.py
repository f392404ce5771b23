"""
supabase_service.py — Table store backed by Supabase.

The repositories only talk to the store interface below
(insert / get / query / patch, plus delete for rolling back a
partial write); the storage format belongs to Supabase.

Tables: fields, alerts, sensor_readings, processing_jobs, images.
Every table has a uuid ``id`` primary key generated by the database.
"""

import logging
from typing import Any, Optional, Protocol

from supabase import create_client, Client

import config

logger = logging.getLogger(__name__)

_supabase: Client | None = None


def init_supabase() -> Client:
    """Initialise (or return cached) Supabase client."""
    global _supabase
    if _supabase is not None:
        return _supabase

    url = config.SUPABASE_URL
    key = config.SUPABASE_SERVICE_KEY
    if not url or not key:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set in .env"
        )

    _supabase = create_client(url, key)
    logger.info("Supabase client initialised (%s)", url)
    return _supabase


class TableStore(Protocol):
    def insert(self, table: str, record: dict) -> str: ...

    def get(self, table: str, record_id: str) -> Optional[dict]: ...

    def query(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        *,
        gte: dict[str, Any] | None = None,
        lte: dict[str, Any] | None = None,
        order_by: str | None = None,
        desc: bool = False,
        limit: int | None = None,
    ) -> list[dict]: ...

    def patch(self, table: str, record_id: str, partial: dict) -> None: ...

    def delete(self, table: str, record_id: str) -> None: ...


class SupabaseStore:
    """TableStore over the Supabase PostgREST client."""

    def __init__(self, client: Client | None = None):
        self.sb = client or init_supabase()

    def insert(self, table: str, record: dict) -> str:
        result = self.sb.table(table).insert(record).execute()
        row = result.data[0]
        logger.debug("Inserted %s id=%s", table, row["id"])
        return row["id"]

    def get(self, table: str, record_id: str) -> Optional[dict]:
        result = self.sb.table(table).select("*").eq("id", record_id).limit(1).execute()
        return result.data[0] if result.data else None

    def query(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        *,
        gte: dict[str, Any] | None = None,
        lte: dict[str, Any] | None = None,
        order_by: str | None = None,
        desc: bool = False,
        limit: int | None = None,
    ) -> list[dict]:
        q = self.sb.table(table).select("*")
        for column, value in (filters or {}).items():
            q = q.eq(column, value)
        for column, value in (gte or {}).items():
            q = q.gte(column, value)
        for column, value in (lte or {}).items():
            q = q.lte(column, value)
        if order_by:
            q = q.order(order_by, desc=desc)
        if limit is not None:
            q = q.limit(limit)
        result = q.execute()
        return result.data or []

    def patch(self, table: str, record_id: str, partial: dict) -> None:
        self.sb.table(table).update(partial).eq("id", record_id).execute()
        logger.debug("Patched %s id=%s fields=%s", table, record_id, sorted(partial))

    def delete(self, table: str, record_id: str) -> None:
        self.sb.table(table).delete().eq("id", record_id).execute()
        logger.debug("Deleted %s id=%s", table, record_id)
