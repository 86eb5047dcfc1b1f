"""Supabase-backed registration store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, TypeVar

from supabase import Client

from ..config import Settings, settings as default_settings
from ..db.supabase import get_supabase_client
from ..models.domain import Registration, RegistrationStatus
from .store import DuplicateRegistrationError, InMemoryRegistrationStore, RegistrationStore, StoreError, artifact_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNIQUE_VIOLATION = "23505"


class SupabaseRegistrationStore:
    """Runs the blocking supabase-py calls in worker threads."""

    kind = "supabase"

    def __init__(self, client: Client, *, table: str = "registrations", bucket: str = "proofs") -> None:
        self._client = client
        self._table = table
        self._bucket = bucket

    async def _run(self, operation: str, call: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(call)
        except Exception as exc:
            if getattr(exc, "code", None) == UNIQUE_VIOLATION:
                raise DuplicateRegistrationError(f"{operation} rejected: {exc}") from exc
            raise StoreError(f"{operation} failed: {exc}") from exc

    def _rows(self, response: Any) -> list[Registration]:
        rows: list[Registration] = []
        for row in response.data or []:
            try:
                rows.append(Registration.from_record(row))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping invalid registration row {row.get('id')}: {e}")
        return rows

    async def find_by_identity(self, full_name: str, whatsapp_number: str) -> list[Registration]:
        # Two equality queries instead of one or_() filter so names never need PostgREST escaping.
        def _query() -> list[Registration]:
            by_name = self._client.table(self._table).select("*").eq("full_name", full_name).execute()
            by_phone = self._client.table(self._table).select("*").eq("whatsapp", whatsapp_number).execute()
            merged: dict[str, Registration] = {}
            for row in self._rows(by_name) + self._rows(by_phone):
                merged.setdefault(row.id or "", row)
            return list(merged.values())

        return await self._run("Identity lookup", _query)

    async def list_located(self) -> list[Registration]:
        def _query() -> list[Registration]:
            response = (
                self._client.table(self._table)
                .select("*")
                .not_.is_("latitude", "null")
                .not_.is_("longitude", "null")
                .execute()
            )
            return self._rows(response)

        return await self._run("Location lookup", _query)

    async def insert(self, registration: Registration) -> Registration:
        record = registration.to_record()

        def _insert() -> Registration:
            response = self._client.table(self._table).insert(record).execute()
            rows = self._rows(response)
            if not rows:
                raise StoreError("Insert returned no rows")
            return rows[0]

        return await self._run("Insert", _insert)

    async def upload_artifact(self, content: bytes, content_type: str, filename: str) -> str:
        path = artifact_name(filename)

        def _upload() -> str:
            bucket = self._client.storage.from_(self._bucket)
            bucket.upload(path, content, {"content-type": content_type})
            return bucket.get_public_url(path)

        return await self._run("Proof upload", _upload)

    async def remove_artifact(self, url: str) -> None:
        name = url.rsplit("/", 1)[-1].split("?", 1)[0]
        await self._run("Proof removal", lambda: self._client.storage.from_(self._bucket).remove([name]))

    async def list_all(self, status: Optional[RegistrationStatus] = None) -> list[Registration]:
        def _query() -> list[Registration]:
            query = self._client.table(self._table).select("*")
            if status is not None:
                query = query.eq("status", status.value)
            return self._rows(query.order("created_at", desc=True).execute())

        return await self._run("Registration listing", _query)

    async def set_status(self, registration_id: str, status: RegistrationStatus) -> Optional[Registration]:
        def _update() -> Optional[Registration]:
            response = (
                self._client.table(self._table)
                .update({"status": status.value})
                .eq("id", registration_id)
                .execute()
            )
            rows = self._rows(response)
            return rows[0] if rows else None

        return await self._run("Status update", _update)

    async def delete(self, registration_id: str) -> Optional[Registration]:
        def _delete() -> Optional[Registration]:
            response = self._client.table(self._table).delete().eq("id", registration_id).execute()
            rows = self._rows(response)
            return rows[0] if rows else None

        return await self._run("Delete", _delete)


def get_registration_store(app_settings: Settings | None = None) -> RegistrationStore:
    """Supabase store when credentials are configured, otherwise an in-memory store."""
    settings = app_settings or default_settings
    client = get_supabase_client(settings.supabase_url, settings.supabase_key)
    if client is None:
        logger.warning("Using in-memory registration store; data will not survive a restart")
        return InMemoryRegistrationStore()
    return SupabaseRegistrationStore(client, table=settings.registrations_table, bucket=settings.proofs_bucket)
