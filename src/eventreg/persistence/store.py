"""Registration store contract and the in-memory implementation."""

from __future__ import annotations

import time
import uuid
from dataclasses import replace
from typing import Optional, Protocol

from ..models.domain import Registration, RegistrationStatus


class StoreError(RuntimeError):
    """Raised by store adapters for any query, insert or upload failure."""


class DuplicateRegistrationError(StoreError):
    """The store rejected an insert because the identity is already registered."""


class RegistrationStore(Protocol):
    async def find_by_identity(self, full_name: str, whatsapp_number: str) -> list[Registration]:
        """Registrations whose name OR WhatsApp number equals the given values."""
        ...

    async def list_located(self) -> list[Registration]:
        """Registrations that carry a coordinate, in store order."""
        ...

    async def insert(self, registration: Registration) -> Registration: ...

    async def upload_artifact(self, content: bytes, content_type: str, filename: str) -> str: ...

    async def remove_artifact(self, url: str) -> None: ...

    async def list_all(self, status: Optional[RegistrationStatus] = None) -> list[Registration]: ...

    async def set_status(self, registration_id: str, status: RegistrationStatus) -> Optional[Registration]: ...

    async def delete(self, registration_id: str) -> Optional[Registration]: ...


def artifact_name(filename: str) -> str:
    """Collision-resistant object name that keeps the uploaded file's extension."""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{extension}"


class InMemoryRegistrationStore:
    """Process-local store used in tests and when Supabase is not configured.

    Enforces uniqueness of the (full_name, whatsapp) pair on insert, mirroring
    the unique index declared in ``sql/registrations.sql``.
    """

    kind = "memory"

    def __init__(self, *, public_base_url: str = "memory://proofs/") -> None:
        self.public_base_url = public_base_url
        self._rows: list[Registration] = []
        self.artifacts: dict[str, tuple[bytes, str]] = {}

    async def find_by_identity(self, full_name: str, whatsapp_number: str) -> list[Registration]:
        return [
            replace(row)
            for row in self._rows
            if row.full_name == full_name or row.whatsapp_number == whatsapp_number
        ]

    async def list_located(self) -> list[Registration]:
        return [replace(row) for row in self._rows if row.coordinate is not None]

    async def insert(self, registration: Registration) -> Registration:
        for row in self._rows:
            if row.full_name == registration.full_name and row.whatsapp_number == registration.whatsapp_number:
                raise DuplicateRegistrationError(
                    f"Registration for '{registration.full_name}' with this WhatsApp number already exists"
                )
        stored = replace(registration, id=registration.id or str(uuid.uuid4()))
        self._rows.append(stored)
        return replace(stored)

    async def upload_artifact(self, content: bytes, content_type: str, filename: str) -> str:
        name = artifact_name(filename)
        self.artifacts[name] = (content, content_type)
        return f"{self.public_base_url}{name}"

    async def remove_artifact(self, url: str) -> None:
        self.artifacts.pop(url.rsplit("/", 1)[-1], None)

    async def list_all(self, status: Optional[RegistrationStatus] = None) -> list[Registration]:
        rows = [row for row in self._rows if status is None or row.status is status]
        return [replace(row) for row in sorted(rows, key=lambda row: row.created_at, reverse=True)]

    async def set_status(self, registration_id: str, status: RegistrationStatus) -> Optional[Registration]:
        for row in self._rows:
            if row.id == registration_id:
                row.status = status
                return replace(row)
        return None

    async def delete(self, registration_id: str) -> Optional[Registration]:
        for index, row in enumerate(self._rows):
            if row.id == registration_id:
                return self._rows.pop(index)
        return None
