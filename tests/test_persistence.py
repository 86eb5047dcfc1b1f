import asyncio
from types import SimpleNamespace

import pytest

from src.eventreg.config import Settings
from src.eventreg.models.domain import Coordinate, Registration, RegistrationStatus, Vehicle
from src.eventreg.persistence.store import DuplicateRegistrationError, InMemoryRegistrationStore, StoreError
from src.eventreg.persistence.supabase_store import SupabaseRegistrationStore, get_registration_store


def _registration(name: str, phone: str, coordinate: Coordinate | None = None) -> Registration:
    return Registration(
        id=None,
        full_name=name,
        whatsapp_number=phone,
        vehicles=[Vehicle(vehicle_type="Honda Beat", plate_number="DD 1 A")],
        category="Sunmori Matic",
        package_type="meetup",
        proof_url=None,
        coordinate=coordinate,
    )


def test_memory_store_enforces_identity_uniqueness() -> None:
    store = InMemoryRegistrationStore()
    asyncio.run(store.insert(_registration("Andi", "081234567890")))

    with pytest.raises(DuplicateRegistrationError):
        asyncio.run(store.insert(_registration("Andi", "081234567890")))

    asyncio.run(store.insert(_registration("Andi", "089999999999")))
    matches = asyncio.run(store.find_by_identity("Andi", "000"))
    assert len(matches) == 2


def test_memory_store_lists_only_located_rows() -> None:
    store = InMemoryRegistrationStore()
    asyncio.run(store.insert(_registration("A", "0811111111", Coordinate(1.0, 2.0, 3.0))))
    asyncio.run(store.insert(_registration("B", "0822222222")))

    located = asyncio.run(store.list_located())

    assert [row.full_name for row in located] == ["A"]


def test_memory_store_status_and_delete() -> None:
    store = InMemoryRegistrationStore()
    saved = asyncio.run(store.insert(_registration("A", "0811111111")))

    verified = asyncio.run(store.set_status(saved.id, RegistrationStatus.VERIFIED))
    removed = asyncio.run(store.delete(saved.id))

    assert verified is not None and verified.status is RegistrationStatus.VERIFIED
    assert removed is not None and removed.id == saved.id
    assert asyncio.run(store.set_status(saved.id, RegistrationStatus.VERIFIED)) is None


def test_registration_record_matches_table_columns() -> None:
    registration = _registration("Citra", "081298765432", Coordinate(-5.1477, 119.4327, 12.5))
    registration.vehicles.append(Vehicle(vehicle_type="Vespa", plate_number="DD 2 B"))

    record = registration.to_record()
    restored = Registration.from_record({**record, "id": 7, "created_at": "2025-08-01T10:00:00Z"})

    assert record["whatsapp"] == "081298765432"
    assert record["vehicle_type"] == "Honda Beat, Vespa"
    assert record["vehicle_count"] == 2
    assert record["status"] == "pending"
    assert "id" not in record
    assert restored.id == "7"
    assert restored.vehicles == registration.vehicles
    assert restored.coordinate == Coordinate(-5.1477, 119.4327, 12.5)
    assert restored.created_at.tzinfo is not None


class FakeQuery:
    def __init__(self, client: "FakeClient") -> None:
        self._client = client
        self._filters: list[tuple[str, str, object]] = []
        self._negate = False
        self._payload = None

    def select(self, columns: str) -> "FakeQuery":
        return self

    def insert(self, payload: dict) -> "FakeQuery":
        self._payload = payload
        return self

    def eq(self, column: str, value: object) -> "FakeQuery":
        self._filters.append(("eq", column, value))
        return self

    @property
    def not_(self) -> "FakeQuery":
        self._negate = True
        return self

    def is_(self, column: str, value: str) -> "FakeQuery":
        self._filters.append(("not_null" if self._negate else "null", column, value))
        self._negate = False
        return self

    def execute(self) -> SimpleNamespace:
        if self._client.error is not None:
            raise self._client.error
        if self._payload is not None:
            row = {**self._payload, "id": f"row-{len(self._client.rows) + 1}"}
            self._client.rows.append(row)
            return SimpleNamespace(data=[row])

        rows = self._client.rows
        for kind, column, value in self._filters:
            if kind == "eq":
                rows = [row for row in rows if row.get(column) == value]
            elif kind == "not_null":
                rows = [row for row in rows if row.get(column) is not None]
        return SimpleNamespace(data=rows)


class FakeClient:
    def __init__(self) -> None:
        self.rows: list[dict] = []
        self.error: Exception | None = None

    def table(self, name: str) -> FakeQuery:
        assert name == "registrations"
        return FakeQuery(self)


def test_supabase_store_queries_identity_and_location() -> None:
    client = FakeClient()
    store = SupabaseRegistrationStore(client)
    asyncio.run(store.insert(_registration("Andi", "081234567890", Coordinate(1.0, 2.0, 3.0))))
    asyncio.run(store.insert(_registration("Budi", "082222222222")))

    by_identity = asyncio.run(store.find_by_identity("Andi", "082222222222"))
    located = asyncio.run(store.list_located())

    assert sorted(row.full_name for row in by_identity) == ["Andi", "Budi"]
    assert [row.full_name for row in located] == ["Andi"]


def test_supabase_store_wraps_errors() -> None:
    class UniqueViolation(Exception):
        code = "23505"

    client = FakeClient()
    store = SupabaseRegistrationStore(client)

    client.error = UniqueViolation("duplicate key value violates unique constraint")
    with pytest.raises(DuplicateRegistrationError):
        asyncio.run(store.insert(_registration("Andi", "081234567890")))

    client.error = ConnectionError("network unreachable")
    with pytest.raises(StoreError, match="Location lookup failed"):
        asyncio.run(store.list_located())


def test_store_factory_falls_back_to_memory_without_credentials() -> None:
    store = get_registration_store(Settings(supabase_url=None, supabase_key=None))

    assert isinstance(store, InMemoryRegistrationStore)
    assert store.kind == "memory"
