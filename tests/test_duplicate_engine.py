import asyncio

import pytest

from src.eventreg.models.domain import Coordinate, LocationSample, Registration, Vehicle
from src.eventreg.persistence.store import InMemoryRegistrationStore, StoreError
from src.eventreg.services.duplicates import DuplicateDetectionEngine, ThrottlePolicy

ORIGIN = Coordinate(-5.1477, 119.4327, 10.0)


def _registration(name: str, phone: str, coordinate: Coordinate | None = ORIGIN) -> Registration:
    return Registration(
        id=None,
        full_name=name,
        whatsapp_number=phone,
        vehicles=[Vehicle(vehicle_type="Vespa", plate_number="DD 1234 XY")],
        category="Vietnam Style",
        package_type="meetup",
        proof_url="memory://proofs/x.jpg",
        coordinate=coordinate,
    )


def _store(*registrations: Registration) -> InMemoryRegistrationStore:
    store = InMemoryRegistrationStore()
    for registration in registrations:
        asyncio.run(store.insert(registration))
    return store


class CountingStore(InMemoryRegistrationStore):
    def __init__(self) -> None:
        super().__init__()
        self.location_queries = 0

    async def list_located(self):
        self.location_queries += 1
        return await super().list_located()


class BrokenStore(InMemoryRegistrationStore):
    async def find_by_identity(self, full_name, whatsapp_number):
        raise StoreError("connection reset")

    async def list_located(self):
        raise StoreError("connection reset")


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def _sample(lat: float, lon: float) -> LocationSample:
    return LocationSample(coordinate=Coordinate(lat, lon, 5.0), captured_at=0.0)


def test_candidate_within_thirty_meters_is_location_duplicate() -> None:
    store = _store(_registration("Andi", "081234567890"))
    engine = DuplicateDetectionEngine(store, radius_m=50)

    # 0.0002 degrees of latitude is roughly 22 meters.
    verdict = asyncio.run(engine.check_location(Coordinate(-5.1479, 119.4327, 6.0)))

    assert verdict.is_duplicate_location
    assert verdict.matched_registrant_name == "Andi"
    assert verdict.distance_meters == pytest.approx(22.2, abs=0.5)
    assert not verdict.is_duplicate_identity


def test_candidate_outside_radius_is_clear() -> None:
    store = _store(_registration("Andi", "081234567890"))
    engine = DuplicateDetectionEngine(store, radius_m=50)

    verdict = asyncio.run(engine.check_location(Coordinate(-5.1487, 119.4327, 6.0)))

    assert not verdict.is_duplicate


def test_advisory_radius_is_wider_than_strict_radius() -> None:
    store = _store(_registration("Andi", "081234567890"))
    candidate = Coordinate(-5.1484, 119.4327, 6.0)  # about 78 meters away

    strict = asyncio.run(DuplicateDetectionEngine(store, radius_m=50).check_location(candidate))
    advisory = asyncio.run(DuplicateDetectionEngine(store, radius_m=100).check_location(candidate))

    assert not strict.is_duplicate_location
    assert advisory.is_duplicate_location


def test_registrations_without_location_are_ignored() -> None:
    store = _store(_registration("Budi", "081111111111", coordinate=None))
    engine = DuplicateDetectionEngine(store, radius_m=50)

    assert not asyncio.run(engine.check_location(ORIGIN)).is_duplicate


def test_identity_requires_both_name_and_phone() -> None:
    store = _store(_registration("Andi", "081234567890"))
    engine = DuplicateDetectionEngine(store, radius_m=50)

    same = asyncio.run(engine.check_identity("Andi", "081234567890"))
    padded = asyncio.run(engine.check_identity("  Andi ", " 081234567890 "))
    other_phone = asyncio.run(engine.check_identity("Andi", "089999999999"))
    other_case = asyncio.run(engine.check_identity("andi", "081234567890"))

    assert same.is_duplicate_identity
    assert padded.is_duplicate_identity
    assert not other_phone.is_duplicate_identity
    assert not other_case.is_duplicate_identity


def test_identity_duplicate_short_circuits_location_check() -> None:
    store = CountingStore()
    asyncio.run(store.insert(_registration("Andi", "081234567890")))
    engine = DuplicateDetectionEngine(store, radius_m=50)

    verdict = asyncio.run(engine.check(ORIGIN, "Andi", "081234567890"))

    assert verdict.is_duplicate_identity
    assert not verdict.is_duplicate_location
    assert store.location_queries == 0


def test_store_failures_fail_open() -> None:
    engine = DuplicateDetectionEngine(BrokenStore(), radius_m=50)

    verdict = asyncio.run(engine.check(ORIGIN, "Andi", "081234567890"))

    assert not verdict.is_duplicate
    assert not engine.in_flight


def test_close_samples_within_interval_trigger_one_query() -> None:
    store = CountingStore()
    clock = FakeClock()
    engine = DuplicateDetectionEngine(store, radius_m=100, throttle=ThrottlePolicy(5.0, 10.0), clock=clock)

    first = asyncio.run(engine.observe(_sample(-5.1477, 119.4327)))
    clock.now += 2.0
    second = asyncio.run(engine.observe(_sample(-5.14773, 119.4327)))

    assert first is not None
    assert second is None
    assert store.location_queries == 1


def test_throttle_requires_both_elapsed_time_and_movement() -> None:
    store = CountingStore()
    clock = FakeClock()
    engine = DuplicateDetectionEngine(store, radius_m=100, throttle=ThrottlePolicy(5.0, 10.0), clock=clock)

    asyncio.run(engine.observe(_sample(-5.1477, 119.4327)))
    clock.now += 1.0
    asyncio.run(engine.observe(_sample(-5.1487, 119.4327)))  # moved, too soon
    clock.now += 10.0
    asyncio.run(engine.observe(_sample(-5.14773, 119.4327)))  # late enough, barely moved
    asyncio.run(engine.observe(_sample(-5.1487, 119.4327)))  # late enough and moved

    assert store.location_queries == 2


def test_concurrent_observe_is_single_flight() -> None:
    class SlowStore(CountingStore):
        async def list_located(self):
            await asyncio.sleep(0.01)
            return await super().list_located()

    async def scenario():
        store = SlowStore()
        engine = DuplicateDetectionEngine(store, radius_m=100, throttle=ThrottlePolicy(0.0, 0.0))
        results = await asyncio.gather(
            engine.observe(_sample(-5.1477, 119.4327)),
            engine.observe(_sample(-5.1577, 119.4327)),
        )
        return results, store.location_queries

    results, queries = asyncio.run(scenario())

    assert sum(result is not None for result in results) == 1
    assert queries == 1


def test_observe_keeps_latest_verdict_for_display() -> None:
    store = _store(_registration("Andi", "081234567890"))
    engine = DuplicateDetectionEngine(store, radius_m=100)

    asyncio.run(engine.observe(_sample(-5.1478, 119.4327)))

    assert engine.verdict is not None
    assert engine.verdict.matched_registrant_name == "Andi"
    engine.reset()
    assert engine.verdict is None
