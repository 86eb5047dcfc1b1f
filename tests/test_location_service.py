import asyncio

from src.eventreg.models.domain import Coordinate, LocationCapability
from src.eventreg.services.location import (
    FailureReason,
    LocationFailure,
    LocationService,
    PositionOptions,
    PushGeolocationDevice,
    parse_fix,
)

FAST = PositionOptions(enable_high_accuracy=True, timeout_ms=200, max_cache_age_ms=0)
FIX = {"latitude": -5.1477, "longitude": 119.4327, "accuracy": 8.0}


def test_parse_fix_accepts_flat_and_browser_shapes() -> None:
    assert parse_fix(FIX) == Coordinate(-5.1477, 119.4327, 8.0)
    assert parse_fix({"coords": FIX}) == Coordinate(-5.1477, 119.4327, 8.0)


def test_parse_fix_rejects_partial_or_invalid_payloads() -> None:
    assert parse_fix(None) is None
    assert parse_fix("somewhere") is None
    assert parse_fix({"latitude": 1.0, "longitude": 2.0}) is None
    assert parse_fix({"latitude": "1.0", "longitude": 2.0, "accuracy": 3.0}) is None
    assert parse_fix({"latitude": True, "longitude": 2.0, "accuracy": 3.0}) is None
    assert parse_fix({"latitude": 91.0, "longitude": 2.0, "accuracy": 3.0}) is None
    assert parse_fix({"latitude": 1.0, "longitude": 2.0, "accuracy": -1.0}) is None
    assert parse_fix({"latitude": float("nan"), "longitude": 2.0, "accuracy": 3.0}) is None


def test_get_once_resolves_with_pushed_fix() -> None:
    async def scenario():
        device = PushGeolocationDevice()
        service = LocationService(device)
        request = asyncio.create_task(service.get_once(FAST))
        await asyncio.sleep(0)
        device.push_fix(FIX)
        return await request, service

    result, service = asyncio.run(scenario())

    assert result == Coordinate(-5.1477, 119.4327, 8.0)
    assert service.capability is LocationCapability.AVAILABLE
    assert service.last_sample is not None


def test_get_once_times_out_without_callback() -> None:
    async def scenario():
        device = PushGeolocationDevice()
        service = LocationService(device)
        loop = asyncio.get_running_loop()
        started = loop.time()
        result = await service.get_once(PositionOptions(timeout_ms=50, max_cache_age_ms=0))
        return result, loop.time() - started, device

    result, elapsed, device = asyncio.run(scenario())

    assert result == LocationFailure(FailureReason.TIMEOUT, "Location request timed out")
    assert result.is_soft
    assert elapsed < 1.0
    # A late fix after the timeout must not blow up the abandoned request.
    device.push_fix(FIX)


def test_get_once_maps_device_errors() -> None:
    async def scenario(code: int):
        device = PushGeolocationDevice()
        service = LocationService(device)
        request = asyncio.create_task(service.get_once(FAST))
        await asyncio.sleep(0)
        device.push_error(code, "nope")
        return await request

    denied = asyncio.run(scenario(1))
    unavailable = asyncio.run(scenario(2))

    assert denied.reason is FailureReason.PERMISSION_DENIED
    assert not denied.is_soft
    assert unavailable.reason is FailureReason.POSITION_UNAVAILABLE
    assert unavailable.is_soft


def test_get_once_reports_unsupported_device() -> None:
    service = LocationService(PushGeolocationDevice(supported=False))

    result = asyncio.run(service.get_once(FAST))

    assert result.reason is FailureReason.UNSUPPORTED
    assert service.capability is LocationCapability.UNAVAILABLE
    assert LocationService(None).capability is LocationCapability.UNAVAILABLE


def test_get_once_uses_cached_fix_within_max_age() -> None:
    async def scenario():
        device = PushGeolocationDevice()
        device.push_fix(FIX)
        service = LocationService(device)
        return await service.get_once(PositionOptions(timeout_ms=50, max_cache_age_ms=60_000))

    assert asyncio.run(scenario()) == Coordinate(-5.1477, 119.4327, 8.0)


def test_watch_drops_malformed_payloads_and_stops_after_cancel() -> None:
    device = PushGeolocationDevice()
    service = LocationService(device)
    received = []

    subscription = service.watch(received.append)
    device.push_fix({"latitude": -5.1477})
    device.push_fix(FIX)
    device.push_error(3, "timeout")
    subscription.cancel()
    device.push_fix(FIX)

    assert len(received) == 1
    assert received[0].coordinate == Coordinate(-5.1477, 119.4327, 8.0)
    assert not subscription.active
    assert device.watcher_count == 0


def test_error_pushed_while_nobody_waits_answers_next_request_once() -> None:
    async def scenario():
        device = PushGeolocationDevice()
        service = LocationService(device)
        device.push_error(1, "User denied Geolocation")
        first = await service.get_once(FAST)
        second = await service.get_once(PositionOptions(timeout_ms=50, max_cache_age_ms=0))
        device.push_error(2, "no signal")
        device.push_fix(FIX)
        third = await service.get_once(PositionOptions(timeout_ms=50, max_cache_age_ms=60_000))
        return first, second, third

    first, second, third = asyncio.run(scenario())

    assert first.reason is FailureReason.PERMISSION_DENIED
    assert second.reason is FailureReason.TIMEOUT
    assert third == Coordinate(-5.1477, 119.4327, 8.0)


def test_timed_out_requests_do_not_pile_up_on_device() -> None:
    async def scenario():
        device = PushGeolocationDevice()
        service = LocationService(device)
        for _ in range(3):
            await service.get_once(PositionOptions(timeout_ms=20, max_cache_age_ms=0))
        return device

    device = asyncio.run(scenario())

    assert device.pending_requests == 0
