"""Single-shot and continuous location acquisition on top of a geolocation device."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

from ...models.domain import Coordinate, LocationCapability, LocationSample
from .device import (
    PERMISSION_DENIED,
    POSITION_UNAVAILABLE,
    TIMEOUT,
    GeolocationDevice,
    PositionError,
    PositionOptions,
)

logger = logging.getLogger(__name__)

HIGH_ACCURACY = PositionOptions(enable_high_accuracy=True, timeout_ms=15_000, max_cache_age_ms=30_000)
RELAXED = PositionOptions(enable_high_accuracy=False, timeout_ms=5_000, max_cache_age_ms=60_000)


class FailureReason(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"
    UNSUPPORTED = "unsupported"


_REASON_BY_CODE = {
    PERMISSION_DENIED: FailureReason.PERMISSION_DENIED,
    POSITION_UNAVAILABLE: FailureReason.POSITION_UNAVAILABLE,
    TIMEOUT: FailureReason.TIMEOUT,
}


@dataclass(frozen=True, slots=True)
class LocationFailure:
    reason: FailureReason
    message: str = ""

    @property
    def is_soft(self) -> bool:
        """Anything except a deliberate refusal lets the flow continue without location."""
        return self.reason is not FailureReason.PERMISSION_DENIED


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def parse_fix(payload: Any) -> Coordinate | None:
    """Build a Coordinate from an untrusted position payload, or return None.

    Accepts either the flat ``{latitude, longitude, accuracy}`` shape or the
    browser's ``{coords: {...}}`` shape.
    """
    if not isinstance(payload, Mapping):
        return None
    coords = payload.get("coords", payload)
    if not isinstance(coords, Mapping):
        return None

    latitude = _number(coords.get("latitude"))
    longitude = _number(coords.get("longitude"))
    accuracy = _number(coords.get("accuracy"))
    if latitude is None or longitude is None or accuracy is None:
        return None

    coordinate = Coordinate(latitude=latitude, longitude=longitude, accuracy_m=accuracy)
    return coordinate if coordinate.is_valid() else None


class WatchSubscription:
    """Handle for a continuous watch; callers must cancel it on teardown."""

    def __init__(self, device: GeolocationDevice | None, handle: int | None) -> None:
        self._device = device
        self._handle = handle

    @property
    def active(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._device is not None and self._handle is not None:
            self._device.clear_watch(self._handle)
        self._handle = None


class PendingFix:
    """A single-shot request already handed to the device."""

    def __init__(
        self,
        future: asyncio.Future,
        options: PositionOptions,
        *,
        device: GeolocationDevice | None = None,
        callback: Callable[[Any], None] | None = None,
    ) -> None:
        self._future = future
        self.options = options
        self._device = device
        self._callback = callback

    @property
    def answered(self) -> bool:
        return self._future.done() and not self._future.cancelled()

    async def settle(self, delay_s: float) -> None:
        """Sleep up to ``delay_s``, returning early once the device has answered."""
        if not self._future.done():
            await asyncio.wait([self._future], timeout=delay_s)

    async def result(self) -> Coordinate | LocationFailure:
        """Wait at most ``options.timeout_ms`` from now for the answer."""
        try:
            result = await asyncio.wait_for(self._future, timeout=self.options.timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.info(f"Location request timed out after {self.options.timeout_ms} ms")
            return LocationFailure(FailureReason.TIMEOUT, "Location request timed out")
        finally:
            self.cancel()

        if isinstance(result, LocationFailure):
            logger.info(f"Location request failed: {result.reason.value} {result.message}".rstrip())
        return result

    def cancel(self) -> None:
        """Drop the device-side request; a late answer is then ignored."""
        if self._device is not None and self._callback is not None:
            self._device.cancel_request(self._callback)
        self._callback = None
        if not self._future.done():
            self._future.cancel()


class LocationService:
    """Wraps a geolocation device; every fix is validated before it is used."""

    def __init__(self, device: GeolocationDevice | None, *, clock: Callable[[], float] = time.time) -> None:
        self._device = device
        self._clock = clock
        self._capability = LocationCapability.UNKNOWN
        if device is None or not device.supported:
            self._capability = LocationCapability.UNAVAILABLE
        self.last_sample: LocationSample | None = None

    @property
    def capability(self) -> LocationCapability:
        return self._capability

    def _record(self, coordinate: Coordinate) -> LocationSample:
        sample = LocationSample(coordinate=coordinate, captured_at=self._clock())
        self.last_sample = sample
        self._capability = LocationCapability.AVAILABLE
        return sample

    def request(self, options: PositionOptions = HIGH_ACCURACY) -> PendingFix:
        """Register a single-shot request with the device right away.

        The device may answer before anyone awaits ``PendingFix.result()``;
        the answer is held until then.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Coordinate | LocationFailure] = loop.create_future()
        if self._device is None or not self._device.supported:
            self._capability = LocationCapability.UNAVAILABLE
            future.set_result(
                LocationFailure(FailureReason.UNSUPPORTED, "Geolocation is not supported on this device")
            )
            return PendingFix(future, options)

        def on_success(payload: Any) -> None:
            if future.done():
                return
            coordinate = parse_fix(payload)
            if coordinate is None:
                logger.warning(f"Discarding malformed position payload: {payload!r}")
                future.set_result(
                    LocationFailure(FailureReason.POSITION_UNAVAILABLE, "Invalid geolocation position")
                )
                return
            self._record(coordinate)
            future.set_result(coordinate)

        def on_error(error: PositionError) -> None:
            if future.done():
                return
            reason = _REASON_BY_CODE.get(error.code, FailureReason.POSITION_UNAVAILABLE)
            future.set_result(LocationFailure(reason, error.message))

        pending = PendingFix(future, options, device=self._device, callback=on_success)
        self._device.get_current_position(on_success, on_error, options)
        return pending

    async def get_once(self, options: PositionOptions = HIGH_ACCURACY) -> Coordinate | LocationFailure:
        """Request a single fix; never waits longer than ``options.timeout_ms``."""
        return await self.request(options).result()

    def watch(
        self,
        callback: Callable[[LocationSample], None],
        options: PositionOptions = HIGH_ACCURACY,
    ) -> WatchSubscription:
        """Forward every valid fix to ``callback`` until the subscription is cancelled."""
        if self._device is None or not self._device.supported:
            self._capability = LocationCapability.UNAVAILABLE
            return WatchSubscription(None, None)

        def on_success(payload: Any) -> None:
            coordinate = parse_fix(payload)
            if coordinate is None:
                logger.warning(f"Dropping malformed watch payload: {payload!r}")
                return
            callback(self._record(coordinate))

        def on_error(error: PositionError) -> None:
            if error.code != PERMISSION_DENIED:
                logger.info(f"Watch position error {error.code}: {error.message}")

        handle = self._device.watch_position(on_success, on_error, options)
        return WatchSubscription(self._device, handle)
