"""Duplicate-registration detection by identity and by device location."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ...models.domain import Coordinate, DuplicateVerdict, LocationSample
from ...persistence.store import RegistrationStore, StoreError
from ..geospatial import distance_meters

logger = logging.getLogger(__name__)

NO_DUPLICATE = DuplicateVerdict()


@dataclass(frozen=True, slots=True)
class ThrottlePolicy:
    """Bounds store reads while a device keeps emitting noisy fixes."""

    min_interval_s: float = 5.0
    min_move_m: float = 10.0


class DuplicateDetectionEngine:
    """Checks candidate registrations against the stored reference set.

    One engine serves one consumer (background monitoring or submit-time
    checks) for the lifetime of a form session. Store read failures are
    logged and reported as "no duplicate".
    """

    def __init__(
        self,
        store: RegistrationStore,
        *,
        radius_m: float,
        throttle: ThrottlePolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        label: str = "duplicates",
    ) -> None:
        self._store = store
        self.radius_m = radius_m
        self._throttle = throttle or ThrottlePolicy()
        self._clock = clock
        self._label = label
        self._in_flight = False
        self._last_check_at: Optional[float] = None
        self._last_checked: Optional[Coordinate] = None
        self.verdict: Optional[DuplicateVerdict] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def reset(self) -> None:
        self._last_check_at = None
        self._last_checked = None
        self.verdict = None

    async def check_identity(self, full_name: str, whatsapp_number: str) -> DuplicateVerdict:
        """Hard duplicate when a stored row matches both trimmed name and number."""
        name = full_name.strip()
        phone = whatsapp_number.strip()
        try:
            candidates = await self._store.find_by_identity(name, phone)
        except StoreError as exc:
            logger.warning(f"[{self._label}] identity check failed, allowing registration: {exc}")
            return NO_DUPLICATE

        for registration in candidates:
            if registration.full_name == name and registration.whatsapp_number == phone:
                logger.info(f"[{self._label}] identity already registered as {registration.id}")
                return DuplicateVerdict(is_duplicate_identity=True, matched_registrant_name=registration.full_name)
        return NO_DUPLICATE

    async def check_location(self, coordinate: Coordinate, radius_m: float | None = None) -> DuplicateVerdict:
        """First stored registration closer than the radius, in store order."""
        radius = self.radius_m if radius_m is None else radius_m
        try:
            registrations = await self._store.list_located()
        except StoreError as exc:
            logger.warning(f"[{self._label}] location check failed, allowing registration: {exc}")
            return NO_DUPLICATE

        for registration in registrations:
            if registration.coordinate is None:
                continue
            distance = distance_meters(coordinate, registration.coordinate)
            if distance < radius:
                logger.info(
                    f"[{self._label}] location within {distance:.1f} m of registration "
                    f"{registration.id} ({registration.full_name})"
                )
                return DuplicateVerdict(
                    is_duplicate_location=True,
                    matched_registrant_name=registration.full_name,
                    distance_meters=distance,
                )
        return NO_DUPLICATE

    async def check(
        self, coordinate: Coordinate | None, full_name: str, whatsapp_number: str
    ) -> Optional[DuplicateVerdict]:
        """Identity check, then location check; None if this consumer is already checking."""
        if self._in_flight:
            return None
        self._in_flight = True
        try:
            verdict = await self.check_identity(full_name, whatsapp_number)
            if not verdict.is_duplicate_identity and coordinate is not None:
                verdict = await self.check_location(coordinate)
        finally:
            self._in_flight = False
        self.verdict = verdict
        return verdict

    def should_check(self, sample: LocationSample) -> bool:
        if self._in_flight:
            return False
        now = self._clock()
        if self._last_check_at is not None and now - self._last_check_at < self._throttle.min_interval_s:
            return False
        if self._last_checked is not None:
            moved = distance_meters(self._last_checked, sample.coordinate)
            if moved < self._throttle.min_move_m:
                return False
        return True

    async def observe(self, sample: LocationSample) -> Optional[DuplicateVerdict]:
        """Throttled location check for a monitored sample; None when skipped."""
        if not self.should_check(sample):
            return None

        self._in_flight = True
        self._last_check_at = self._clock()
        self._last_checked = sample.coordinate
        try:
            verdict = await self.check_location(sample.coordinate)
        finally:
            self._in_flight = False
        self.verdict = verdict
        return verdict
