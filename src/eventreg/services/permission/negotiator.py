"""Location permission negotiation.

States::

    UNKNOWN --open()--> PROMPTING --fix--------------> GRANTED
                            |------permission denied--> DENIED --retry()--> PROMPTING
                            '------timeout/unavailable-> UNAVAILABLE --open()/retry()--> PROMPTING

DENIED never re-prompts on its own; only an explicit retry leaves it.
UNAVAILABLE is a soft outcome and lets the caller continue without location.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable

from ...models.domain import Coordinate, PermissionState
from ..location.device import PositionOptions
from ..location.service import FailureReason, LocationFailure, LocationService, PendingFix

logger = logging.getLogger(__name__)

PERMISSION_REQUEST = PositionOptions(enable_high_accuracy=True, timeout_ms=10_000, max_cache_age_ms=0)

REMEDIATION_STEPS: dict[str, tuple[str, ...]] = {
    "chrome": (
        "Click the lock icon in the address bar",
        "Set Location to Allow",
        "Reload the page",
    ),
    "firefox": (
        "Click the shield or permissions icon in the address bar",
        "Remove the blocked Location permission",
        "Reload the page",
    ),
    "safari": (
        "Open Settings > Privacy > Location Services",
        "Allow location access for your browser",
        "Reload the page",
    ),
}


class NegotiationState(str, Enum):
    UNKNOWN = "unknown"
    PROMPTING = "prompting"
    GRANTED = "granted"
    DENIED = "denied"
    UNAVAILABLE = "unavailable"


_PERMISSION_BY_STATE = {
    NegotiationState.UNKNOWN: PermissionState.UNKNOWN,
    NegotiationState.PROMPTING: PermissionState.PROMPT,
    NegotiationState.GRANTED: PermissionState.GRANTED,
    NegotiationState.DENIED: PermissionState.DENIED,
    NegotiationState.UNAVAILABLE: PermissionState.UNKNOWN,
}


class PermissionNegotiator:
    """Drives the permission modal of one form session.

    At most one location request is in flight per negotiator; triggers that
    arrive while one is pending are ignored.
    """

    def __init__(
        self,
        location: LocationService,
        *,
        on_granted: Callable[[Coordinate], None] | None = None,
        settle_delay_ms: int = 500,
        options: PositionOptions = PERMISSION_REQUEST,
    ) -> None:
        self._location = location
        self._on_granted = on_granted
        self._settle_delay = settle_delay_ms / 1000
        self._options = options
        self._task: asyncio.Task[None] | None = None
        self._pending: PendingFix | None = None
        self._requesting = False
        self.state = NegotiationState.UNKNOWN
        self.show_instructions = False
        self.last_failure: LocationFailure | None = None

    @property
    def permission(self) -> PermissionState:
        return _PERMISSION_BY_STATE[self.state]

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def requesting(self) -> bool:
        """True once the settle delay has passed and the device has been asked."""
        return self.in_flight and self._requesting

    @property
    def answered(self) -> bool:
        """True while the device has answered but the result is not applied yet."""
        return self.in_flight and self._pending is not None and self._pending.answered

    def instructions(self) -> dict[str, tuple[str, ...]]:
        return dict(REMEDIATION_STEPS) if self.show_instructions else {}

    def open(self) -> bool:
        """Auto-request after the settle delay; returns False when nothing was started."""
        if self.in_flight:
            return False
        if self.state not in (NegotiationState.UNKNOWN, NegotiationState.UNAVAILABLE):
            return False
        self._start(self._settle_delay)
        return True

    def retry(self) -> bool:
        """User-initiated retry from DENIED (or after a soft failure)."""
        if self.in_flight:
            return False
        if self.state not in (NegotiationState.DENIED, NegotiationState.UNAVAILABLE):
            return False
        self.show_instructions = False
        self._start(0.0)
        return True

    async def wait(self) -> NegotiationState:
        if self._task is not None:
            await self._task
        return self.state

    def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._pending is not None:
            self._pending.cancel()
        self._task = None
        self._pending = None
        self._requesting = False
        if self.state is NegotiationState.PROMPTING:
            self.state = NegotiationState.UNKNOWN

    def _start(self, delay: float) -> None:
        self.state = NegotiationState.PROMPTING
        self._requesting = False
        # Registered before the settle delay so an early fix or denial is not missed.
        self._pending = self._location.request(self._options)
        self._task = asyncio.get_running_loop().create_task(self._request(delay, self._pending))

    async def _request(self, delay: float, pending: PendingFix) -> None:
        try:
            if delay > 0:
                await pending.settle(delay)
            self._requesting = True
            result = await pending.result()
        finally:
            self._requesting = False
            pending.cancel()
        self._resolve(result)

    def _resolve(self, result: Coordinate | LocationFailure) -> None:
        if isinstance(result, Coordinate):
            self.state = NegotiationState.GRANTED
            self.show_instructions = False
            self.last_failure = None
            logger.info("Location permission granted")
            if self._on_granted is not None:
                self._on_granted(result)
            return

        self.last_failure = result
        if result.reason is FailureReason.PERMISSION_DENIED:
            self.state = NegotiationState.DENIED
            self.show_instructions = True
            logger.info("Location permission denied; waiting for user retry")
        else:
            self.state = NegotiationState.UNAVAILABLE
            logger.info(f"Location unavailable ({result.reason.value}); continuing without it")
