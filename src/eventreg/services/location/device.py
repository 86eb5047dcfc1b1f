"""Device geolocation interface and the push-fed device used by form sessions.

The attendee's browser owns the real geolocation hardware. It reports fixes and
errors to the server, which replays them through the callback-style interface
below so the rest of the core reads like a client of the platform API.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

PERMISSION_DENIED = 1
POSITION_UNAVAILABLE = 2
TIMEOUT = 3


@dataclass(frozen=True, slots=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout_ms: int = 15_000
    max_cache_age_ms: int = 30_000


@dataclass(frozen=True, slots=True)
class PositionError:
    code: int
    message: str = ""


SuccessCallback = Callable[[Any], None]
ErrorCallback = Callable[[PositionError], None]


class GeolocationDevice(Protocol):
    supported: bool

    def get_current_position(
        self, on_success: SuccessCallback, on_error: ErrorCallback, options: PositionOptions
    ) -> None: ...

    def watch_position(
        self, on_success: SuccessCallback, on_error: ErrorCallback, options: PositionOptions
    ) -> int: ...

    def clear_watch(self, handle: int) -> None: ...

    def cancel_request(self, on_success: SuccessCallback) -> None: ...


class PushGeolocationDevice:
    """Geolocation device whose events are pushed in by the transport layer.

    Single-shot requests wait for the next pushed event unless a cached fix is
    young enough for the request's ``max_cache_age_ms``. An error pushed while
    no request is waiting is kept and answers the next request, until a fresh
    fix replaces it. Watchers receive every pushed event until cleared.
    Payloads are forwarded untouched; validating them is the consumer's job.
    """

    def __init__(self, *, supported: bool = True, clock: Callable[[], float] = time.monotonic) -> None:
        self.supported = supported
        self._clock = clock
        self._pending: list[tuple[SuccessCallback, ErrorCallback]] = []
        self._watchers: dict[int, tuple[SuccessCallback, ErrorCallback]] = {}
        self._next_handle = 1
        self._last_fix: tuple[Any, float] | None = None
        self._last_error: PositionError | None = None

    @property
    def pending_requests(self) -> int:
        return len(self._pending)

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    def get_current_position(
        self, on_success: SuccessCallback, on_error: ErrorCallback, options: PositionOptions
    ) -> None:
        if not self.supported:
            on_error(PositionError(POSITION_UNAVAILABLE, "Geolocation is not supported"))
            return
        if self._last_error is not None:
            error, self._last_error = self._last_error, None
            on_error(error)
            return
        if self._last_fix is not None and options.max_cache_age_ms > 0:
            payload, received_at = self._last_fix
            if (self._clock() - received_at) * 1000 <= options.max_cache_age_ms:
                on_success(payload)
                return
        self._pending.append((on_success, on_error))

    def cancel_request(self, on_success: SuccessCallback) -> None:
        """Forget a single-shot request nobody is waiting for any more."""
        self._pending = [entry for entry in self._pending if entry[0] is not on_success]

    def watch_position(
        self, on_success: SuccessCallback, on_error: ErrorCallback, options: PositionOptions
    ) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._watchers[handle] = (on_success, on_error)
        return handle

    def clear_watch(self, handle: int) -> None:
        self._watchers.pop(handle, None)

    def push_fix(self, payload: Any) -> None:
        """Deliver a position report from the browser to pending requests and watchers."""
        self._last_fix = (payload, self._clock())
        self._last_error = None
        pending, self._pending = self._pending, []
        for on_success, _ in pending:
            on_success(payload)
        for on_success, _ in list(self._watchers.values()):
            on_success(payload)

    def push_error(self, code: int, message: str = "") -> None:
        error = PositionError(code=code, message=message)
        logger.debug(f"Device reported geolocation error {code}: {message}")
        pending, self._pending = self._pending, []
        if not pending:
            self._last_error = error
        for _, on_error in pending:
            on_error(error)
        for _, on_error in list(self._watchers.values()):
            on_error(error)
