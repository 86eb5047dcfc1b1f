"""Device location acquisition."""

from .device import GeolocationDevice, PositionError, PositionOptions, PushGeolocationDevice
from .service import (
    HIGH_ACCURACY,
    RELAXED,
    FailureReason,
    LocationFailure,
    LocationService,
    PendingFix,
    WatchSubscription,
    parse_fix,
)

__all__ = [
    "GeolocationDevice",
    "PositionError",
    "PositionOptions",
    "PushGeolocationDevice",
    "HIGH_ACCURACY",
    "RELAXED",
    "FailureReason",
    "LocationFailure",
    "LocationService",
    "PendingFix",
    "WatchSubscription",
    "parse_fix",
]
