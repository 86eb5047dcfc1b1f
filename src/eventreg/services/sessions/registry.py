"""Per-form sessions tying location, permission, duplicate checks and submission together."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Callable, Optional

from ...config import Settings
from ...models.domain import Coordinate, DuplicateVerdict, LocationSample, ProofArtifact, RegistrationDraft
from ...persistence.store import RegistrationStore
from ..duplicates.engine import DuplicateDetectionEngine, ThrottlePolicy
from ..geospatial import distance_meters
from ..location.device import PositionOptions, PushGeolocationDevice
from ..location.service import LocationService, WatchSubscription
from ..permission.negotiator import PermissionNegotiator
from ..submission.gate import SubmissionGate, SubmissionOutcome

logger = logging.getLogger(__name__)


class FormSession:
    """State held for one open registration form.

    The background engine uses the advisory radius and only warns; the submit
    engine uses the strict radius and blocks. They are independent consumers.
    """

    def __init__(
        self,
        session_id: str,
        store: RegistrationStore,
        settings: Settings,
        *,
        device: PushGeolocationDevice | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.id = session_id
        self._settings = settings
        self._clock = clock
        self.device = device or PushGeolocationDevice()
        self.location = LocationService(self.device)
        self.monitor = DuplicateDetectionEngine(
            store,
            radius_m=settings.advisory_duplicate_radius_m,
            throttle=ThrottlePolicy(settings.check_interval_seconds, settings.monitor_min_move_m),
            clock=clock,
            label=f"monitor:{session_id[:8]}",
        )
        self.submit_engine = DuplicateDetectionEngine(
            store,
            radius_m=settings.strict_duplicate_radius_m,
            clock=clock,
            label=f"submit:{session_id[:8]}",
        )
        self.negotiator = PermissionNegotiator(
            self.location,
            on_granted=self._on_granted,
            settle_delay_ms=settings.permission_settle_delay_ms,
            options=PositionOptions(
                enable_high_accuracy=True,
                timeout_ms=settings.permission_timeout_ms,
                max_cache_age_ms=0,
            ),
        )
        self.gate = SubmissionGate(
            store,
            self.location,
            self.submit_engine,
            current_sample=lambda: self.current_sample,
            permission=lambda: self.negotiator.permission,
            fallback_options=PositionOptions(
                enable_high_accuracy=False,
                timeout_ms=settings.fallback_timeout_ms,
                max_cache_age_ms=settings.fallback_max_age_ms,
            ),
            max_proof_bytes=settings.max_proof_bytes,
        )
        self.current_sample: Optional[LocationSample] = None
        self.completed_registration_id: Optional[str] = None
        self._subscription: Optional[WatchSubscription] = None
        self._checks: set[asyncio.Task] = set()
        self.last_seen = clock()

    @property
    def advisory(self) -> Optional[DuplicateVerdict]:
        verdict = self.monitor.verdict
        return verdict if verdict is not None and verdict.is_duplicate_location else None

    def touch(self) -> None:
        self.last_seen = self._clock()

    def open(self) -> None:
        self.negotiator.open()
        self._subscription = self.location.watch(
            self._on_sample,
            PositionOptions(
                enable_high_accuracy=True,
                timeout_ms=self._settings.location_timeout_ms,
                max_cache_age_ms=self._settings.location_max_age_ms,
            ),
        )

    def _on_granted(self, coordinate: Coordinate) -> None:
        if self.current_sample is None:
            self._on_sample(LocationSample(coordinate=coordinate, captured_at=time.time()))

    def _on_sample(self, sample: LocationSample) -> None:
        if self.current_sample is not None:
            moved = distance_meters(self.current_sample.coordinate, sample.coordinate)
            if moved <= self._settings.watch_min_move_m:
                return
        self.current_sample = sample
        task = asyncio.get_running_loop().create_task(self.monitor.observe(sample))
        self._checks.add(task)
        task.add_done_callback(self._checks.discard)

    async def settle(self) -> None:
        """Let work triggered by a just-pushed device event finish."""
        await asyncio.sleep(0)
        if self.negotiator.requesting or self.negotiator.answered:
            await self.negotiator.wait()
        if self._checks:
            await asyncio.gather(*list(self._checks))

    async def submit(self, draft: RegistrationDraft, proof: ProofArtifact | None) -> SubmissionOutcome:
        self.touch()
        outcome = await self.gate.submit(draft, proof)
        if outcome.accepted and outcome.registration is not None:
            self.completed_registration_id = outcome.registration.id
            self.monitor.reset()
        return outcome

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self.negotiator.close()
        for task in list(self._checks):
            task.cancel()
        if self._checks:
            await asyncio.gather(*list(self._checks), return_exceptions=True)
        self._checks.clear()


class SessionRegistry:
    """Owns the open form sessions of this process."""

    def __init__(
        self,
        store: RegistrationStore,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self._settings = settings
        self._clock = clock
        self._sessions: dict[str, FormSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self, *, device_supported: bool = True) -> FormSession:
        await self.expire_idle()
        session_id = uuid.uuid4().hex
        session = FormSession(
            session_id,
            self.store,
            self._settings,
            device=PushGeolocationDevice(supported=device_supported),
            clock=self._clock,
        )
        session.open()
        self._sessions[session_id] = session
        logger.info(f"Opened form session {session_id}")
        return session

    def get(self, session_id: str) -> Optional[FormSession]:
        session = self._sessions.get(session_id)
        if session is not None:
            session.touch()
        return session

    async def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        logger.info(f"Closed form session {session_id}")
        return True

    async def expire_idle(self) -> int:
        cutoff = self._clock() - self._settings.session_ttl_seconds
        expired = [sid for sid, session in self._sessions.items() if session.last_seen < cutoff]
        for session_id in expired:
            await self.close(session_id)
        if expired:
            logger.info(f"Expired {len(expired)} idle form session(s)")
        return len(expired)

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)
