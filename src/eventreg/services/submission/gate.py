"""Submission gate: the single decision point at form-submit time."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from ...models.domain import (
    Coordinate,
    LocationCapability,
    LocationSample,
    PermissionState,
    ProofArtifact,
    Registration,
    RegistrationDraft,
    RegistrationStatus,
    Vehicle,
)
from ...persistence.store import DuplicateRegistrationError, RegistrationStore, StoreError
from ..duplicates.engine import DuplicateDetectionEngine
from ..location.device import PositionOptions
from ..location.service import RELAXED, LocationService
from .validation import validate_draft

logger = logging.getLogger(__name__)

ALREADY_REGISTERED_MESSAGE = (
    "This name and WhatsApp number are already registered. Use a different name or number."
)


class SubmissionStatus(str, Enum):
    SUCCESS = "success"
    ALREADY_REGISTERED = "already_registered"
    LOCATION_ALREADY_USED = "location_already_used"
    INFRA_FAILURE = "infra_failure"
    VALIDATION_ERROR = "validation_error"
    IN_PROGRESS = "in_progress"


@dataclass(slots=True)
class SubmissionOutcome:
    status: SubmissionStatus
    message: str
    registration: Optional[Registration] = None
    matched_name: Optional[str] = None
    distance_m: Optional[float] = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.status is SubmissionStatus.SUCCESS

    @property
    def contact_support(self) -> bool:
        return self.status is SubmissionStatus.LOCATION_ALREADY_USED


class SubmissionGate:
    """Validates, resolves a coordinate, checks duplicates, then uploads and inserts.

    Location never blocks on its own: when no coordinate can be resolved the
    submission proceeds without one, but the identity check always runs.
    """

    def __init__(
        self,
        store: RegistrationStore,
        location: LocationService,
        engine: DuplicateDetectionEngine,
        *,
        current_sample: Callable[[], LocationSample | None],
        permission: Callable[[], PermissionState] = lambda: PermissionState.UNKNOWN,
        fallback_options: PositionOptions = RELAXED,
        max_proof_bytes: int = 5 * 1024 * 1024,
    ) -> None:
        self._store = store
        self._location = location
        self._engine = engine
        self._current_sample = current_sample
        self._permission = permission
        self._fallback_options = fallback_options
        self._max_proof_bytes = max_proof_bytes
        self._busy = False
        self._known_duplicates: set[tuple[str, str]] = set()

    @property
    def busy(self) -> bool:
        return self._busy

    async def resolve_coordinate(self) -> Coordinate | None:
        sample = self._current_sample()
        if sample is not None:
            return sample.coordinate

        if self._location.capability is LocationCapability.UNAVAILABLE:
            logger.info("Device cannot report location; submitting without coordinate")
            return None
        if self._permission() is PermissionState.DENIED:
            logger.info("Location permission denied; submitting without coordinate")
            return None

        result = await self._location.get_once(self._fallback_options)
        if isinstance(result, Coordinate):
            logger.info("Fallback location obtained at submit time")
            return result
        logger.warning(f"No location available for duplicate check ({result.reason.value})")
        return None

    async def submit(self, draft: RegistrationDraft, proof: ProofArtifact | None) -> SubmissionOutcome:
        if self._busy:
            return SubmissionOutcome(SubmissionStatus.IN_PROGRESS, "A submission is already being processed")
        self._busy = True
        try:
            return await self._submit(draft, proof)
        finally:
            self._busy = False

    async def _submit(self, draft: RegistrationDraft, proof: ProofArtifact | None) -> SubmissionOutcome:
        errors = validate_draft(draft, proof, max_proof_bytes=self._max_proof_bytes)
        if errors or proof is None:
            return SubmissionOutcome(
                SubmissionStatus.VALIDATION_ERROR,
                ". ".join(errors.values()),
                errors=errors,
            )

        full_name = draft.full_name.strip()
        whatsapp = draft.whatsapp_number.strip()
        if (full_name, whatsapp) in self._known_duplicates:
            return SubmissionOutcome(SubmissionStatus.ALREADY_REGISTERED, ALREADY_REGISTERED_MESSAGE)

        coordinate = await self.resolve_coordinate()

        verdict = await self._engine.check(coordinate, full_name, whatsapp)
        if verdict is None:
            return SubmissionOutcome(SubmissionStatus.IN_PROGRESS, "A duplicate check is already running")
        if verdict.is_duplicate_identity:
            self._known_duplicates.add((full_name, whatsapp))
            return SubmissionOutcome(SubmissionStatus.ALREADY_REGISTERED, ALREADY_REGISTERED_MESSAGE)
        if verdict.is_duplicate_location:
            return SubmissionOutcome(
                SubmissionStatus.LOCATION_ALREADY_USED,
                f"This location is already used by {verdict.matched_registrant_name}. "
                "Please contact the admin if you believe this is a mistake.",
                matched_name=verdict.matched_registrant_name,
                distance_m=verdict.distance_meters,
            )

        try:
            proof_url = await self._store.upload_artifact(proof.content, proof.content_type, proof.filename)
        except StoreError as exc:
            logger.error(f"Proof upload failed: {exc}")
            return SubmissionOutcome(SubmissionStatus.INFRA_FAILURE, f"Failed to upload payment proof: {exc}")

        registration = Registration(
            id=None,
            full_name=full_name,
            whatsapp_number=whatsapp,
            vehicles=[
                Vehicle(vehicle_type=vehicle.vehicle_type.strip(), plate_number=vehicle.plate_number.strip())
                for vehicle in draft.vehicles
            ],
            category=draft.category.strip(),
            package_type=draft.package_type,
            proof_url=proof_url,
            coordinate=coordinate,
            status=RegistrationStatus.PENDING,
        )
        try:
            saved = await self._store.insert(registration)
        except DuplicateRegistrationError as exc:
            logger.info(f"Insert rejected by uniqueness constraint: {exc}")
            await self._discard_artifact(proof_url)
            self._known_duplicates.add((full_name, whatsapp))
            return SubmissionOutcome(SubmissionStatus.ALREADY_REGISTERED, ALREADY_REGISTERED_MESSAGE)
        except StoreError as exc:
            logger.error(f"Registration insert failed: {exc}")
            await self._discard_artifact(proof_url)
            return SubmissionOutcome(SubmissionStatus.INFRA_FAILURE, f"Failed to save registration: {exc}")

        logger.info(
            f"Registration {saved.id} stored "
            f"({'with' if saved.coordinate else 'without'} location)"
        )
        return SubmissionOutcome(SubmissionStatus.SUCCESS, "Registration received", registration=saved)

    async def _discard_artifact(self, url: str) -> None:
        try:
            await self._store.remove_artifact(url)
        except StoreError as exc:
            logger.warning(f"Could not remove orphaned proof {url}: {exc}")
