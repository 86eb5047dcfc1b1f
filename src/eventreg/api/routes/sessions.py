"""Registration form session endpoints."""

from __future__ import annotations

from itertools import zip_longest
from typing import Any, List

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse

from ...models.domain import ProofArtifact, RegistrationDraft, Vehicle
from ...schemas.sessions import (
    AdvisoryModel,
    CoordinateModel,
    PositionErrorRequest,
    SessionCreateRequest,
    SessionStatusResponse,
    SubmissionResponse,
)
from ...services.sessions import FormSession, SessionRegistry
from ...services.submission import SubmissionOutcome, SubmissionStatus

router = APIRouter(prefix="/sessions", tags=["sessions"])

_HTTP_STATUS = {
    SubmissionStatus.SUCCESS: status.HTTP_201_CREATED,
    SubmissionStatus.ALREADY_REGISTERED: status.HTTP_409_CONFLICT,
    SubmissionStatus.LOCATION_ALREADY_USED: status.HTTP_409_CONFLICT,
    SubmissionStatus.VALIDATION_ERROR: 422,
    SubmissionStatus.INFRA_FAILURE: status.HTTP_502_BAD_GATEWAY,
    SubmissionStatus.IN_PROGRESS: status.HTTP_429_TOO_MANY_REQUESTS,
}


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> FormSession:
    session = registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.")
    return session


def _status(session: FormSession) -> SessionStatusResponse:
    sample = session.current_sample
    location = None
    if sample is not None:
        location = CoordinateModel(
            latitude=sample.coordinate.latitude,
            longitude=sample.coordinate.longitude,
            accuracy=sample.coordinate.accuracy_m,
        )

    advisory = None
    verdict = session.advisory
    if verdict is not None:
        advisory = AdvisoryModel(
            matched_name=verdict.matched_registrant_name,
            distance_m=round(verdict.distance_meters or 0.0, 1),
            message=(
                f"Location is close to another registrant ({verdict.matched_registrant_name}). "
                f"Distance: {round(verdict.distance_meters or 0.0)} m"
            ),
        )

    negotiator = session.negotiator
    return SessionStatusResponse(
        session_id=session.id,
        permission=negotiator.permission.value,
        negotiation=negotiator.state.value,
        capability=session.location.capability.value,
        show_instructions=negotiator.show_instructions,
        instructions={browser: list(steps) for browser, steps in negotiator.instructions().items()},
        location=location,
        advisory=advisory,
        completed_registration_id=session.completed_registration_id,
    )


def _outcome_response(outcome: SubmissionOutcome) -> JSONResponse:
    body = SubmissionResponse(
        status=outcome.status.value,
        message=outcome.message,
        registration_id=outcome.registration.id if outcome.registration else None,
        matched_name=outcome.matched_name,
        distance_m=round(outcome.distance_m, 1) if outcome.distance_m is not None else None,
        contact_support=outcome.contact_support,
        errors=outcome.errors,
    )
    return JSONResponse(status_code=_HTTP_STATUS[outcome.status], content=body.model_dump())


@router.post("", response_model=SessionStatusResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreateRequest | None = None,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionStatusResponse:
    supported = payload.geolocation_supported if payload is not None else True
    session = await registry.create(device_supported=supported)
    return _status(session)


@router.get("/{session_id}", response_model=SessionStatusResponse)
async def get_session(session: FormSession = Depends(_get_session)) -> SessionStatusResponse:
    return _status(session)


@router.post("/{session_id}/position", response_model=SessionStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def push_position(
    payload: Any = Body(...),
    session: FormSession = Depends(_get_session),
) -> SessionStatusResponse:
    """Accept a raw browser fix; malformed payloads are dropped by the location service."""
    session.device.push_fix(payload)
    await session.settle()
    return _status(session)


@router.post("/{session_id}/position-error", response_model=SessionStatusResponse, status_code=status.HTTP_202_ACCEPTED)
async def push_position_error(
    payload: PositionErrorRequest,
    session: FormSession = Depends(_get_session),
) -> SessionStatusResponse:
    session.device.push_error(payload.code, payload.message)
    await session.settle()
    return _status(session)


@router.post("/{session_id}/permission/retry", response_model=SessionStatusResponse)
async def retry_permission(session: FormSession = Depends(_get_session)) -> SessionStatusResponse:
    if not session.negotiator.retry():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot retry while permission is '{session.negotiator.state.value}'.",
        )
    return _status(session)


@router.post("/{session_id}/submit", response_model=SubmissionResponse)
async def submit_registration(
    session: FormSession = Depends(_get_session),
    package_type: str = Form(default=""),
    full_name: str = Form(default=""),
    whatsapp: str = Form(default=""),
    category: str = Form(default=""),
    vehicle_type: List[str] = Form(default=[]),
    plate_number: List[str] = Form(default=[]),
    proof: UploadFile | None = File(default=None),
) -> JSONResponse:
    draft = RegistrationDraft(
        full_name=full_name,
        whatsapp_number=whatsapp,
        vehicles=[
            Vehicle(vehicle_type=kind, plate_number=plate)
            for kind, plate in zip_longest(vehicle_type, plate_number, fillvalue="")
        ],
        category=category,
        package_type=package_type,
    )

    artifact = None
    if proof is not None and proof.filename:
        artifact = ProofArtifact(
            content=await proof.read(),
            content_type=proof.content_type or "application/octet-stream",
            filename=proof.filename,
        )

    outcome = await session.submit(draft, artifact)
    return _outcome_response(outcome)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> None:
    if not await registry.close(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session '{session_id}' not found.")
