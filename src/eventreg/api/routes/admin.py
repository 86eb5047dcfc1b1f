"""Admin endpoints for reviewing and verifying registrations."""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from ...models.domain import RegistrationStatus
from ...persistence.store import RegistrationStore, StoreError
from ...schemas.registrations import RegistrationListResponse, RegistrationModel

logger = logging.getLogger(__name__)


def require_admin(request: Request, x_admin_token: str | None = Header(default=None)) -> None:
    expected = request.app.state.settings.admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin access is not configured. Set EVREG_ADMIN_TOKEN.",
        )
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token.")


def get_store(request: Request) -> RegistrationStore:
    return request.app.state.sessions.store


router = APIRouter(prefix="/admin/registrations", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("", response_model=RegistrationListResponse)
async def list_registrations(
    status_filter: RegistrationStatus | None = Query(default=None, alias="status"),
    store: RegistrationStore = Depends(get_store),
) -> RegistrationListResponse:
    try:
        registrations = await store.list_all(status_filter)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return RegistrationListResponse(
        items=[RegistrationModel.from_domain(registration) for registration in registrations],
        total=len(registrations),
    )


@router.post("/{registration_id}/verify", response_model=RegistrationModel)
async def verify_registration(
    registration_id: str,
    store: RegistrationStore = Depends(get_store),
) -> RegistrationModel:
    try:
        registration = await store.set_status(registration_id, RegistrationStatus.VERIFIED)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if registration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Registration '{registration_id}' not found.")
    logger.info(f"Registration {registration_id} verified")
    return RegistrationModel.from_domain(registration)


@router.delete("/{registration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_registration(
    registration_id: str,
    store: RegistrationStore = Depends(get_store),
) -> None:
    try:
        registration = await store.delete(registration_id)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    if registration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Registration '{registration_id}' not found.")

    if registration.proof_url:
        try:
            await store.remove_artifact(registration.proof_url)
        except StoreError as exc:
            logger.warning(f"Could not delete proof image for {registration_id}: {exc}")
    logger.info(f"Registration {registration_id} deleted")
