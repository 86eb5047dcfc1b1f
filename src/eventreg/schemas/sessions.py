"""Form session request/response schemas."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CoordinateModel(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float = Field(..., ge=0)


class AdvisoryModel(BaseModel):
    matched_name: Optional[str] = None
    distance_m: Optional[float] = None
    message: str


class SessionCreateRequest(BaseModel):
    geolocation_supported: bool = Field(
        default=True,
        description="False when the browser exposes no geolocation API at all.",
    )


class SessionStatusResponse(BaseModel):
    session_id: str
    permission: str
    negotiation: str
    capability: str
    show_instructions: bool
    instructions: Dict[str, List[str]] = Field(default_factory=dict)
    location: Optional[CoordinateModel] = None
    advisory: Optional[AdvisoryModel] = None
    completed_registration_id: Optional[str] = None


class PositionErrorRequest(BaseModel):
    code: int = Field(..., ge=1, le=3, description="1 permission denied, 2 position unavailable, 3 timeout.")
    message: str = ""


class SubmissionResponse(BaseModel):
    status: str
    message: str
    registration_id: Optional[str] = None
    matched_name: Optional[str] = None
    distance_m: Optional[float] = None
    contact_support: bool = False
    errors: Dict[str, str] = Field(default_factory=dict)
