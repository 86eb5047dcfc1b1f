"""Admin-facing registration schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from ..models.domain import Registration


class VehicleModel(BaseModel):
    vehicle_type: str
    plate_number: str


class RegistrationModel(BaseModel):
    id: Optional[str]
    full_name: str
    whatsapp: str
    vehicles: List[VehicleModel]
    category: str
    package_type: str
    proof_url: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    status: str
    created_at: datetime

    @classmethod
    def from_domain(cls, registration: Registration) -> "RegistrationModel":
        coordinate = registration.coordinate
        return cls(
            id=registration.id,
            full_name=registration.full_name,
            whatsapp=registration.whatsapp_number,
            vehicles=[
                VehicleModel(vehicle_type=vehicle.vehicle_type, plate_number=vehicle.plate_number)
                for vehicle in registration.vehicles
            ],
            category=registration.category,
            package_type=registration.package_type,
            proof_url=registration.proof_url,
            latitude=coordinate.latitude if coordinate else None,
            longitude=coordinate.longitude if coordinate else None,
            accuracy=coordinate.accuracy_m if coordinate else None,
            status=registration.status.value,
            created_at=registration.created_at,
        )


class RegistrationListResponse(BaseModel):
    items: List[RegistrationModel]
    total: int
