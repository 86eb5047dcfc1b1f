"""Domain models for registrations, device locations and duplicate verdicts."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class PermissionState(str, Enum):
    UNKNOWN = "unknown"
    PROMPT = "prompt"
    GRANTED = "granted"
    DENIED = "denied"


class LocationCapability(str, Enum):
    """Whether the device behind a form session can report its position at all."""

    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A device-reported position with its accuracy radius in meters."""

    latitude: float
    longitude: float
    accuracy_m: float = 0.0

    def is_valid(self) -> bool:
        values = (self.latitude, self.longitude, self.accuracy_m)
        if not all(math.isfinite(value) for value in values):
            return False
        return -90.0 <= self.latitude <= 90.0 and -180.0 <= self.longitude <= 180.0 and self.accuracy_m >= 0.0


@dataclass(frozen=True, slots=True)
class LocationSample:
    coordinate: Coordinate
    captured_at: float


@dataclass(slots=True)
class Vehicle:
    vehicle_type: str
    plate_number: str


@dataclass(slots=True)
class RegistrationDraft:
    """Identity and form fields submitted by an attendee, before persistence."""

    full_name: str
    whatsapp_number: str
    vehicles: list[Vehicle]
    category: str
    package_type: str


@dataclass(slots=True)
class ProofArtifact:
    content: bytes
    content_type: str
    filename: str = "proof"


@dataclass(slots=True)
class Registration:
    """A stored registration row."""

    id: Optional[str]
    full_name: str
    whatsapp_number: str
    vehicles: list[Vehicle]
    category: str
    package_type: str
    proof_url: Optional[str]
    coordinate: Optional[Coordinate] = None
    status: RegistrationStatus = RegistrationStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_record(self) -> dict[str, Any]:
        """Flatten into the column layout of the registrations table."""
        record: dict[str, Any] = {
            "full_name": self.full_name,
            "whatsapp": self.whatsapp_number,
            "vehicle_type": ", ".join(vehicle.vehicle_type for vehicle in self.vehicles),
            "plate_number": ", ".join(vehicle.plate_number for vehicle in self.vehicles),
            "vehicle_count": len(self.vehicles),
            "category": self.category,
            "package_type": self.package_type,
            "proof_url": self.proof_url,
            "latitude": self.coordinate.latitude if self.coordinate else None,
            "longitude": self.coordinate.longitude if self.coordinate else None,
            "accuracy": self.coordinate.accuracy_m if self.coordinate else None,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }
        if self.id is not None:
            record["id"] = self.id
        return record

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> "Registration":
        types = _split_joined(row.get("vehicle_type"))
        plates = _split_joined(row.get("plate_number"))
        count = max(len(types), len(plates))
        vehicles = [
            Vehicle(
                vehicle_type=types[index] if index < len(types) else "",
                plate_number=plates[index] if index < len(plates) else "",
            )
            for index in range(count)
        ]

        coordinate = None
        if row.get("latitude") is not None and row.get("longitude") is not None:
            coordinate = Coordinate(
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
                accuracy_m=float(row.get("accuracy") or 0.0),
            )

        created_at = row.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        elif not isinstance(created_at, datetime):
            created_at = datetime.now(timezone.utc)

        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            full_name=str(row.get("full_name") or ""),
            whatsapp_number=str(row.get("whatsapp") or ""),
            vehicles=vehicles,
            category=str(row.get("category") or ""),
            package_type=str(row.get("package_type") or ""),
            proof_url=row.get("proof_url"),
            coordinate=coordinate,
            status=RegistrationStatus(row.get("status") or RegistrationStatus.PENDING.value),
            created_at=created_at,
        )


@dataclass(frozen=True, slots=True)
class DuplicateVerdict:
    is_duplicate_location: bool = False
    matched_registrant_name: Optional[str] = None
    distance_meters: Optional[float] = None
    is_duplicate_identity: bool = False

    @property
    def is_duplicate(self) -> bool:
        return self.is_duplicate_location or self.is_duplicate_identity


def _split_joined(value: Any) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",")]
