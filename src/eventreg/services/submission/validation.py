"""Registration form validation."""

from __future__ import annotations

import re

from ...models.domain import ProofArtifact, RegistrationDraft

WHATSAPP_PATTERN = re.compile(r"^(\+62|62|08)[0-9]{8,12}$")
PACKAGE_TYPES = ("contest", "meetup")
PROOF_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp")
MIN_NAME_LENGTH = 3


def normalize_whatsapp(value: str) -> str:
    return re.sub(r"[\s-]", "", value)


def validate_draft(
    draft: RegistrationDraft,
    proof: ProofArtifact | None,
    *,
    max_proof_bytes: int,
) -> dict[str, str]:
    """Return a field -> message map; empty when the submission is complete."""
    errors: dict[str, str] = {}

    if draft.package_type not in PACKAGE_TYPES:
        errors["package_type"] = f"Choose a registration package ({', '.join(PACKAGE_TYPES)})"

    if not draft.full_name.strip():
        errors["full_name"] = "Full name is required"
    elif len(draft.full_name.strip()) < MIN_NAME_LENGTH:
        errors["full_name"] = f"Full name must be at least {MIN_NAME_LENGTH} characters"

    if not draft.whatsapp_number.strip():
        errors["whatsapp"] = "WhatsApp number is required"
    elif not WHATSAPP_PATTERN.match(normalize_whatsapp(draft.whatsapp_number.strip())):
        errors["whatsapp"] = "WhatsApp number format is invalid"

    if not draft.vehicles:
        errors["vehicles"] = "At least one vehicle is required"
    for index, vehicle in enumerate(draft.vehicles):
        if not vehicle.vehicle_type.strip():
            errors[f"vehicle_type_{index}"] = "Vehicle type is required"
        if not vehicle.plate_number.strip():
            errors[f"plate_number_{index}"] = "Plate number is required"

    if not draft.category.strip():
        errors["category"] = "Category is required"

    if proof is None or not proof.content:
        errors["proof"] = "Payment proof is required"
    elif proof.content_type not in PROOF_CONTENT_TYPES:
        errors["proof"] = "Payment proof must be a JPEG, PNG or WebP image"
    elif len(proof.content) > max_proof_bytes:
        errors["proof"] = f"Payment proof must be at most {max_proof_bytes // (1024 * 1024)} MB"

    return errors
