"""Location permission negotiation."""

from .negotiator import NegotiationState, PermissionNegotiator

__all__ = ["NegotiationState", "PermissionNegotiator"]
