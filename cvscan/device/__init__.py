"""Host capability probing for the CV scanner."""

from .probe import CapabilityProber, classify_effective_type, classify_round_trip


__all__ = [
    "CapabilityProber",
    "classify_effective_type",
    "classify_round_trip",
]
