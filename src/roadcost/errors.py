"""Typed failure conditions raised and recorded by the estimation pipeline."""
from __future__ import annotations

from typing import Optional, Sequence


class EstimationError(Exception):
    """Base class for pipeline failures."""


class ConfigError(EstimationError):
    """Raised when a settings file cannot be read or is malformed."""


class ExtractionEmpty(EstimationError):
    """Upstream interpretation produced no usable materials for an intervention."""

    def __init__(self, section_id: str, serial_no: int, reason: str = "no usable materials") -> None:
        super().__init__(f"{section_id}-{serial_no}: {reason}")
        self.section_id = section_id
        self.serial_no = serial_no
        self.reason = reason


class InvalidQuantity(EstimationError):
    """A material quantity is missing, non-numeric, or not strictly positive."""

    def __init__(self, item_name: str, quantity: object, cause: str) -> None:
        super().__init__(f"{item_name}: invalid quantity {quantity!r} ({cause})")
        self.item_name = item_name
        self.quantity = quantity
        self.cause = cause


class NoOfficialRate(EstimationError):
    """No cache, store, reference, or live source produced a price."""

    def __init__(self, item_name: str, unit: str, tiers_attempted: Sequence[str]) -> None:
        tiers = ", ".join(tiers_attempted) or "none"
        super().__init__(f"No official rate for {item_name!r} per {unit or '?'} (tried: {tiers})")
        self.item_name = item_name
        self.unit = unit
        self.tiers_attempted = list(tiers_attempted)


class PriceEstimationError(EstimationError):
    """The estimation fallback could not produce a price."""


class TransientSourceError(EstimationError):
    """Network or timeout failure from an external source; eligible for retry."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InterventionEscalation(EstimationError):
    """Strict mode left an intervention without any priced material."""

    def __init__(self, section_id: str, serial_no: int, reason: str) -> None:
        super().__init__(f"{section_id}-{serial_no}: {reason}")
        self.section_id = section_id
        self.serial_no = serial_no
        self.reason = reason


__all__ = [
    "EstimationError",
    "ConfigError",
    "ExtractionEmpty",
    "InvalidQuantity",
    "NoOfficialRate",
    "PriceEstimationError",
    "TransientSourceError",
    "InterventionEscalation",
]
