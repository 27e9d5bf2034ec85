from __future__ import annotations

import math
import re
from typing import Dict, Optional, Tuple

UNIT_ALIASES: Dict[str, Tuple[str, ...]] = {
    "nos": ("nos", "no", "number", "numbers", "each", "ea", "pcs", "pc"),
    "sqm": (
        "sqm",
        "sq m",
        "sqmt",
        "sq mt",
        "m2",
        "m²",
        "sq metre",
        "sq meter",
        "square metre",
        "square meter",
        "square metres",
        "square meters",
    ),
    "m": ("m", "meter", "metre", "meters", "metres", "mt", "rm", "rmt", "running metre"),
    "km": ("km", "kilometer", "kilometre", "kilometers", "kilometres"),
    "kg": ("kg", "kgs", "kilogram", "kilograms"),
    "litre": ("litre", "liter", "litres", "liters", "ltr", "lt", "l"),
    "cum": ("cum", "cu m", "cumt", "m3", "m³", "cubic metre", "cubic meter", "cubic metres", "cubic meters"),
    "set": ("set", "sets"),
    "job": ("job", "ls", "lump sum", "lumpsum"),
    "unit": ("unit", "units"),
    "pair": ("pair", "pairs"),
    "bundle": ("bundle", "bundles"),
}

COUNTABLE_UNITS = frozenset({"nos", "set", "pair", "bundle", "unit"})

# Decimal places kept for continuous quantities, by canonical unit.
QUANTITY_PRECISION: Dict[str, int] = {
    "cum": 3,
    "kg": 2,
    "litre": 2,
    "sqm": 2,
    "m": 2,
    "km": 3,
}
DEFAULT_PRECISION = 3

_ALIAS_LOOKUP: Dict[str, str] = {
    alias: canonical for canonical, aliases in UNIT_ALIASES.items() for alias in aliases
}


def _clean(raw: object) -> str:
    text = str(raw).strip().lower().replace(".", "")
    return re.sub(r"\s+", " ", text)


def normalize_unit(raw: Optional[object]) -> str:
    """Map a free-form unit string onto the canonical vocabulary.

    Unknown units pass through as their first whitespace-delimited token.
    """
    if raw is None:
        return ""
    cleaned = _clean(raw)
    if not cleaned:
        return ""
    canonical = _ALIAS_LOOKUP.get(cleaned)
    if canonical:
        return canonical
    return cleaned.split(" ")[0]


def is_countable(unit: Optional[object]) -> bool:
    return normalize_unit(unit) in COUNTABLE_UNITS


def quantity_precision(unit: Optional[object]) -> int:
    return QUANTITY_PRECISION.get(normalize_unit(unit), DEFAULT_PRECISION)


def normalize_quantity(quantity: float, unit: Optional[object]) -> float | int:
    """Round ``quantity`` for its unit: integral when countable, fixed precision otherwise."""
    if not math.isfinite(quantity):
        raise ValueError(f"quantity must be finite, got {quantity!r}")
    if is_countable(unit):
        return int(math.floor(quantity + 0.5))
    return round(float(quantity), quantity_precision(unit))


__all__ = [
    "UNIT_ALIASES",
    "COUNTABLE_UNITS",
    "normalize_unit",
    "is_countable",
    "quantity_precision",
    "normalize_quantity",
]
