"""
Side-effect-free checks over priced interventions.

Each pass returns a list of :class:`~roadcost.models.Finding`; nothing here
mutates the cost tree.  Severities: ``critical`` blocks approval, ``high``
needs replacement or correction before approval, ``medium`` needs a reviewer
to look, ``low`` is informational.
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence, Tuple

from .models import EstimateTotal, Finding, InterventionCost, PricedMaterial
from .units import is_countable

MAX_PLAUSIBLE_QUANTITY = 100_000
MAX_PLAUSIBLE_TOTAL = 50_000_000
HIGH_SHARE_PCT = 75.0
MEDIUM_SHARE_PCT = 50.0

# canonical unit -> (min, max) plausible unit price in INR
PRICE_RANGES: Dict[str, Tuple[float, float]] = {
    "sqm": (50, 5000),
    "cum": (500, 20000),
    "kg": (10, 2000),
    "litre": (10, 2000),
    "m": (20, 10000),
    "nos": (5, 200000),
    "set": (5, 50000),
}

# keyword -> schedule of rates item code
SCHEDULE_CODES: Tuple[Tuple[str, str], ...] = (
    ("cement", "2.1.1"),
    ("steel", "4.1.1"),
    ("aggregate", "3.1.1"),
    ("sand", "3.2.1"),
    ("bitumen", "5.1.1"),
    ("paint", "8.1.1"),
    ("sign board", "15.1.1"),
    ("retro reflective", "15.2.1"),
    ("solar panel", "16.1.1"),
    ("led light", "16.2.1"),
)


def lookup_schedule_code(item_name: str) -> Optional[str]:
    normalized = " ".join(str(item_name or "").lower().split())
    for keyword, code in SCHEDULE_CODES:
        if keyword in normalized:
            return code
    return None


def check_quantities(materials: Sequence[PricedMaterial]) -> List[Finding]:
    findings: List[Finding] = []
    for item in materials:
        quantity = item.quantity
        try:
            value = float(quantity)
        except (TypeError, ValueError):
            value = math.nan
        if not math.isfinite(value):
            findings.append(Finding("critical", "NON_FINITE_QUANTITY", f"Non-numeric quantity: {quantity!r} {item.unit}", item.item_name))
            continue
        if value <= 0:
            findings.append(Finding("critical", "NON_POSITIVE_QUANTITY", f"Invalid quantity: {quantity} {item.unit}", item.item_name))
        if is_countable(item.unit) and value != math.floor(value):
            findings.append(
                Finding("high", "FRACTIONAL_COUNT", f"Countable unit {item.unit} has fractional quantity {quantity}", item.item_name)
            )
        if value > MAX_PLAUSIBLE_QUANTITY:
            findings.append(Finding("medium", "LARGE_QUANTITY", f"Unusually large quantity: {quantity} {item.unit}", item.item_name))
    return findings


def check_prices(materials: Sequence[PricedMaterial]) -> List[Finding]:
    findings: List[Finding] = []
    for item in materials:
        price = item.unit_price
        if price <= 0:
            findings.append(Finding("high", "NON_POSITIVE_PRICE", f"Invalid unit price: {price} per {item.unit}", item.item_name))
        else:
            bounds = PRICE_RANGES.get(item.unit)
            if bounds and not bounds[0] <= price <= bounds[1]:
                findings.append(
                    Finding(
                        "medium",
                        "PRICE_OUT_OF_RANGE",
                        f"Unit price ₹{price:,.2f} per {item.unit} outside plausible ₹{bounds[0]:g}-{bounds[1]:g}",
                        item.item_name,
                    )
                )
        if not item.official:
            findings.append(
                Finding(
                    "high",
                    "NON_OFFICIAL_PRICE",
                    f"Estimated price ({item.confidence} confidence); replace with an official rate before approval",
                    item.item_name,
                )
            )
        if not item.item_code:
            code = lookup_schedule_code(item.item_name)
            hint = f"; schedule code {code} suggested" if code else ""
            findings.append(Finding("low", "MISSING_ITEM_CODE", f"No source item code for traceability{hint}", item.item_name))
        if item.sanity is not None and not item.sanity.is_valid:
            findings.append(Finding("medium", "SANITY_CAPPED", item.sanity.reason, item.item_name))
    return findings


def check_cost_distribution(materials: Sequence[PricedMaterial]) -> List[Finding]:
    if not materials:
        return []
    total = sum(item.total_price for item in materials)
    if total <= 0:
        return []
    findings: List[Finding] = []
    for item in materials:
        share = item.total_price / total * 100
        if share > HIGH_SHARE_PCT:
            findings.append(Finding("high", "COST_OUTLIER", f"{share:.1f}% of intervention cost", item.item_name))
        elif share > MEDIUM_SHARE_PCT:
            findings.append(Finding("medium", "COST_OUTLIER", f"{share:.1f}% of intervention cost", item.item_name))
    return findings


def check_intervention_total(cost: InterventionCost) -> List[Finding]:
    total = cost.total_cost
    if total <= 0:
        return [Finding("high", "NON_POSITIVE_TOTAL", "Total cost is zero or negative")]
    if total > MAX_PLAUSIBLE_TOTAL:
        return [Finding("medium", "LARGE_TOTAL", f"Unusually high total cost: ₹{total:,.2f}")]
    return []


def validate_intervention(cost: InterventionCost) -> List[Finding]:
    materials = cost.materials
    return (
        check_quantities(materials)
        + check_prices(materials)
        + check_cost_distribution(materials)
        + check_intervention_total(cost)
    )


def compliance_score(estimate: EstimateTotal) -> float:
    """Percentage of priced line items with no material-level finding."""
    total = 0
    clean = 0
    for cost in estimate.interventions:
        flagged = {finding.material for finding in cost.findings if finding.material}
        for item in cost.materials:
            total += 1
            if item.item_name not in flagged:
                clean += 1
    if total == 0:
        return 100.0
    return round(clean / total * 100, 2)


__all__ = [
    "check_quantities",
    "check_prices",
    "check_cost_distribution",
    "check_intervention_total",
    "validate_intervention",
    "compliance_score",
    "lookup_schedule_code",
    "PRICE_RANGES",
]
