"""
Last-resort price estimation for materials no official source covers.

Estimated prices are never official.  They combine same-unit reference items
whose names share a significant word with the material (mean plus a 10 %
safety markup) with an optional language-model estimate, and fall back to
rule-based category prices when neither is available.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .ai import ModelClient, parse_json_reply
from .errors import PriceEstimationError, TransientSourceError
from .reference_data import ReferenceDataset
from .units import normalize_unit

logger = logging.getLogger(__name__)

SAFETY_MARKUP = 1.1
AGREEMENT_PCT = 20.0
ESTIMATED_SOURCE = "ESTIMATED"

# category -> unit -> (min, max, default)
CATEGORY_RANGES: Dict[str, Dict[str, Tuple[float, float, float]]] = {
    "signage": {"sqm": (800, 1500, 1250), "nos": (600, 1200, 850), "m": (200, 400, 285)},
    "marking": {"kg": (200, 350, 285), "sqm": (120, 250, 180), "m": (100, 200, 150), "litre": (35, 60, 45)},
    "barrier": {"m": (2800, 4500, 3500), "nos": (1800, 3200, 2500)},
    "lighting": {"nos": (5000, 12000, 8500), "m": (150, 250, 185)},
    "equipment": {"nos": (300, 600, 425), "m": (1800, 2800, 2200), "kg": (150, 300, 220)},
    "adhesive": {"kg": (600, 900, 750), "litre": (100, 180, 125)},
    "electrical": {"m": (120, 250, 185), "nos": (300, 800, 500)},
    "other": {"sqm": (350, 700, 500), "nos": (350, 700, 500), "m": (180, 350, 250), "kg": (150, 300, 200), "litre": (150, 300, 220)},
}
GENERIC_RANGE = (300.0, 800.0, 500.0)

CATEGORY_TERMS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("signage", ("sign", "reflective", "aluminum", "aluminium", "board")),
    ("barrier", ("barrier", "guard", "rail", "crash")),
    ("marking", ("marking", "paint", "thermoplastic", "bead", "glass")),
    ("lighting", ("signal", "light", "led", "blinker", "luminaire")),
    ("equipment", ("stud", "cone", "delineator", "breaker", "bollard")),
    ("adhesive", ("adhesive", "epoxy", "resin", "glue", "primer")),
    ("electrical", ("cable", "wire", "electrical", "controller")),
)

SYSTEM_PROMPT = (
    "You are a construction material price expert for Indian road-safety works. "
    "Estimate conservative 2024 government procurement rates in Indian Rupees, "
    "consistent with CPWD schedule of rates and GeM portal prices."
)

USER_PROMPT = (
    "Material: {item_name}\n"
    "Unit: {unit}\n"
    "Description: {details}\n\n"
    "Return ONLY a JSON object: "
    '{{"estimatedPrice": <number per {unit}>, "confidence": "low"|"medium"|"high", '
    '"reasoning": "<brief explanation>", "priceRange": {{"min": <number>, "max": <number>}}}}'
)


def detect_category(item_name: str) -> str:
    lower = str(item_name or "").lower()
    for category, terms in CATEGORY_TERMS:
        if any(term in lower for term in terms):
            return category
    return "other"


@dataclass(frozen=True)
class CategoryFallback:
    unit_price: float
    category: str
    price_range: Tuple[float, float]
    used_median: bool


def category_fallback(
    item_name: str,
    unit: str,
    reference: Optional[ReferenceDataset] = None,
    category: Optional[str] = None,
) -> CategoryFallback:
    """Same-unit reference median when it sits inside the category range, else the range default."""
    canonical = normalize_unit(unit)
    detected = category or detect_category(item_name)
    low, high, default = (
        CATEGORY_RANGES.get(detected, {}).get(canonical)
        or CATEGORY_RANGES["other"].get(canonical)
        or GENERIC_RANGE
    )
    price = float(default)
    used_median = False
    median = reference.same_unit_median(canonical) if reference is not None else None
    if median is not None:
        if low <= median <= high:
            price = median
            used_median = True
            logger.debug("        category fallback => median %.2f within [%g-%g]", median, low, high)
        else:
            logger.debug("        category fallback => median %.2f outside [%g-%g], default %g", median, low, high, default)
    return CategoryFallback(unit_price=price, category=detected, price_range=(low, high), used_median=used_median)


def rule_based_price(
    item_name: str,
    unit: str,
    reference: Optional[ReferenceDataset] = None,
    category: Optional[str] = None,
) -> Tuple[float, str]:
    """Typical market rate for the material family, with the reasoning behind it."""
    canonical = normalize_unit(unit)
    lower = str(item_name or "").lower()

    if any(term in lower for term in ("bitumen", "emulsion", "tack", "prime coat")):
        return (65.0 if canonical == "kg" else 6500.0), "typical bituminous material rates (₹65/kg)"
    if any(term in lower for term in ("paint", "marking", "thermoplastic")):
        return (295.0 if canonical == "kg" else 100.0), "typical road marking paint rates (₹295/kg for thermoplastic)"
    if "glass" in lower and "bead" in lower:
        return (95.0 if canonical == "kg" else 100.0), "typical glass bead rates (₹95/kg for Type A)"
    if "aluminum" in lower or "aluminium" in lower:
        price = 850.0 if canonical == "sqm" else 250.0 if canonical == "kg" else 500.0
        return price, "typical aluminium sheet rates (₹850/sqm or ₹250/kg)"
    if any(term in lower for term in ("steel", "gi ", "galvanized")):
        return (75.0 if canonical == "kg" else 1180.0), "typical steel/GI rates (₹75/kg or ₹1,180/nos for posts)"
    if "concrete" in lower or "cement" in lower:
        return (6500.0 if canonical == "cum" else 350.0), "typical concrete rates (₹6,500/cum)"
    if "reflective" in lower:
        return (1420.0 if canonical == "sqm" else 1500.0), "typical retroreflective sheeting rates (₹1,420/sqm for Type III)"
    if "led" in lower.split() or "light" in lower:
        return (2500.0 if canonical == "nos" else 1000.0), "typical LED/lighting equipment rates (₹2,500/nos)"
    if any(term in lower for term in ("delineator", "stud", "marker")):
        return (185.0 if canonical == "nos" else 200.0), "typical delineator/road stud rates (₹185/nos)"

    fallback = category_fallback(item_name, canonical, reference, category)
    basis = "same-unit reference median" if fallback.used_median else "category default"
    return fallback.unit_price, (
        f"{fallback.category} {basis} within ₹{fallback.price_range[0]:g}-{fallback.price_range[1]:g} per {canonical or 'unit'}"
    )


@dataclass(frozen=True)
class AIEstimate:
    estimated_price: float
    confidence: str
    reasoning: str = ""


@dataclass(frozen=True)
class PriceEstimate:
    unit_price: float
    confidence: str
    reasoning: str
    sources: Tuple[str, ...] = field(default_factory=tuple)
    source: str = ESTIMATED_SOURCE
    official: bool = False


class AIPriceAdvisor:
    """Asks the language model for a market-rate estimate."""

    def __init__(self, client: ModelClient) -> None:
        self.client = client

    def estimate(self, item_name: str, unit: str, details: str = "") -> Optional[AIEstimate]:
        prompt = USER_PROMPT.format(
            item_name=item_name,
            unit=normalize_unit(unit) or unit,
            details=details or "Standard quality for road construction",
        )
        try:
            text = self.client.complete(SYSTEM_PROMPT, prompt, description=f"price estimate for {item_name}")
        except TransientSourceError as exc:
            logger.warning("        AI price estimate unavailable for %s: %s", item_name, exc)
            return None
        data = parse_json_reply(text)
        if not data:
            if text:
                logger.warning("        AI price estimate for %s was not valid JSON", item_name)
            return None
        try:
            price = float(data.get("estimatedPrice"))
        except (TypeError, ValueError):
            return None
        if not math.isfinite(price) or price <= 0:
            return None
        confidence = str(data.get("confidence", "low")).lower()
        return AIEstimate(estimated_price=price, confidence=confidence, reasoning=str(data.get("reasoning", "")))


class PriceEstimator:
    def __init__(self, reference: Optional[ReferenceDataset] = None, advisor: Optional[AIPriceAdvisor] = None) -> None:
        self.reference = reference
        self.advisor = advisor

    def _similar_prices(self, item_name: str, unit: str) -> List[Tuple[str, float]]:
        if self.reference is None:
            return []
        similar = self.reference.similar_items(item_name, unit)
        return [(row["ITEM_NAME"], float(row["UNIT_PRICE"])) for _, row in similar.iterrows()]

    def estimate(self, item_name: str, unit: str, details: str = "", category: Optional[str] = None) -> PriceEstimate:
        """Estimate a unit price; raises :class:`PriceEstimationError` when no finite positive price results."""
        logger.info("        estimating => %s (%s)", item_name, unit)
        try:
            similar = self._similar_prices(item_name, unit)
        except (KeyError, ValueError, TypeError) as exc:
            raise PriceEstimationError(f"similar-material lookup failed for {item_name!r}: {exc}") from exc
        ai_estimate = self.advisor.estimate(item_name, unit, details) if self.advisor else None

        sources: List[str] = [name for name, _ in similar]
        if similar and ai_estimate:
            similar_avg = sum(price for _, price in similar) / len(similar)
            ai_price = ai_estimate.estimated_price
            percent_diff = abs(similar_avg - ai_price) / similar_avg * 100
            sources.append("AI market analysis")
            if percent_diff < AGREEMENT_PCT:
                price = (similar_avg + ai_price) / 2
                confidence = "medium"
                reasoning = (
                    f"{len(similar)} similar materials (avg ₹{similar_avg:.2f}) and AI analysis (₹{ai_price:g}) "
                    f"agree within {percent_diff:.1f}%"
                )
            else:
                price = min(similar_avg, ai_price) * SAFETY_MARKUP
                confidence = "low"
                reasoning = f"conservative estimate from similar materials and AI analysis; variance {percent_diff:.1f}%"
        elif similar:
            similar_avg = sum(price for _, price in similar) / len(similar)
            price = similar_avg * SAFETY_MARKUP
            confidence = "medium"
            reasoning = f"{len(similar)} similar materials with 10% safety markup"
        elif ai_estimate:
            price = ai_estimate.estimated_price
            confidence = "medium" if ai_estimate.confidence == "high" else "low"
            reasoning = ai_estimate.reasoning or "AI market analysis"
            sources.append("AI market analysis")
        else:
            price, basis = rule_based_price(item_name, unit, self.reference, category)
            confidence = "low"
            reasoning = f"rule-based estimate: {basis}"
            sources.append("rule-based")

        if not math.isfinite(price) or price <= 0:
            raise PriceEstimationError(f"estimate for {item_name!r} is not a positive price: {price!r}")
        price = round(price, 2)
        logger.info("        estimated => ₹%.2f (%s) %s", price, confidence, reasoning)
        return PriceEstimate(unit_price=price, confidence=confidence, reasoning=reasoning, sources=tuple(sources))


__all__ = [
    "PriceEstimator",
    "PriceEstimate",
    "AIPriceAdvisor",
    "AIEstimate",
    "category_fallback",
    "rule_based_price",
    "detect_category",
    "CATEGORY_RANGES",
]
