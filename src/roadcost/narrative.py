"""Rationale text for an intervention's cost."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from .ai import ModelClient, parse_json_reply
from .errors import TransientSourceError
from .models import CONFIDENCE_LEVELS, Intervention, PricedMaterial

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a road safety engineer writing the cost rationale for an audit "
    "intervention. Be factual and brief. Do not change any figures you are given."
)

USER_PROMPT = (
    "Intervention: {recommendation}\n"
    "Observation: {observation}\n"
    "Location: {location}\n"
    "Standard: {standard}\n"
    "Priced materials (JSON): {materials}\n"
    "Total cost (INR): {total:.2f}\n\n"
    "Return ONLY a JSON object: "
    '{{"rationale": "<2-3 sentences>", "assumptions": ["<assumption>", ...], '
    '"confidence": "high"|"medium"|"low"}}'
)


@dataclass(frozen=True)
class Narrative:
    rationale: str
    assumptions: List[str] = field(default_factory=list)
    confidence: str = "low"


class NarrativeGenerator(Protocol):
    def generate(
        self,
        intervention: Intervention,
        materials: Sequence[PricedMaterial],
        total_cost: float,
        standard_reference: str,
    ) -> Optional[Narrative]:
        ...


def template_rationale(
    intervention: Intervention,
    materials: Sequence[PricedMaterial],
    total_cost: float,
    standard_reference: str = "",
) -> Narrative:
    """Deterministic rationale built from the aggregated figures."""
    action = intervention.recommendation or intervention.observation or "Recommended intervention"
    parts = [action.rstrip(".") + "."]
    if intervention.location:
        parts.append(f"Location: {intervention.location}.")
    if standard_reference:
        parts.append(f"Governed by {standard_reference}.")
    if materials:
        top = max(materials, key=lambda item: item.total_price)
        share = (top.total_price / total_cost * 100) if total_cost > 0 else 0.0
        parts.append(
            f"Estimated at ₹{total_cost:,.2f} across {len(materials)} material line(s); "
            f"largest share {top.item_name} ({share:.1f}%)."
        )
        estimated = [item.item_name for item in materials if not item.official]
        if estimated:
            parts.append(f"Non-official estimates used for: {', '.join(estimated)}.")
    else:
        parts.append("No material could be priced.")
    official = sum(1 for item in materials if item.official)
    if materials and official == len(materials):
        confidence = "medium"
    else:
        confidence = "low"
    return Narrative(rationale=" ".join(parts), assumptions=[], confidence=confidence)


class OpenAINarrativeGenerator:
    def __init__(self, client: ModelClient) -> None:
        self.client = client

    def generate(
        self,
        intervention: Intervention,
        materials: Sequence[PricedMaterial],
        total_cost: float,
        standard_reference: str,
    ) -> Optional[Narrative]:
        payload = [
            {
                "item": item.item_name,
                "quantity": item.quantity,
                "unit": item.unit,
                "unit_price": item.unit_price,
                "total": item.total_price,
                "source": item.source,
            }
            for item in materials
        ]
        prompt = USER_PROMPT.format(
            recommendation=intervention.recommendation,
            observation=intervention.observation,
            location=intervention.location or "n/a",
            standard=standard_reference or "n/a",
            materials=json.dumps(payload),
            total=total_cost,
        )
        try:
            text = self.client.complete(SYSTEM_PROMPT, prompt, description=f"rationale for {intervention.key}")
        except TransientSourceError as exc:
            LOGGER.warning("Narrative generation unavailable for %s: %s", intervention.key, exc)
            return None
        data = parse_json_reply(text)
        if not data or not isinstance(data.get("rationale"), str) or not data["rationale"].strip():
            if text:
                LOGGER.warning("Narrative reply for %s was malformed; using template", intervention.key)
            return None
        assumptions = data.get("assumptions") or []
        if not isinstance(assumptions, list):
            assumptions = [str(assumptions)]
        confidence = str(data.get("confidence", "low")).lower()
        if confidence not in CONFIDENCE_LEVELS:
            confidence = "low"
        return Narrative(
            rationale=data["rationale"].strip(),
            assumptions=[str(item) for item in assumptions if str(item).strip()],
            confidence=confidence,
        )


def write_narrative(
    generator: Optional[NarrativeGenerator],
    intervention: Intervention,
    materials: Sequence[PricedMaterial],
    total_cost: float,
    standard_reference: str,
    formula_assumptions: Sequence[str] = (),
) -> Narrative:
    """Generator output when usable, template otherwise; formula assumptions always appended."""
    narrative: Optional[Narrative] = None
    if generator is not None:
        try:
            narrative = generator.generate(intervention, materials, total_cost, standard_reference)
        except Exception as exc:  # pragma: no cover - collaborator boundary
            LOGGER.warning("Narrative generator failed for %s: %s", intervention.key, exc)
            narrative = None
    if narrative is None:
        narrative = template_rationale(intervention, materials, total_cost, standard_reference)
    assumptions = list(narrative.assumptions)
    for assumption in formula_assumptions:
        if assumption not in assumptions:
            assumptions.append(assumption)
    return Narrative(rationale=narrative.rationale, assumptions=assumptions, confidence=narrative.confidence)


__all__ = [
    "Narrative",
    "NarrativeGenerator",
    "OpenAINarrativeGenerator",
    "template_rationale",
    "write_narrative",
]
