from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from .models import (
    DroppedMaterial,
    EstimateTotal,
    Finding,
    Intervention,
    InterventionCost,
    NormalizedMaterial,
    PricedMaterial,
    ReviewItem,
    SectionCost,
)

logger = logging.getLogger(__name__)


def build_intervention_cost(
    intervention: Intervention,
    materials: Sequence[PricedMaterial],
    standard_reference: str = "",
    rationale: str = "",
    assumptions: Sequence[str] = (),
    findings: Sequence[Finding] = (),
    dropped: Sequence[DroppedMaterial] = (),
    unpriced: Sequence[NormalizedMaterial] = (),
    narrative_confidence: str = "low",
    derived_quantities: bool = False,
) -> InterventionCost:
    return InterventionCost(
        intervention=intervention,
        materials=list(materials),
        standard_reference=standard_reference,
        rationale=rationale,
        assumptions=list(assumptions),
        findings=list(findings),
        dropped=list(dropped),
        unpriced=list(unpriced),
        narrative_confidence=narrative_confidence,
        derived_quantities=derived_quantities,
    )


def group_sections(costs: Iterable[InterventionCost]) -> List[SectionCost]:
    """Group intervention costs by section id, keeping first-seen section order."""
    sections: Dict[str, SectionCost] = {}
    for cost in costs:
        section_id = cost.intervention.section_id
        section = sections.get(section_id)
        if section is None:
            section = SectionCost(section_id=section_id, section_name=cost.intervention.section_name)
            sections[section_id] = section
        section.interventions.append(cost)
    return list(sections.values())


def build_estimate(
    sections: Sequence[SectionCost],
    review: Sequence[ReviewItem] = (),
    failures: Sequence[str] = (),
    compliance_score: Optional[float] = None,
) -> EstimateTotal:
    estimate = EstimateTotal(sections=list(sections), review=list(review), failures=list(failures))
    if compliance_score is not None:
        estimate.compliance_score = compliance_score
    logger.info(
        "Estimate total ₹%.2f across %d section(s), %d intervention(s)",
        estimate.total,
        len(estimate.sections),
        len(estimate.interventions),
    )
    return estimate


def reaggregate(estimate: EstimateTotal) -> EstimateTotal:
    """Rebuild the section tree from its interventions; totals are unchanged by repetition."""
    return EstimateTotal(
        sections=group_sections(estimate.interventions),
        review=list(estimate.review),
        failures=list(estimate.failures),
        compliance_score=estimate.compliance_score,
    )


def section_summary(estimate: EstimateTotal) -> List[Dict[str, object]]:
    return [
        {
            "section_id": section.section_id,
            "section_name": section.section_name,
            "total_cost": section.total_cost,
            "interventions": len(section.interventions),
            "materials": sum(len(item.materials) for item in section.interventions),
        }
        for section in estimate.sections
    ]


__all__ = [
    "build_intervention_cost",
    "group_sections",
    "build_estimate",
    "reaggregate",
    "section_summary",
]
