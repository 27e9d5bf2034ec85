"""
Per-intervention orchestration of the estimation stages.

For every intervention the pipeline picks the nominal materials (from the
standards mapping, else a take-off derived from the intervention text),
normalizes units and quantities, resolves a unit price for each material,
writes the rationale, validates the result and finally groups everything into
sections.  Failures local to one material never abort the estimate; they are
recorded as dropped or unpriced materials, findings and review items.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .aggregator import build_estimate, build_intervention_cost, group_sections
from .dimensions import InterventionCategory, classify, derive_materials, needs_derivation
from .errors import ExtractionEmpty, InterventionEscalation, InvalidQuantity, NoOfficialRate
from .estimation import detect_category
from .models import (
    DroppedMaterial,
    EstimateTotal,
    Finding,
    Intervention,
    InterventionCost,
    MaterialRequirement,
    NormalizedMaterial,
    PricedMaterial,
    PriceResult,
    ReviewItem,
    SanityAudit,
    StandardMapping,
)
from .narrative import NarrativeGenerator, write_narrative
from .price_resolver import PriceResolver
from .units import is_countable, normalize_quantity, normalize_unit
from .validation import compliance_score, validate_intervention

logger = logging.getLogger(__name__)

# findings produced before pricing; they survive a re-price
PRE_PRICING_CODES = ("INVALID_QUANTITY", "DEFAULT_DIMENSION")

# intervention category -> price category used by the estimation fallback
PRICE_CATEGORIES: Dict[InterventionCategory, str] = {
    InterventionCategory.MARKING: "marking",
    InterventionCategory.PEDESTRIAN_CROSSING: "marking",
    InterventionCategory.ROAD_STUDS: "equipment",
    InterventionCategory.ROAD_SIGN: "signage",
    InterventionCategory.CHEVRON: "signage",
    InterventionCategory.GUARDRAIL: "barrier",
}


@dataclass(frozen=True)
class PipelineSettings:
    strict: bool = False
    max_workers: int = 1
    defaults_as_failures: bool = False


def normalize_material(requirement: MaterialRequirement) -> NormalizedMaterial:
    """Canonical unit and rounded quantity; raises :class:`InvalidQuantity` when nothing positive remains."""
    quantity = requirement.quantity
    if quantity is None:
        raise InvalidQuantity(requirement.item_name, quantity, "quantity missing")
    try:
        value = float(quantity)
    except (TypeError, ValueError):
        raise InvalidQuantity(requirement.item_name, quantity, "quantity is not numeric") from None
    if not math.isfinite(value):
        raise InvalidQuantity(requirement.item_name, quantity, "quantity is not finite")
    if value <= 0:
        raise InvalidQuantity(requirement.item_name, quantity, "quantity must be positive")
    unit = normalize_unit(requirement.unit)
    rounded = normalize_quantity(value, unit)
    if rounded <= 0:
        cause = "countable quantity rounds to zero" if is_countable(unit) else "quantity rounds to zero"
        raise InvalidQuantity(requirement.item_name, quantity, cause)
    return NormalizedMaterial(requirement=requirement, unit=unit, quantity=rounded)


def price_category(item_name: str, category: InterventionCategory) -> Optional[str]:
    """The material's own family wins; the intervention category fills in generic names."""
    detected = detect_category(item_name)
    if detected != "other":
        return detected
    return PRICE_CATEGORIES.get(category)


def priced_from_result(material: NormalizedMaterial, result: PriceResult) -> PricedMaterial:
    sanity = None
    if not result.is_valid:
        sanity = SanityAudit(
            is_valid=False,
            reason=result.reason,
            original_price=result.original_price,
            median=result.unit_price,
        )
    return PricedMaterial(
        material=material,
        unit_price=result.unit_price,
        source=result.source,
        confidence=result.confidence,
        official=result.official,
        item_code=result.item_code,
        source_url=result.source_url,
        specification=result.specification,
        sanity=sanity,
        notes=result.notes,
    )


Resolution = Union[PriceResult, NoOfficialRate]


class EstimatePipeline:
    def __init__(
        self,
        resolver: PriceResolver,
        narrative: Optional[NarrativeGenerator] = None,
        settings: Optional[PipelineSettings] = None,
    ) -> None:
        self.resolver = resolver
        self.narrative = narrative
        self.settings = settings or PipelineSettings()

    @property
    def strict(self) -> bool:
        return self.settings.strict or self.resolver.strict

    def run(self, pairs: Iterable[Tuple[Intervention, Optional[StandardMapping]]]) -> EstimateTotal:
        """Estimate every (intervention, mapping) pair and aggregate them into an :class:`EstimateTotal`."""
        stage_counter = 0

        def log_stage(message: str) -> None:
            nonlocal stage_counter
            stage_counter += 1
            logger.info("[pipeline:%02d] %s", stage_counter, message)

        def log_detail(message: str) -> None:
            logger.info("           %s", message)

        pairs = list(pairs)
        log_stage(f"Estimating {len(pairs)} intervention(s)")
        log_detail(
            f"strict={self.strict} | max_workers={self.settings.max_workers} "
            f"| defaults_as_failures={self.settings.defaults_as_failures}"
        )

        costs: List[InterventionCost] = []
        review: List[ReviewItem] = []
        failures: List[str] = []
        for intervention, mapping in pairs:
            cost, items, failure = self.estimate_intervention(intervention, mapping)
            costs.append(cost)
            review.extend(items)
            if failure:
                failures.append(failure)
            log_detail(
                f"{intervention.key} => ₹{cost.total_cost:,.2f} | priced={len(cost.materials)} "
                f"| unpriced={len(cost.unpriced)} | dropped={len(cost.dropped)}"
            )

        log_stage("Aggregating section totals")
        estimate = build_estimate(group_sections(costs), review, failures)

        log_stage("Scoring compliance")
        estimate.compliance_score = compliance_score(estimate)
        log_detail(
            f"total=₹{estimate.total:,.2f} | compliance={estimate.compliance_score:.2f}% "
            f"| review_items={len(estimate.review)} | escalations={len(estimate.failures)}"
        )
        if not estimate.complete:
            logger.warning("Estimate is incomplete; %d item(s) need review", len(estimate.review))
        return estimate

    def nominal_materials(
        self,
        intervention: Intervention,
        mapping: Optional[StandardMapping],
        category: InterventionCategory,
    ) -> Tuple[List[MaterialRequirement], List[str], bool]:
        """Mapped materials when they carry quantities, else a derived take-off; returns (materials, assumptions, derived)."""
        mapped = list(mapping.materials) if mapping is not None else []
        if not needs_derivation(mapped):
            return mapped, [], False

        logger.info("        deriving quantities => %s (%s)", intervention.key, category.value)
        takeoff = derive_materials(intervention, category)
        assumptions = list(takeoff.assumptions)
        if not takeoff.materials:
            empty = ExtractionEmpty(intervention.section_id, intervention.serial_no, "no materials could be derived")
            logger.warning("        %s", empty)
            assumptions.append(str(empty))
        return list(takeoff.materials), assumptions, True

    def _resolve(self, material: NormalizedMaterial, category: InterventionCategory) -> Resolution:
        requirement = material.requirement
        try:
            return self.resolver.resolve(
                requirement.item_name,
                material.unit,
                requirement.details,
                price_category(requirement.item_name, category),
                strict=self.strict,
            )
        except NoOfficialRate as exc:
            return exc

    def _resolve_all(self, materials: Sequence[NormalizedMaterial], category: InterventionCategory) -> List[Resolution]:
        workers = max(1, int(self.settings.max_workers or 1))
        if workers == 1 or len(materials) <= 1:
            return [self._resolve(material, category) for material in materials]
        with ThreadPoolExecutor(max_workers=workers) as executor:
            # map() yields in submission order
            return list(executor.map(lambda material: self._resolve(material, category), materials))

    def price_materials(
        self,
        intervention: Intervention,
        materials: Sequence[NormalizedMaterial],
        category: InterventionCategory,
    ) -> Tuple[List[PricedMaterial], List[NormalizedMaterial], List[ReviewItem]]:
        priced: List[PricedMaterial] = []
        unpriced: List[NormalizedMaterial] = []
        review: List[ReviewItem] = []
        for material, outcome in zip(materials, self._resolve_all(materials, category)):
            if isinstance(outcome, NoOfficialRate):
                unpriced.append(material)
                review.append(ReviewItem(intervention.key, material.item_name, material.unit, str(outcome)))
                continue
            item = priced_from_result(material, outcome)
            priced.append(item)
            if not item.official:
                review.append(
                    ReviewItem(
                        intervention.key,
                        item.item_name,
                        item.unit,
                        f"estimated price ({item.confidence} confidence); replace with an official rate",
                    )
                )
            elif item.sanity is not None:
                review.append(ReviewItem(intervention.key, item.item_name, item.unit, item.sanity.reason))
        return priced, unpriced, review

    def _finish(
        self,
        intervention: Intervention,
        standard_reference: str,
        priced: List[PricedMaterial],
        unpriced: List[NormalizedMaterial],
        dropped: List[DroppedMaterial],
        assumptions: List[str],
        findings: List[Finding],
        derived: bool,
    ) -> Tuple[InterventionCost, Optional[str]]:
        total = round(sum(item.total_price for item in priced), 2)
        narrative = write_narrative(
            self.narrative,
            intervention,
            priced,
            total,
            standard_reference,
            formula_assumptions=assumptions,
        )
        cost = build_intervention_cost(
            intervention,
            priced,
            standard_reference=standard_reference,
            rationale=narrative.rationale,
            assumptions=narrative.assumptions,
            findings=findings,
            dropped=dropped,
            unpriced=unpriced,
            narrative_confidence=narrative.confidence,
            derived_quantities=derived,
        )
        cost.findings.extend(validate_intervention(cost))

        failure = None
        if self.strict and not priced:
            reason = f"no material priced ({len(unpriced)} unpriced, {len(dropped)} dropped)"
            escalation = InterventionEscalation(intervention.section_id, intervention.serial_no, reason)
            logger.warning("        escalation => %s", escalation)
            failure = str(escalation)
        return cost, failure

    def estimate_intervention(
        self,
        intervention: Intervention,
        mapping: Optional[StandardMapping] = None,
    ) -> Tuple[InterventionCost, List[ReviewItem], Optional[str]]:
        """Estimate one intervention; returns its cost, review items and an escalation message or None."""
        logger.info("        intervention => %s %s", intervention.key, intervention.recommendation or intervention.observation)
        category = classify(intervention)
        requirements, assumptions, derived = self.nominal_materials(intervention, mapping, category)

        findings: List[Finding] = []
        dropped: List[DroppedMaterial] = []
        normalized: List[NormalizedMaterial] = []
        for requirement in requirements:
            try:
                if requirement.defaulted and self.settings.defaults_as_failures:
                    raise InvalidQuantity(requirement.item_name, requirement.quantity, "derived from a default dimension")
                normalized.append(normalize_material(requirement))
            except InvalidQuantity as exc:
                logger.warning("        dropped => %s", exc)
                dropped.append(DroppedMaterial(exc.item_name, exc.quantity, requirement.unit, exc.cause))
                findings.append(Finding("critical", "INVALID_QUANTITY", f"Dropped: {exc.cause} ({exc.quantity!r})", exc.item_name))

        if derived and not self.settings.defaults_as_failures:
            for assumption in assumptions:
                findings.append(Finding("low", "DEFAULT_DIMENSION", assumption))

        priced, unpriced, review = self.price_materials(intervention, normalized, category)
        standard_reference = mapping.reference if mapping is not None and mapping.reference else intervention.standard_clause
        cost, failure = self._finish(
            intervention, standard_reference, priced, unpriced, dropped, assumptions, findings, derived
        )
        return cost, review, failure

    def reprice(self, estimate: EstimateTotal) -> EstimateTotal:
        """Resolve prices again for an existing estimate, keeping its quantities and dropped materials."""
        costs: List[InterventionCost] = []
        review: List[ReviewItem] = []
        failures: List[str] = []
        for previous in estimate.interventions:
            intervention = previous.intervention
            category = classify(intervention)
            materials = [item.material for item in previous.materials] + list(previous.unpriced)
            priced, unpriced, items = self.price_materials(intervention, materials, category)
            findings = [finding for finding in previous.findings if finding.code in PRE_PRICING_CODES]
            cost, failure = self._finish(
                intervention,
                previous.standard_reference,
                priced,
                unpriced,
                list(previous.dropped),
                list(previous.assumptions),
                findings,
                previous.derived_quantities,
            )
            costs.append(cost)
            review.extend(items)
            if failure:
                failures.append(failure)
        repriced = build_estimate(group_sections(costs), review, failures)
        repriced.compliance_score = compliance_score(repriced)
        logger.info("Re-priced estimate: ₹%.2f => ₹%.2f", estimate.total, repriced.total)
        return repriced


def reprice(
    estimate: EstimateTotal,
    resolver: PriceResolver,
    narrative: Optional[NarrativeGenerator] = None,
    settings: Optional[PipelineSettings] = None,
) -> EstimateTotal:
    return EstimatePipeline(resolver, narrative, settings).reprice(estimate)


__all__ = [
    "EstimatePipeline",
    "PipelineSettings",
    "normalize_material",
    "price_category",
    "priced_from_result",
    "reprice",
]
