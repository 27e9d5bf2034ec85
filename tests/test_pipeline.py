from __future__ import annotations

import math

import pytest

from roadcost.errors import InvalidQuantity
from roadcost.models import Intervention, MaterialRequirement, StandardMapping
from roadcost.pipeline import EstimatePipeline, PipelineSettings, normalize_material, price_category, reprice
from roadcost.dimensions import InterventionCategory
from roadcost.price_store import PriceRecord

SIGN = Intervention("B", "Signage", 1, chainage="12+300", recommendation="Install speed limit sign")
VEGETATION = Intervention("Z", "Miscellaneous", 1, recommendation="Trim vegetation obstructing sight distance")


def _codes(cost):
    return {(finding.code, finding.severity) for finding in cost.findings}


def test_normalize_material() -> None:
    normalized = normalize_material(MaterialRequirement("Studs", quantity=24.6, unit="Nos."))
    assert normalized.unit == "nos"
    assert normalized.quantity == 25
    assert normalize_material(MaterialRequirement("Paint", quantity=576.004, unit="kg")).quantity == 576.0


@pytest.mark.parametrize(
    "quantity, unit, cause",
    [
        (None, "kg", "quantity missing"),
        (math.nan, "kg", "quantity is not finite"),
        (-2, "kg", "quantity must be positive"),
        (0.3, "nos", "countable quantity rounds to zero"),
    ],
)
def test_normalize_material_rejects(quantity, unit, cause) -> None:
    with pytest.raises(InvalidQuantity) as excinfo:
        normalize_material(MaterialRequirement("Item", quantity=quantity, unit=unit))
    assert excinfo.value.cause == cause


def test_price_category_prefers_material_family() -> None:
    assert price_category("Primer", InterventionCategory.MARKING) == "adhesive"
    assert price_category("Fixing Kit", InterventionCategory.GUARDRAIL) == "barrier"
    assert price_category("Fixing Kit", InterventionCategory.POTHOLE) is None


def test_derived_marking_estimate(resolver, marking_intervention) -> None:
    estimate = EstimatePipeline(resolver).run([(marking_intervention, None)])
    [cost] = estimate.interventions
    assert cost.derived_quantities
    prices = {item.item_name: item for item in cost.materials}
    assert prices["Thermoplastic Paint"].quantity == 576
    assert prices["Thermoplastic Paint"].unit_price == 285
    assert prices["Thermoplastic Paint"].official
    assert prices["Glass Beads Type A"].confidence == "high"
    assert not prices["Primer"].official
    assert prices["Primer"].unit_price == 125
    assert cost.total_cost == round(sum(item.total_price for item in cost.materials), 2)
    assert estimate.total == cost.total_cost
    assert ("COST_OUTLIER", "high") in _codes(cost)
    assert ("NON_OFFICIAL_PRICE", "high") in _codes(cost)
    assert [item.item_name for item in estimate.review] == ["Primer"]
    assert estimate.complete
    assert cost.rationale.startswith("Repaint edge line with thermoplastic paint.")


def test_mapped_materials_are_used(resolver, sign_mapping) -> None:
    estimate = EstimatePipeline(resolver).run([(SIGN, sign_mapping)])
    [cost] = estimate.interventions
    assert not cost.derived_quantities
    assert cost.standard_reference == "IRC:67-2022 - Clause 14.4"
    assert [(item.item_name, item.unit, item.quantity) for item in cost.materials] == [
        ("Retroreflective Sheeting Type III", "sqm", 0.28),
        ("GI Pipe Post 50mm", "nos", 1),
    ]
    assert cost.total_cost == 1530.0
    assert estimate.review == []
    # the post carries 77% of the cost; the sheeting line stays clean
    assert ("COST_OUTLIER", "high") in _codes(cost)
    assert estimate.compliance_score == 50.0


def test_invalid_quantities_are_dropped(resolver) -> None:
    mapping = StandardMapping(
        "B",
        1,
        materials=(
            MaterialRequirement("GI Pipe Post 50mm", quantity=2, unit="nos"),
            MaterialRequirement("Retroreflective Sheeting Type III", quantity=-1, unit="sqm"),
            MaterialRequirement("Aluminum Plate 600mm Dia", quantity=0.3, unit="nos"),
        ),
    )
    estimate = EstimatePipeline(resolver).run([(SIGN, mapping)])
    [cost] = estimate.interventions
    assert [item.item_name for item in cost.materials] == ["GI Pipe Post 50mm"]
    assert [(item.item_name, item.cause) for item in cost.dropped] == [
        ("Retroreflective Sheeting Type III", "quantity must be positive"),
        ("Aluminum Plate 600mm Dia", "countable quantity rounds to zero"),
    ]
    assert ("INVALID_QUANTITY", "critical") in _codes(cost)
    assert cost.total_cost == 2360.0


def test_defaults_are_surfaced_as_findings(resolver) -> None:
    intervention = Intervention("A", "Road Markings", 2, recommendation="Repaint centre line")
    estimate = EstimatePipeline(resolver).run([(intervention, None)])
    [cost] = estimate.interventions
    assert ("DEFAULT_DIMENSION", "low") in _codes(cost)
    assert any("100 m assumed" in assumption for assumption in cost.assumptions)
    assert cost.materials


def test_defaults_as_failures_drops_defaulted_materials(resolver) -> None:
    intervention = Intervention("A", "Road Markings", 2, recommendation="Repaint centre line")
    pipeline = EstimatePipeline(resolver, settings=PipelineSettings(defaults_as_failures=True))
    [cost] = pipeline.run([(intervention, None)]).interventions
    assert cost.materials == []
    assert len(cost.dropped) == 3
    assert all(item.cause == "derived from a default dimension" for item in cost.dropped)


def test_unknown_category_is_recorded_as_assumption(resolver) -> None:
    estimate = EstimatePipeline(resolver).run([(VEGETATION, None)])
    [cost] = estimate.interventions
    assert cost.materials == []
    assert any("no materials could be derived" in assumption for assumption in cost.assumptions)
    assert estimate.failures == []


def test_strict_mode_escalates_and_leaves_materials_unpriced(resolver, sign_mapping) -> None:
    mapping = StandardMapping("Z", 1, materials=(MaterialRequirement("Vegetation Trimming Service", quantity=1, unit="LS"),))
    pipeline = EstimatePipeline(resolver, settings=PipelineSettings(strict=True))
    estimate = pipeline.run([(VEGETATION, mapping), (SIGN, sign_mapping)])
    vegetation, sign = estimate.interventions
    assert [item.item_name for item in vegetation.unpriced] == ["Vegetation Trimming Service"]
    assert vegetation.total_cost == 0
    assert len(estimate.failures) == 1
    assert estimate.failures[0].startswith("Z-1: no material priced")
    assert sign.total_cost == 1530.0
    assert not estimate.complete
    assert estimate.review[0].item_name == "Vegetation Trimming Service"


def test_reprice_fills_previously_unpriced_materials(resolver, price_store) -> None:
    mapping = StandardMapping("Z", 1, materials=(MaterialRequirement("Vegetation Trimming Service", quantity=2, unit="job"),))
    estimate = EstimatePipeline(resolver, settings=PipelineSettings(strict=True)).run([(VEGETATION, mapping)])
    assert not estimate.complete

    price_store.upsert(PriceRecord("Vegetation Trimming Service", "job", 2500, "CPWD_SOR", item_code="19.7"))
    repriced = reprice(estimate, resolver)
    [cost] = repriced.interventions
    assert cost.unpriced == []
    assert cost.total_cost == 5000.0
    assert repriced.complete
    assert repriced.total == 5000.0


def test_concurrent_resolution_keeps_input_order(resolver, marking_intervention, sign_mapping) -> None:
    sequential = EstimatePipeline(resolver).run([(marking_intervention, None), (SIGN, sign_mapping)])
    resolver.cache.clear()
    concurrent = EstimatePipeline(resolver, settings=PipelineSettings(max_workers=4)).run(
        [(marking_intervention, None), (SIGN, sign_mapping)]
    )
    assert [item.item_name for item in concurrent.interventions[0].materials] == [
        item.item_name for item in sequential.interventions[0].materials
    ]
    assert concurrent.total == sequential.total


def test_strict_pipeline_leaves_shared_resolver_permissive(resolver) -> None:
    mapping = StandardMapping("Z", 1, materials=(MaterialRequirement("Vegetation Trimming Service", quantity=1, unit="job"),))
    strict = EstimatePipeline(resolver, settings=PipelineSettings(strict=True)).run([(VEGETATION, mapping)])
    assert not strict.complete
    assert not resolver.strict

    permissive = EstimatePipeline(resolver).run([(VEGETATION, mapping)])
    [cost] = permissive.interventions
    assert cost.unpriced == []
    assert not cost.materials[0].official
    assert permissive.failures == []
