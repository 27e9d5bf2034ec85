from __future__ import annotations

from roadcost.aggregator import build_estimate, build_intervention_cost, group_sections
from roadcost.models import (
    Intervention,
    MaterialRequirement,
    NormalizedMaterial,
    PricedMaterial,
    SanityAudit,
)
from roadcost.validation import (
    check_cost_distribution,
    check_intervention_total,
    check_prices,
    check_quantities,
    compliance_score,
    lookup_schedule_code,
    validate_intervention,
)

INTERVENTION = Intervention("A", "Markings", 1, recommendation="Repaint")


def _priced(name, quantity, price, unit="kg", official=True, item_code="1.1", sanity=None) -> PricedMaterial:
    material = NormalizedMaterial(MaterialRequirement(name, quantity=quantity, unit=unit), unit, quantity)
    return PricedMaterial(material, price, "CPWD_SOR", "high", official, item_code=item_code, sanity=sanity)


def _codes(findings):
    return {(finding.code, finding.severity) for finding in findings}


def test_quantity_checks() -> None:
    findings = check_quantities(
        [
            _priced("Studs", 2.5, 185, unit="nos"),
            _priced("Paint", 0, 285),
            _priced("Sand", 250_000, 20, unit="cum"),
            _priced("Ok", 10, 100),
        ]
    )
    assert _codes(findings) == {
        ("FRACTIONAL_COUNT", "high"),
        ("NON_POSITIVE_QUANTITY", "critical"),
        ("LARGE_QUANTITY", "medium"),
    }
    assert all(finding.material != "Ok" for finding in findings)


def test_price_checks() -> None:
    capped = SanityAudit(False, "capped", original_price=50_000, median=1_000)
    findings = check_prices(
        [
            _priced("Paint", 1, 0),
            _priced("Beads", 1, 5000),
            _priced("Primer", 1, 160, unit="litre", official=False),
            _priced("Road Paint", 1, 285, item_code=None),
            _priced("Post", 1, 1000, unit="nos", sanity=capped),
        ]
    )
    assert _codes(findings) == {
        ("NON_POSITIVE_PRICE", "high"),
        ("PRICE_OUT_OF_RANGE", "medium"),
        ("NON_OFFICIAL_PRICE", "high"),
        ("MISSING_ITEM_CODE", "low"),
        ("SANITY_CAPPED", "medium"),
    }
    missing = [finding for finding in findings if finding.code == "MISSING_ITEM_CODE"][0]
    assert "8.1.1" in missing.message


def test_cost_distribution_thresholds() -> None:
    high = check_cost_distribution([_priced("Big", 1, 80), _priced("Small", 1, 20)])
    assert _codes(high) == {("COST_OUTLIER", "high")}
    assert high[0].material == "Big"

    spread = check_cost_distribution([_priced("A", 1, 40), _priced("B", 1, 30), _priced("C", 1, 30)])
    assert spread == []

    [single] = check_cost_distribution([_priced("Cold Mix Asphalt", 0.044, 9500, unit="cum")])
    assert (single.code, single.severity, single.material) == ("COST_OUTLIER", "high", "Cold Mix Asphalt")
    assert single.message == "100.0% of intervention cost"

    assert check_cost_distribution([]) == []
    assert check_cost_distribution([_priced("Free", 1, 0)]) == []


def test_intervention_total_checks() -> None:
    empty = build_intervention_cost(INTERVENTION, [])
    assert _codes(check_intervention_total(empty)) == {("NON_POSITIVE_TOTAL", "high")}
    huge = build_intervention_cost(INTERVENTION, [_priced("Barrier", 20_000, 3_000, unit="m")])
    assert _codes(check_intervention_total(huge)) == {("LARGE_TOTAL", "medium")}


def test_compliance_score() -> None:
    cost = build_intervention_cost(INTERVENTION, [_priced("Paint", 1, 285), _priced("Primer", 10, 160, unit="litre", official=False)])
    cost.findings.extend(validate_intervention(cost))
    estimate = build_estimate(group_sections([cost]))
    assert compliance_score(estimate) == 50.0
    assert compliance_score(build_estimate([])) == 100.0


def test_schedule_code_lookup() -> None:
    assert lookup_schedule_code("Retro Reflective Sign Board") == "15.1.1"
    assert lookup_schedule_code("Unknown widget") is None
