from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from roadcost.errors import ConfigError
from roadcost.interpretation import (
    coerce_quantity,
    load_payload,
    match_mappings,
    normalize_keys,
    parse_intervention,
    parse_mapping,
    parse_payload,
)
from roadcost.models import Intervention, StandardMapping


def test_normalize_keys_accepts_camel_case() -> None:
    assert normalize_keys({"sectionId": "A", "serialNo": 2, "ircClause": "4.2"}) == {
        "section_id": "A",
        "serial_no": 2,
        "standard_clause": "4.2",
    }
    assert normalize_keys({"section_id": "A", "sectionId": "B"}) == {"section_id": "A"}


@pytest.mark.parametrize(
    "raw, expected",
    [(12, 12.0), ("12.5", 12.5), ("1,200", 1200.0), ("about 5", None), (None, None), (True, None), (float("inf"), None)],
)
def test_coerce_quantity(raw, expected) -> None:
    assert coerce_quantity(raw) == expected


def test_parse_intervention() -> None:
    intervention = parse_intervention(
        {"sectionId": 3, "sectionName": "Signage", "serialNo": " 4 ", "recommendation": "Install sign", "ircClause": "IRC:67"}
    )
    assert intervention == Intervention("3", "Signage", 4, recommendation="Install sign", standard_clause="IRC:67")


def test_invalid_intervention_is_skipped(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="roadcost.interpretation"):
        assert parse_intervention({"sectionId": "A", "serialNo": 1}) is None
        assert parse_intervention({"sectionId": "A", "serialNo": "x", "observation": "faded"}) is None
    assert "Skipping intervention record" in caplog.text


def test_parse_mapping_coerces_materials() -> None:
    mapping = parse_mapping(
        {
            "sectionId": "A",
            "serialNo": 1,
            "ircCode": "IRC:35-2015",
            "clause": "4.2",
            "materials": [
                {"item": "Thermoplastic Paint", "quantity": "576", "unit": "kg"},
                {"itemName": "Primer", "quantity": "some", "unit": "ltr"},
                {"quantity": 3},
            ],
        }
    )
    assert mapping.reference == "IRC:35-2015 - 4.2"
    assert [(m.item_name, m.quantity) for m in mapping.materials] == [("Thermoplastic Paint", 576.0), ("Primer", None)]


def test_match_by_key_text_then_position() -> None:
    interventions = [
        Intervention("A", "", 1, recommendation="Repaint edge line"),
        Intervention("A", "", 2, recommendation="Install studs"),
        Intervention("B", "", 1, recommendation="Fix sign"),
    ]
    mappings = [
        StandardMapping("A", 2, clause="by-key"),
        StandardMapping("", -1, recommendation="repaint  EDGE line", clause="by-text"),
        StandardMapping("", -1, clause="by-position"),
    ]
    matched = match_mappings(interventions, mappings)
    assert [mapping.clause for mapping in matched] == ["by-text", "by-key", "by-position"]


def test_positional_match_skips_mappings_owned_by_other_interventions() -> None:
    interventions = [Intervention("A", "", 1, recommendation="x"), Intervention("A", "", 2, recommendation="y")]
    matched = match_mappings(interventions, [StandardMapping("A", 2, clause="second")])
    assert matched[0] is None
    assert matched[1].clause == "second"


def test_parse_payload_shapes() -> None:
    bare = parse_payload([{"sectionId": "A", "serialNo": 1, "observation": "faded"}, "junk"])
    assert len(bare.interventions) == 1
    assert bare.mappings == []
    with pytest.raises(ConfigError):
        parse_payload("not a payload")


def test_load_payload(tmp_path: Path) -> None:
    path = tmp_path / "payload.json"
    path.write_text(
        json.dumps(
            {
                "interventions": [{"sectionId": "A", "serialNo": 1, "recommendation": "Repaint edge line"}],
                "mappings": [{"sectionId": "A", "serialNo": 1, "materials": [{"item": "Primer", "quantity": 8, "unit": "L"}]}],
            }
        ),
        encoding="utf-8",
    )
    payload = load_payload(path)
    [(intervention, mapping)] = payload.paired()
    assert intervention.key == "A-1"
    assert mapping.materials[0].unit == "L"
    with pytest.raises(ConfigError):
        load_payload(tmp_path / "missing.json")
