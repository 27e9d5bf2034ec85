from __future__ import annotations

from pathlib import Path

import pytest

from roadcost.errors import ConfigError
from roadcost.reference_data import ReferenceDataset, extract_standard_codes


def test_bundled_dataset_loads() -> None:
    dataset = ReferenceDataset.load()
    info = dataset.version_info()
    assert info["records"] == len(dataset) > 0
    assert info["version"]
    assert "kg" in info["units"]


def test_exact_match_is_high(reference: ReferenceDataset) -> None:
    match = reference.lookup("glass beads type a", "Kgs")
    assert match is not None
    assert match.match_type == "exact"
    assert match.confidence == "high"
    assert match.unit_price == 95
    assert match.source_url.endswith("8.2.1")


def test_keyword_match_is_medium(reference: ReferenceDataset) -> None:
    match = reference.lookup("Road Marking Thermoplastic", "kg")
    assert match is not None
    assert match.match_type == "keyword"
    assert match.confidence == "medium"
    assert match.item_name == "Thermoplastic Road Marking Paint"
    assert match.standard_refs == ("IRC:35-2015",)


def test_partial_match_is_low(reference: ReferenceDataset) -> None:
    match = reference.lookup("50mm clamp", "nos")
    assert match is not None
    assert match.match_type == "partial"
    assert match.confidence == "low"
    assert match.item_name == "GI Pipe Post 50mm"


def test_unit_must_match(reference: ReferenceDataset) -> None:
    assert reference.lookup("Glass Beads Type A", "nos") is None


def test_same_unit_median_takes_middle_index(reference: ReferenceDataset) -> None:
    assert reference.same_unit_prices("kg") == [95, 285, 750]
    assert reference.same_unit_median("kg") == 285
    assert reference.same_unit_median("pair") is None


def test_similar_items(reference: ReferenceDataset) -> None:
    similar = reference.similar_items("Glass Beads Type B", "kg")
    assert list(similar["ITEM_NAME"]) == ["Glass Beads Type A"]
    assert reference.similar_items("XY", "kg").empty


def test_csv_override(tmp_path: Path) -> None:
    path = tmp_path / "rates.csv"
    path.write_text("itemName,unit,unitPrice,keywords\nKerb Paint,kg,210,kerb;paint\nBad,kg,,\n", encoding="utf-8")
    dataset = ReferenceDataset.load(path)
    assert len(dataset) == 1
    assert dataset.lookup("kerb paint", "kg").unit_price == 210


def test_missing_or_malformed_dataset(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        ReferenceDataset.load(tmp_path / "missing.json")
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        ReferenceDataset.load(broken)


def test_extract_standard_codes() -> None:
    text = "As per IRC:35-2015 and IRC SP:84-2019; see also IRC: 35 - 2015"
    assert extract_standard_codes(text) == ["IRC:35-2015", "IRC:SP:84-2019"]
    assert extract_standard_codes(None) == []


def test_same_unit_median_even_count_takes_upper_value() -> None:
    dataset = ReferenceDataset.from_records(
        [
            {"itemName": "Paver Blocks", "unit": "sqm", "unitPrice": 650},
            {"itemName": "Retroreflective Sheeting", "unit": "sqm", "unitPrice": 1250},
        ]
    )
    assert dataset.same_unit_median("sq.m") == 1250
