from __future__ import annotations

import json
from pathlib import Path
from urllib.error import HTTPError

import pytest

from roadcost.errors import ConfigError, TransientSourceError
from roadcost.live_sources import CatalogItem, HttpCatalogSource, PreIngestedSource, best_catalog_match, token_overlap
from roadcost.retry import RetryPolicy


def test_token_overlap() -> None:
    assert token_overlap("Solar Blinker LED", "solar blinker led amber") == 1.0
    assert token_overlap("Solar Road Stud", "solar blinker") == pytest.approx(1 / 3)
    assert token_overlap("a b", "anything") == 0.0


def test_best_match_filters_unit_and_overlap() -> None:
    items = [
        CatalogItem("Solar Blinker", "nos", 6000, "GEM"),
        CatalogItem("Solar Blinker LED Amber", "nos", 6500, "GEM"),
        CatalogItem("Solar Blinker LED", "set", 9000, "GEM"),
    ]
    assert best_catalog_match(items, "Solar Blinker LED", "Nos").unit_price == 6500
    assert best_catalog_match(items, "Traffic Cone", "nos") is None


def test_http_source_parses_catalog() -> None:
    seen = []

    def reader(request, timeout):
        seen.append((request.full_url, timeout))
        return {"items": [{"itemName": "Traffic Cone 750mm", "unit": "Nos", "unitPrice": "425", "itemCode": "GEM-1"}]}

    source = HttpCatalogSource("https://catalog.test/search", policy=RetryPolicy(timeout_seconds=3), reader=reader)
    item = source.search("Traffic Cone", "nos")
    assert item.unit_price == 425
    assert item.item_code == "GEM-1"
    assert item.source == "https://catalog.test/search"
    assert seen[0][0].startswith("https://catalog.test/search?q=Traffic+Cone")
    assert seen[0][1] == 3


def test_http_source_retries_then_misses() -> None:
    calls = []

    def reader(request, timeout):
        calls.append(timeout)
        raise TransientSourceError("HTTP 503")

    policy = RetryPolicy(max_attempts=2, base_delay=0, jitter=0)
    source = HttpCatalogSource("https://catalog.test/search", policy=policy, reader=reader)
    assert source.search("Traffic Cone", "nos") is None
    assert len(calls) == 2


def test_http_source_treats_client_error_as_miss() -> None:
    def reader(request, timeout):
        raise HTTPError(request.full_url, 404, "Not Found", None, None)

    source = HttpCatalogSource("https://catalog.test/search", reader=reader)
    assert source.search("Traffic Cone", "nos") is None


def test_preingested_source(tmp_path: Path) -> None:
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps([{"name": "Delineator Post Flexible", "unit": "each", "price": 380, "source": "GEM"}]),
        encoding="utf-8",
    )
    source = PreIngestedSource.load(path)
    item = source.search("Flexible Delineator Post", "nos")
    assert item.unit_price == 380
    assert item.source == "GEM"
    with pytest.raises(ConfigError):
        PreIngestedSource.load(tmp_path / "missing.json")
