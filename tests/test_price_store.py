from __future__ import annotations

import json
from pathlib import Path

from roadcost.price_store import PriceRecord, PriceStore


def test_upsert_is_idempotent(price_store: PriceStore) -> None:
    record = PriceRecord("Glass Beads Type A", "Kg", 95, "CPWD_SOR", item_code="8.2.1")
    price_store.upsert(record)
    price_store.upsert(PriceRecord("Glass Beads Type A", "kg", 95, "CPWD_SOR"))
    assert len(price_store) == 1
    stored = price_store.find("GLASS BEADS TYPE A", "kg")
    assert stored.verification_count == 1
    assert stored.item_code == "8.2.1"


def test_most_recently_verified_wins(price_store: PriceStore) -> None:
    price_store.upsert(PriceRecord("Primer", "litre", 150, "CPWD_SOR", last_verified="2024-01-01T00:00:00+0000"))
    price_store.upsert(PriceRecord("Primer", "litre", 165, "GEM", last_verified="2024-06-01T00:00:00+0000"))
    assert price_store.find("primer", "ltr").unit_price == 165


def test_round_trip_through_file(price_store: PriceStore, tmp_path: Path) -> None:
    price_store.upsert(PriceRecord("Kerb Stones", "m", 420, "CPWD_SOR"))
    raw = json.loads((tmp_path / "prices.json").read_text(encoding="utf-8"))
    assert raw["prices"][0]["item_name"] == "Kerb Stones"
    reloaded = PriceStore.load(tmp_path / "prices.json")
    assert reloaded.find("kerb stones", "metre").unit_price == 420


def test_missing_file_starts_empty(tmp_path: Path) -> None:
    store = PriceStore.load(tmp_path / "absent.json")
    assert len(store) == 0
    assert store.find("anything", "nos") is None
