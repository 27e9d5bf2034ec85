from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from roadcost.cache import PriceCache
from roadcost.live_sources import CatalogItem, best_catalog_match
from roadcost.models import Intervention, MaterialRequirement, StandardMapping
from roadcost.price_resolver import PriceResolver
from roadcost.price_store import PriceStore
from roadcost.reference_data import ReferenceDataset

REFERENCE_RECORDS: List[Dict[str, object]] = [
    {
        "itemName": "Thermoplastic Road Marking Paint",
        "itemCode": "8.1.1",
        "unit": "kg",
        "unitPrice": 285,
        "keywords": ["thermoplastic", "marking paint", "road marking"],
        "specification": "IRC:35-2015 road markings",
    },
    {
        "itemName": "Glass Beads Type A",
        "itemCode": "8.2.1",
        "unit": "kg",
        "unitPrice": 95,
        "keywords": ["glass beads", "drop-on beads"],
    },
    {
        "itemName": "Epoxy Adhesive for Road Studs",
        "itemCode": "8.4.2",
        "unit": "kg",
        "unitPrice": 750,
        "keywords": ["epoxy", "adhesive"],
    },
    {
        "itemName": "GI Pipe Post 50mm",
        "itemCode": "15.3.1",
        "unit": "nos",
        "unitPrice": 1180,
        "keywords": ["gi post", "pipe post"],
    },
    {
        "itemName": "Retroreflective Sheeting Type III",
        "itemCode": "15.2.1",
        "unit": "sqm",
        "unitPrice": 1250,
        "keywords": ["sheeting", "retroreflective"],
        "specification": "IRC:67-2022 Type III high intensity",
    },
    {
        "itemName": "Cold Mix Asphalt",
        "itemCode": "5.3.1",
        "unit": "cum",
        "unitPrice": 9500,
        "keywords": ["cold mix", "asphalt"],
    },
]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeLiveSource:
    """In-memory catalog that records every query."""

    def __init__(self, items: Optional[List[CatalogItem]] = None, name: str = "FAKE_GEM") -> None:
        self.items = list(items or [])
        self.name = name
        self.queries: List[tuple] = []

    def search(self, item_name: str, unit: str) -> Optional[CatalogItem]:
        self.queries.append((item_name, unit))
        return best_catalog_match(self.items, item_name, unit)


@pytest.fixture
def reference() -> ReferenceDataset:
    return ReferenceDataset.from_records(REFERENCE_RECORDS, version="test")


@pytest.fixture
def price_store(tmp_path: Path) -> PriceStore:
    return PriceStore(path=tmp_path / "prices.json")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> PriceCache:
    return PriceCache(ttl_seconds=3600, clock=clock)


@pytest.fixture
def live_source() -> FakeLiveSource:
    return FakeLiveSource(
        [
            CatalogItem(
                item_name="Solar Blinker LED Amber",
                unit="nos",
                unit_price=6500,
                source="GEM",
                item_code="GEM-4471",
                source_url="https://gem.gov.in/item/4471",
            )
        ]
    )


@pytest.fixture
def resolver(reference: ReferenceDataset, price_store: PriceStore, cache: PriceCache, live_source: FakeLiveSource) -> PriceResolver:
    return PriceResolver(reference=reference, store=price_store, cache=cache, live_sources=[live_source])


@pytest.fixture
def marking_intervention() -> Intervention:
    return Intervention(
        section_id="A",
        section_name="Road Markings",
        serial_no=1,
        chainage="10+900 to 11+100",
        side="LHS",
        observation="Faded edge line for about 200m",
        recommendation="Repaint edge line with thermoplastic paint",
        standard_clause="IRC:35-2015 Clause 4.2",
    )


@pytest.fixture
def sign_mapping() -> StandardMapping:
    return StandardMapping(
        section_id="B",
        serial_no=1,
        recommendation="Install speed limit sign",
        standard_code="IRC:67-2022",
        clause="Clause 14.4",
        materials=(
            MaterialRequirement("Retroreflective Sheeting Type III", "600mm sign", 0.28, "sq.m"),
            MaterialRequirement("GI Pipe Post 50mm", "", 1, "Nos."),
        ),
    )
