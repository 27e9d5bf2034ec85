from __future__ import annotations

from roadcost.cache import PriceCache, cache_key
from roadcost.models import PriceResult


def _result(price: float) -> PriceResult:
    return PriceResult(unit_price=price, source="CPWD_SOR", confidence="high", official=True, tier="reference")


def test_cache_key_normalizes() -> None:
    assert cache_key("  Glass Beads ", "Kgs") == ("glass beads", "kg")


def test_exact_and_prefix_hits(cache: PriceCache) -> None:
    cache.put("Thermoplastic Paint", "kg", _result(285))
    assert cache.get("thermoplastic paint", "KG").unit_price == 285
    assert cache.get("Thermoplastic", "kg").unit_price == 285
    assert cache.get("Thermoplastic Paint White", "kg").unit_price == 285
    assert cache.get("Thermoplastic Paint", "litre") is None


def test_entries_expire(cache: PriceCache, clock) -> None:
    cache.put("Primer", "litre", _result(160))
    clock.advance(3599)
    assert cache.get("Primer", "litre") is not None
    clock.advance(2)
    assert cache.get("Primer", "litre") is None
    assert len(cache) == 0


def test_last_write_wins(cache: PriceCache) -> None:
    cache.put("Primer", "litre", _result(160))
    cache.put("Primer", "litre", _result(170))
    assert cache.get("Primer", "litre").unit_price == 170
    cache.clear()
    assert len(cache) == 0


def test_prefix_hits_skip_estimates(cache: PriceCache) -> None:
    estimate = PriceResult(unit_price=500, source="ESTIMATED", confidence="low", official=False, tier="estimate")
    cache.put("GI", "nos", estimate)
    assert cache.get("GI", "nos").unit_price == 500
    assert cache.get("GI Pipe Post 50mm", "nos") is None
