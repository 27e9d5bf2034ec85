"""
Unit price resolution through an ordered cascade of sources.

Tiers, most authoritative first:

1. in-memory cache (exact key, then same-unit prefix),
2. price store of previously verified official prices,
3. offline reference dataset (exact, keyword, partial match),
4. live catalog sources,
5. estimation (never official).

Every price that is found is compared with the same-unit median of the
reference dataset and capped to the median when it exceeds three times it.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional, Sequence

from .cache import PriceCache
from .errors import NoOfficialRate, PriceEstimationError
from .estimation import ESTIMATED_SOURCE, PriceEstimator, rule_based_price
from .live_sources import LivePriceSource
from .models import PriceResult, SanityAudit
from .price_store import PriceRecord, PriceStore
from .reference_data import ReferenceDataset, extract_standard_codes
from .units import normalize_unit

logger = logging.getLogger(__name__)

SANITY_MULTIPLIER = 3.0

TIER_CACHE = "cache"
TIER_STORE = "store"
TIER_REFERENCE = "reference"
TIER_LIVE = "live"
TIER_ESTIMATE = "estimate"


def sanity_check(price: float, median: Optional[float]) -> SanityAudit:
    """Cap ``price`` to ``median`` when it exceeds three times the median."""
    if median is None:
        return SanityAudit(is_valid=True, reason="No reference data for comparison")
    if price > median * SANITY_MULTIPLIER:
        return SanityAudit(
            is_valid=False,
            reason=f"Original price ₹{price:,.2f} exceeds 3× median, capped to ₹{median:,.2f}",
            original_price=price,
            median=median,
        )
    return SanityAudit(is_valid=True, reason="Within acceptable range", median=median)


class PriceResolver:
    def __init__(
        self,
        reference: Optional[ReferenceDataset] = None,
        store: Optional[PriceStore] = None,
        cache: Optional[PriceCache] = None,
        live_sources: Sequence[LivePriceSource] = (),
        estimator: Optional[PriceEstimator] = None,
        strict: bool = False,
    ) -> None:
        self.reference = reference
        self.store = store if store is not None else PriceStore()
        self.cache = cache if cache is not None else PriceCache()
        self.live_sources = list(live_sources)
        self.estimator = estimator if estimator is not None else PriceEstimator(reference)
        self.strict = strict

    def _median(self, unit: str) -> Optional[float]:
        if self.reference is None:
            return None
        return self.reference.same_unit_median(unit)

    def _checked(self, result: PriceResult, unit: str) -> PriceResult:
        audit = sanity_check(result.unit_price, self._median(unit))
        if audit.is_valid:
            return result
        logger.warning("        sanity => %s: %s", result.item_name, audit.reason)
        return dataclasses.replace(
            result,
            unit_price=audit.median,
            is_valid=False,
            original_price=audit.original_price,
            reason=audit.reason,
        )

    def _remember(self, item_name: str, unit: str, result: PriceResult, persist: bool) -> None:
        self.cache.put(item_name, unit, result)
        if persist:
            # the uncapped price is stored; store hits are sanity-checked again
            price = result.unit_price if result.is_valid or result.original_price is None else result.original_price
            self.store.upsert(
                PriceRecord(
                    item_name=item_name,
                    unit=unit,
                    unit_price=price,
                    source=result.source,
                    item_code=result.item_code,
                    source_url=result.source_url,
                    specification=result.specification,
                    standard_refs=list(result.standard_refs),
                    confidence=result.confidence,
                )
            )

    def resolve(
        self,
        item_name: str,
        unit: str,
        details: str = "",
        category: Optional[str] = None,
        strict: Optional[bool] = None,
    ) -> PriceResult:
        """Resolve a unit price for ``item_name`` per ``unit``.

        Raises :class:`NoOfficialRate` in strict mode when tiers 1-4 all miss.
        ``strict`` overrides the resolver default for this call only.
        """
        canonical = normalize_unit(unit)
        attempted: List[str] = []

        attempted.append(TIER_CACHE)
        cached = self.cache.get(item_name, canonical)
        if cached is not None:
            logger.debug("        cache => %s ₹%.2f", item_name, cached.unit_price)
            return dataclasses.replace(cached, tier=TIER_CACHE, tiers_attempted=tuple(attempted))

        attempted.append(TIER_STORE)
        record = self.store.find(item_name, canonical)
        if record is not None:
            result = self._checked(
                PriceResult(
                    unit_price=record.unit_price,
                    source=record.source,
                    confidence=record.confidence or "high",
                    official=True,
                    tier=TIER_STORE,
                    item_name=record.item_name,
                    item_code=record.item_code,
                    source_url=record.source_url,
                    specification=record.specification,
                    standard_refs=tuple(record.standard_refs),
                    tiers_attempted=tuple(attempted),
                ),
                canonical,
            )
            logger.info("        store => %s ₹%.2f [%s]", item_name, result.unit_price, result.source)
            self._remember(item_name, canonical, result, persist=False)
            return result

        attempted.append(TIER_REFERENCE)
        if self.reference is not None:
            match = self.reference.lookup(item_name, canonical)
            if match is not None:
                result = self._checked(
                    PriceResult(
                        unit_price=match.unit_price,
                        source=match.source,
                        confidence=match.confidence,
                        official=True,
                        tier=TIER_REFERENCE,
                        item_name=match.item_name,
                        item_code=match.item_code,
                        source_url=match.source_url,
                        specification=match.specification or None,
                        standard_refs=match.standard_refs,
                        tiers_attempted=tuple(attempted),
                        notes=f"{match.match_type} match",
                    ),
                    canonical,
                )
                logger.info(
                    "        reference => %s ₹%.2f (%s, %s)",
                    item_name,
                    result.unit_price,
                    match.match_type,
                    match.item_code,
                )
                self._remember(item_name, canonical, result, persist=True)
                return result

        attempted.append(TIER_LIVE)
        for source in self.live_sources:
            item = source.search(item_name, canonical)
            if item is None:
                continue
            result = self._checked(
                PriceResult(
                    unit_price=item.unit_price,
                    source=item.source,
                    confidence="medium",
                    official=True,
                    tier=TIER_LIVE,
                    item_name=item.item_name,
                    item_code=item.item_code,
                    source_url=item.source_url,
                    specification=item.specification,
                    standard_refs=tuple(extract_standard_codes(item.specification)),
                    tiers_attempted=tuple(attempted),
                ),
                canonical,
            )
            logger.info("        live => %s ₹%.2f [%s]", item_name, result.unit_price, source.name)
            self._remember(item_name, canonical, result, persist=True)
            return result

        if (self.strict if strict is None else strict):
            logger.warning("        no official rate => %s per %s", item_name, canonical or "?")
            raise NoOfficialRate(item_name, canonical, attempted)

        attempted.append(TIER_ESTIMATE)
        result = self._checked(self._estimate(item_name, canonical, details, category, tuple(attempted)), canonical)
        self._remember(item_name, canonical, result, persist=False)
        return result

    def _estimate(self, item_name: str, unit: str, details: str, category: Optional[str], attempted: tuple) -> PriceResult:
        try:
            estimate = self.estimator.estimate(item_name, unit, details, category)
        except PriceEstimationError as exc:
            price, basis = rule_based_price(item_name, unit, self.reference, category)
            logger.warning("        estimation failed for %s (%s); using rule-based ₹%.2f", item_name, exc, price)
            return PriceResult(
                unit_price=price,
                source=ESTIMATED_SOURCE,
                confidence="very-low",
                official=False,
                tier=TIER_ESTIMATE,
                item_name=item_name,
                tiers_attempted=attempted,
                notes=f"rule-based emergency fallback: {basis}",
            )
        return PriceResult(
            unit_price=estimate.unit_price,
            source=estimate.source,
            confidence=estimate.confidence,
            official=False,
            tier=TIER_ESTIMATE,
            item_name=item_name,
            tiers_attempted=attempted,
            notes=estimate.reasoning,
        )



__all__ = ["PriceResolver", "sanity_check", "SANITY_MULTIPLIER"]
