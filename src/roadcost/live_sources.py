"""Live price catalogs consulted after the offline tiers miss."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from .errors import ConfigError, TransientSourceError
from .retry import CircuitBreaker, CircuitBreakerOpen, RetryPolicy, execute_with_retry
from .units import normalize_unit

LOGGER = logging.getLogger(__name__)

MIN_TOKEN_OVERLAP = 0.5
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class CatalogItem:
    item_name: str
    unit: str
    unit_price: float
    source: str
    item_code: Optional[str] = None
    source_url: Optional[str] = None
    specification: Optional[str] = None


class LivePriceSource(Protocol):
    name: str

    def search(self, item_name: str, unit: str) -> Optional[CatalogItem]:
        ...


def _tokens(text: str) -> List[str]:
    return [token for token in str(text or "").lower().split() if len(token) > 2]


def token_overlap(query: str, candidate: str) -> float:
    """Share of the query's significant tokens found in ``candidate``."""
    tokens = _tokens(query)
    if not tokens:
        return 0.0
    target = str(candidate or "").lower()
    return sum(1 for token in tokens if token in target) / len(tokens)


def best_catalog_match(items: Iterable[CatalogItem], item_name: str, unit: str) -> Optional[CatalogItem]:
    canonical = normalize_unit(unit)
    best: Optional[CatalogItem] = None
    best_score = 0.0
    for item in items:
        if normalize_unit(item.unit) != canonical or item.unit_price <= 0:
            continue
        score = token_overlap(item_name, item.item_name)
        if score >= MIN_TOKEN_OVERLAP and score > best_score:
            best, best_score = item, score
    return best


def _parse_items(payload: object, default_source: str) -> List[CatalogItem]:
    if isinstance(payload, dict):
        payload = payload.get("items") or payload.get("prices") or payload.get("rates") or []
    items: List[CatalogItem] = []
    for entry in payload if isinstance(payload, list) else []:
        if not isinstance(entry, dict):
            continue
        name = entry.get("itemName") or entry.get("item_name") or entry.get("name")
        price = entry.get("unitPrice", entry.get("unit_price", entry.get("price")))
        try:
            value = float(price)
        except (TypeError, ValueError):
            continue
        if not name:
            continue
        items.append(
            CatalogItem(
                item_name=str(name),
                unit=normalize_unit(entry.get("unit")),
                unit_price=value,
                source=str(entry.get("source") or default_source),
                item_code=entry.get("itemCode") or entry.get("item_code"),
                source_url=entry.get("sourceUrl") or entry.get("source_url"),
                specification=entry.get("specification") or entry.get("description"),
            )
        )
    return items


def _retry_after(error: HTTPError) -> Optional[float]:
    header = error.headers.get("Retry-After") if error.headers else None
    if not header:
        return None
    try:
        return float(header)
    except ValueError:
        return None


def _read_json(request: Request, timeout: float) -> object:
    try:
        with urlopen(request, timeout=timeout) as response:
            body = response.read().decode("utf-8", errors="ignore")
    except HTTPError as exc:
        if exc.code in RETRYABLE_STATUS:
            raise TransientSourceError(f"HTTP {exc.code} from {request.full_url}", retry_after=_retry_after(exc)) from exc
        raise
    except (URLError, TimeoutError, ConnectionError) as exc:
        raise TransientSourceError(f"{request.full_url}: {exc}") from exc
    return json.loads(body) if body.strip() else []


class HttpCatalogSource:
    """JSON catalog endpoint queried as ``GET <url>?q=<name>&unit=<unit>``."""

    def __init__(self, url: str, policy: Optional[RetryPolicy] = None, name: Optional[str] = None, reader=_read_json) -> None:
        self.url = url
        self.name = name or url
        self.policy = policy or RetryPolicy()
        self._breaker = CircuitBreaker(self.policy.circuit_breaker_failures)
        self._reader = reader

    def search(self, item_name: str, unit: str) -> Optional[CatalogItem]:
        query = urlencode({"q": item_name, "unit": normalize_unit(unit)})
        separator = "&" if "?" in self.url else "?"
        request = Request(f"{self.url}{separator}{query}", headers={"User-Agent": "Mozilla/5.0", "Accept": "application/json"})
        try:
            payload = execute_with_retry(
                lambda timeout: self._reader(request, timeout),
                policy=self.policy,
                description=f"catalog lookup {self.name}",
                logger=LOGGER,
                breaker=self._breaker,
            )
        except CircuitBreakerOpen:
            LOGGER.error("Circuit breaker open for %s; skipping live lookup", self.name)
            return None
        except TransientSourceError as exc:
            LOGGER.warning("Live source %s unavailable: %s", self.name, exc)
            return None
        except (HTTPError, ValueError) as exc:
            LOGGER.warning("Live source %s returned an unusable response: %s", self.name, exc)
            return None
        return best_catalog_match(_parse_items(payload, self.name), item_name, unit)


class PreIngestedSource:
    """Catalog scraped ahead of time and stored as a JSON file."""

    def __init__(self, items: Sequence[CatalogItem], name: str = "PRE_INGESTED") -> None:
        self.items = list(items)
        self.name = name

    @classmethod
    def load(cls, path: Path, name: Optional[str] = None) -> "PreIngestedSource":
        try:
            with Path(path).open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError as exc:
            raise ConfigError(f"Pre-ingested catalog not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Pre-ingested catalog {path} is not valid JSON: {exc}") from exc
        source_name = name or "PRE_INGESTED"
        items = _parse_items(raw, source_name)
        LOGGER.info("Loaded %d pre-ingested catalog items from %s", len(items), path)
        return cls(items, name=source_name)

    def search(self, item_name: str, unit: str) -> Optional[CatalogItem]:
        return best_catalog_match(self.items, item_name, unit)


__all__ = [
    "CatalogItem",
    "LivePriceSource",
    "HttpCatalogSource",
    "PreIngestedSource",
    "best_catalog_match",
    "token_overlap",
]
