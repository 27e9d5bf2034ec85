"""
Offline schedule-of-rates dataset used as the third pricing tier.

Records are held in a pandas DataFrame with upper-case columns
(``ITEM_NAME``, ``ITEM_CODE``, ``UNIT``, ``UNIT_PRICE``, ``KEYWORDS``,
``DESCRIPTION``, ``SPECIFICATION``, ``SOURCE``, ``SOURCE_URL``).  The bundled
seed lives in ``roadcost/data/reference_rates.json``; a JSON or CSV file with
the same fields may be supplied instead.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .errors import ConfigError
from .units import normalize_unit

logger = logging.getLogger(__name__)

DEFAULT_DATASET_PATH = Path(__file__).resolve().parent / "data" / "reference_rates.json"
DEFAULT_SOURCE = "CPWD_SOR"
SOURCE_URL_TEMPLATE = "https://cpwd.gov.in/SOR/Item/{code}"

COLUMNS = [
    "ITEM_NAME",
    "ITEM_CODE",
    "UNIT",
    "UNIT_PRICE",
    "KEYWORDS",
    "DESCRIPTION",
    "SPECIFICATION",
    "SOURCE",
    "SOURCE_URL",
]

_FIELD_MAP = {
    "itemName": "ITEM_NAME",
    "item_name": "ITEM_NAME",
    "itemCode": "ITEM_CODE",
    "item_code": "ITEM_CODE",
    "unit": "UNIT",
    "unitPrice": "UNIT_PRICE",
    "unit_price": "UNIT_PRICE",
    "keywords": "KEYWORDS",
    "description": "DESCRIPTION",
    "specification": "SPECIFICATION",
    "source": "SOURCE",
    "sourceUrl": "SOURCE_URL",
    "source_url": "SOURCE_URL",
}

SIMILAR_STOPWORDS = {"grade", "type", "for", "and", "the", "with"}

_STANDARD_CODE_PATTERN = re.compile(
    r"IRC[\s:]*(?:SP\s*:?\s*\d{1,3}\s*[-–]\s*\d{4}|\d{1,3}\s*[-–]\s*\d{4})",
    re.IGNORECASE,
)


def extract_standard_codes(text: Optional[str]) -> List[str]:
    """Return the distinct IRC codes cited in ``text``, normalized to ``IRC:NN-YYYY``/``IRC:SP:NN-YYYY``."""
    if not text:
        return []
    codes: List[str] = []
    for match in _STANDARD_CODE_PATTERN.finditer(text):
        cleaned = re.sub(r"\s+", "", match.group(0)).replace("–", "-").upper()
        body = cleaned[3:].lstrip(":")
        if body.startswith("SP"):
            body = "SP:" + body[2:].lstrip(":")
        code = f"IRC:{body}"
        if code not in codes:
            codes.append(code)
    return codes


@dataclass(frozen=True)
class ReferenceMatch:
    """A dataset record matched for a query, with the match strength."""

    item_name: str
    item_code: Optional[str]
    unit: str
    unit_price: float
    match_type: str
    confidence: str
    source: str = DEFAULT_SOURCE
    source_url: Optional[str] = None
    description: str = ""
    specification: str = ""
    standard_refs: Tuple[str, ...] = ()


def _keywords(value: object) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, float) and np.isnan(value):
        return ()
    if isinstance(value, str):
        parts = re.split(r"[;|]", value)
    else:
        parts = list(value)  # type: ignore[arg-type]
    return tuple(str(part).strip().lower() for part in parts if str(part).strip())


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and np.isnan(value):
        return ""
    return str(value).strip()


def _prepare_frame(records: pd.DataFrame) -> pd.DataFrame:
    frame = records.rename(columns=_FIELD_MAP).copy()
    for column in COLUMNS:
        if column not in frame.columns:
            frame[column] = None
    frame = frame[COLUMNS].copy()
    frame["UNIT_PRICE"] = pd.to_numeric(frame["UNIT_PRICE"], errors="coerce")
    frame = frame.dropna(subset=["ITEM_NAME", "UNIT_PRICE"])
    frame = frame.loc[frame["UNIT_PRICE"] > 0].copy()
    frame["ITEM_NAME"] = frame["ITEM_NAME"].map(_text)
    frame["_NAME"] = frame["ITEM_NAME"].map(lambda name: name.lower())
    frame["_UNIT"] = frame["UNIT"].map(normalize_unit)
    frame["KEYWORDS"] = frame["KEYWORDS"].map(_keywords)
    frame["SOURCE"] = frame["SOURCE"].map(lambda value: _text(value) or DEFAULT_SOURCE)
    return frame.reset_index(drop=True)


def _query_terms(item_name: str) -> List[str]:
    return [term for term in str(item_name or "").lower().split() if term]


class ReferenceDataset:
    """Lookup, median and similarity queries over the offline rate table."""

    def __init__(self, records: pd.DataFrame, version: str = "", effective: str = "", path: Optional[Path] = None) -> None:
        self.frame = _prepare_frame(records)
        self.version = version
        self.effective = effective
        self.path = path

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, object]], version: str = "") -> "ReferenceDataset":
        return cls(pd.DataFrame(list(records)), version=version)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ReferenceDataset":
        """Load the dataset from ``path`` (JSON or CSV) or the bundled seed."""
        source = Path(path) if path else DEFAULT_DATASET_PATH
        if not source.exists():
            raise ConfigError(f"Reference dataset not found: {source}")
        if source.suffix.lower() == ".csv":
            frame = pd.read_csv(source)
            dataset = cls(frame, version=source.stem, path=source)
        else:
            try:
                with source.open("r", encoding="utf-8") as f:
                    raw = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Reference dataset {source} is not valid JSON: {exc}") from exc
            rates = raw.get("rates", []) if isinstance(raw, dict) else raw
            version = raw.get("version", "") if isinstance(raw, dict) else ""
            effective = raw.get("effective", "") if isinstance(raw, dict) else ""
            dataset = cls(pd.DataFrame(rates), version=version, effective=effective, path=source)
        logger.info("Loaded %d reference rates from %s", len(dataset), source)
        return dataset

    def __len__(self) -> int:
        return len(self.frame)

    def version_info(self) -> Dict[str, object]:
        units = sorted(set(self.frame["_UNIT"])) if len(self.frame) else []
        return {
            "version": self.version,
            "effective": self.effective,
            "records": len(self.frame),
            "units": units,
            "path": str(self.path) if self.path else None,
        }

    def _same_unit(self, unit: str) -> pd.DataFrame:
        return self.frame.loc[self.frame["_UNIT"] == normalize_unit(unit)]

    def _to_match(self, row: pd.Series, match_type: str, confidence: str) -> ReferenceMatch:
        code = _text(row["ITEM_CODE"]) or None
        url = _text(row["SOURCE_URL"]) or (SOURCE_URL_TEMPLATE.format(code=code) if code else None)
        specification = _text(row["SPECIFICATION"])
        return ReferenceMatch(
            item_name=row["ITEM_NAME"],
            item_code=code,
            unit=row["_UNIT"],
            unit_price=float(row["UNIT_PRICE"]),
            match_type=match_type,
            confidence=confidence,
            source=row["SOURCE"],
            source_url=url,
            description=_text(row["DESCRIPTION"]),
            specification=specification,
            standard_refs=tuple(extract_standard_codes(specification)),
        )

    def lookup(self, item_name: str, unit: str) -> Optional[ReferenceMatch]:
        """Exact name (high), keyword overlap (medium), partial name (low); unit must match."""
        pool = self._same_unit(unit)
        if pool.empty or not item_name:
            return None
        name = str(item_name).lower().strip()

        exact = pool.loc[pool["_NAME"] == name]
        if not exact.empty:
            match = self._to_match(exact.iloc[0], "exact", "high")
            logger.debug("        reference exact => %s (%s)", match.item_name, match.item_code)
            return match

        terms = [term for term in _query_terms(name) if len(term) > 2]
        if terms:
            scores = pool["KEYWORDS"].map(
                lambda keywords: sum(1 for term in terms if any(term in keyword for keyword in keywords))
            )
            best = int(scores.max()) if len(scores) else 0
            if best > 0:
                # idxmax keeps the first record on ties.
                match = self._to_match(pool.loc[scores.idxmax()], "keyword", "medium")
                logger.debug("        reference keyword => %s (%s) score=%d", match.item_name, match.item_code, best)
                return match

        long_terms = [term for term in _query_terms(name) if len(term) > 3]
        for _, row in pool.iterrows():
            if any(term in row["_NAME"] for term in long_terms):
                match = self._to_match(row, "partial", "low")
                logger.debug("        reference partial => %s (%s)", match.item_name, match.item_code)
                return match
        return None

    def same_unit_prices(self, unit: str) -> List[float]:
        return sorted(float(price) for price in self._same_unit(unit)["UNIT_PRICE"])

    def same_unit_median(self, unit: str) -> Optional[float]:
        """Same-unit price at ``sorted[n // 2]`` (the upper median for even n), or None."""
        prices = self.same_unit_prices(unit)
        if not prices:
            return None
        return prices[len(prices) // 2]

    def similar_items(self, item_name: str, unit: str, limit: int = 3) -> pd.DataFrame:
        """Same-unit records whose name contains one of the query's first significant words."""
        pool = self._same_unit(unit)
        words = [
            word
            for word in _query_terms(item_name)
            if len(word) > 3 and word not in SIMILAR_STOPWORDS
        ][:limit]
        if pool.empty or not words:
            return pool.iloc[0:0]
        mask = pool["_NAME"].map(lambda name: any(word in name for word in words))
        return pool.loc[mask]


__all__ = [
    "ReferenceDataset",
    "ReferenceMatch",
    "extract_standard_codes",
    "DEFAULT_DATASET_PATH",
]
