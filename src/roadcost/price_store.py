"""JSON-file persistence for official prices discovered during estimation."""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import ConfigError
from .units import normalize_unit

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

logger = logging.getLogger(__name__)

StoreKey = Tuple[str, str, str]


def _now() -> str:
    return datetime.now().astimezone().strftime(ISO_FORMAT)


@dataclass
class PriceRecord:
    item_name: str
    unit: str
    unit_price: float
    source: str
    item_code: Optional[str] = None
    source_url: Optional[str] = None
    specification: Optional[str] = None
    standard_refs: List[str] = field(default_factory=list)
    confidence: str = "high"
    last_verified: str = ""
    verification_count: int = 0

    @property
    def key(self) -> StoreKey:
        return (self.item_name.lower().strip(), self.source, normalize_unit(self.unit))


class PriceStore:
    """Official price records keyed by (item name, source, unit).

    ``path=None`` keeps the store in memory only.
    """

    def __init__(self, path: Optional[Path] = None, records: Optional[Dict[StoreKey, PriceRecord]] = None, autosave: bool = True) -> None:
        self.path = path
        self.autosave = autosave
        self._records: Dict[StoreKey, PriceRecord] = dict(records or {})
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: Optional[Path], autosave: bool = True) -> "PriceStore":
        if path is None or not Path(path).exists():
            return cls(path=Path(path) if path else None, autosave=autosave)
        try:
            with Path(path).open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Price store {path} is not valid JSON: {exc}") from exc
        records: Dict[StoreKey, PriceRecord] = {}
        for data in raw.get("prices", []):
            record = PriceRecord(**data)
            record.unit = normalize_unit(record.unit)
            records[record.key] = record
        logger.info("Loaded %d stored prices from %s", len(records), path)
        return cls(path=Path(path), records=records, autosave=autosave)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def records(self) -> List[PriceRecord]:
        with self._lock:
            return list(self._records.values())

    def find(self, item_name: str, unit: str) -> Optional[PriceRecord]:
        """Case-insensitive exact match on name and canonical unit; most recently verified wins."""
        name = str(item_name or "").lower().strip()
        canonical = normalize_unit(unit)
        if not name:
            return None
        with self._lock:
            matches = [
                record
                for (record_name, _source, record_unit), record in self._records.items()
                if record_name == name and record_unit == canonical
            ]
        if not matches:
            return None
        return max(matches, key=lambda record: record.last_verified)

    def upsert(self, record: PriceRecord) -> PriceRecord:
        """Insert or refresh ``record``; repeated upserts of the same price leave one entry."""
        record.unit = normalize_unit(record.unit)
        with self._lock:
            existing = self._records.get(record.key)
            if existing is not None:
                existing.unit_price = record.unit_price
                existing.item_code = record.item_code or existing.item_code
                existing.source_url = record.source_url or existing.source_url
                existing.specification = record.specification or existing.specification
                existing.standard_refs = list(record.standard_refs or existing.standard_refs)
                existing.confidence = record.confidence
                existing.last_verified = record.last_verified or _now()
                existing.verification_count += 1
                stored = existing
            else:
                record.last_verified = record.last_verified or _now()
                self._records[record.key] = record
                stored = record
            if self.autosave and self.path is not None:
                self._write()
        return stored

    def save(self) -> None:
        if self.path is None:
            return
        with self._lock:
            self._write()

    def _write(self) -> None:
        data = {"prices": [asdict(record) for record in self._records.values()]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)


__all__ = ["PriceStore", "PriceRecord", "ISO_FORMAT"]
