"""
Boundary between the interpretation service and the estimation pipeline.

Upstream records arrive as loosely-typed JSON.  Keys are accepted in the
service's camelCase (``sectionId``, ``ircClause``, ``itemName``/``item``) or
snake_case, normalized, then validated against
``roadcost/data/interpretation.schema.json``.  Records that fail validation
are skipped with a warning; material quantities are coerced and left as
``None`` when they cannot be read as numbers.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from jsonschema import Draft7Validator

from .errors import ConfigError
from .models import Intervention, MaterialRequirement, StandardMapping

LOGGER = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "data" / "interpretation.schema.json"

KEY_ALIASES: Dict[str, str] = {
    "sectionId": "section_id",
    "section": "section_id",
    "sectionName": "section_name",
    "serialNo": "serial_no",
    "serial": "serial_no",
    "sNo": "serial_no",
    "ircClause": "standard_clause",
    "standardClause": "standard_clause",
    "ircCode": "standard_code",
    "standardCode": "standard_code",
    "itemName": "item_name",
    "item": "item_name",
    "name": "item_name",
}

_NUMBER = re.compile(r"^[-+]?\d+(?:\.\d+)?$")


def _load_schema(path: Path = SCHEMA_PATH) -> dict:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Interpretation schema unavailable at {path}: {exc}") from exc


def _validator_for(schema: dict, definition: str) -> Draft7Validator:
    return Draft7Validator({"$ref": f"#/definitions/{definition}", "definitions": schema["definitions"]})


_SCHEMA = _load_schema()
INTERVENTION_VALIDATOR = _validator_for(_SCHEMA, "intervention")
MAPPING_VALIDATOR = _validator_for(_SCHEMA, "mapping")
MATERIAL_VALIDATOR = _validator_for(_SCHEMA, "material")


def normalize_keys(record: Mapping[str, object]) -> Dict[str, object]:
    normalized: Dict[str, object] = {}
    for key, value in record.items():
        target = KEY_ALIASES.get(key, key)
        # snake_case wins when both spellings are present
        if target in normalized and key != target:
            continue
        normalized[target] = value
    return normalized


def coerce_quantity(value: object) -> Optional[float]:
    """Read numbers and numeric strings such as ``"12.5"`` or ``"1,200"``; anything else is None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    text = str(value).replace(",", "").strip()
    if not _NUMBER.match(text):
        return None
    return float(text)


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first_error(validator: Draft7Validator, record: Mapping[str, object]) -> Optional[str]:
    errors = sorted(validator.iter_errors(record), key=lambda error: list(error.path))
    if not errors:
        return None
    error = errors[0]
    location = "/".join(str(part) for part in error.path) or "<record>"
    return f"{location}: {error.message}"


def parse_intervention(record: Mapping[str, object]) -> Optional[Intervention]:
    normalized = normalize_keys(record)
    problem = _first_error(INTERVENTION_VALIDATOR, normalized)
    if problem:
        LOGGER.warning("Skipping intervention record (%s)", problem)
        return None
    return Intervention(
        section_id=_text(normalized.get("section_id")),
        section_name=_text(normalized.get("section_name")),
        serial_no=int(str(normalized.get("serial_no")).strip()),
        chainage=_text(normalized.get("chainage")),
        side=_text(normalized.get("side")),
        road=_text(normalized.get("road")),
        observation=_text(normalized.get("observation")),
        recommendation=_text(normalized.get("recommendation")),
        standard_clause=_text(normalized.get("standard_clause")),
    )


def parse_material(record: Mapping[str, object]) -> Optional[MaterialRequirement]:
    normalized = normalize_keys(record)
    problem = _first_error(MATERIAL_VALIDATOR, normalized)
    if problem:
        LOGGER.warning("Skipping material record (%s)", problem)
        return None
    return MaterialRequirement(
        item_name=_text(normalized.get("item_name")),
        details=_text(normalized.get("details")),
        quantity=coerce_quantity(normalized.get("quantity")),
        unit=_text(normalized.get("unit")),
    )


def parse_mapping(record: Mapping[str, object]) -> Optional[StandardMapping]:
    normalized = normalize_keys(record)
    problem = _first_error(MAPPING_VALIDATOR, normalized)
    if problem:
        LOGGER.warning("Skipping standards mapping record (%s)", problem)
        return None
    materials: List[MaterialRequirement] = []
    for entry in normalized.get("materials") or []:
        material = parse_material(entry)
        if material is not None:
            materials.append(material)
    serial = normalized.get("serial_no")
    return StandardMapping(
        section_id=_text(normalized.get("section_id")),
        serial_no=int(str(serial).strip()) if serial is not None else -1,
        recommendation=_text(normalized.get("recommendation")),
        standard_code=_text(normalized.get("standard_code")),
        clause=_text(normalized.get("clause")),
        specification=_text(normalized.get("specification")),
        materials=tuple(materials),
    )


def parse_interventions(records: Iterable[object]) -> List[Intervention]:
    parsed: List[Intervention] = []
    for record in records:
        if not isinstance(record, Mapping):
            LOGGER.warning("Skipping non-object intervention record: %r", record)
            continue
        intervention = parse_intervention(record)
        if intervention is not None:
            parsed.append(intervention)
    return parsed


def parse_mappings(records: Iterable[object]) -> List[Optional[StandardMapping]]:
    """Parse mappings, keeping a ``None`` placeholder per invalid record so positions still line up."""
    parsed: List[Optional[StandardMapping]] = []
    for record in records:
        if not isinstance(record, Mapping):
            LOGGER.warning("Skipping non-object mapping record: %r", record)
            parsed.append(None)
            continue
        parsed.append(parse_mapping(record))
    return parsed


def _recommendation_key(text: str) -> str:
    return " ".join(text.lower().split())


def match_mappings(
    interventions: Sequence[Intervention],
    mappings: Sequence[Optional[StandardMapping]],
) -> List[Optional[StandardMapping]]:
    """Pair each intervention with a mapping by (section, serial), then recommendation text, then position."""
    by_key: Dict[Tuple[str, int], StandardMapping] = {}
    by_text: Dict[str, StandardMapping] = {}
    for mapping in mappings:
        if mapping is None:
            continue
        if mapping.section_id and mapping.serial_no >= 0:
            by_key.setdefault((mapping.section_id, mapping.serial_no), mapping)
        if mapping.recommendation:
            by_text.setdefault(_recommendation_key(mapping.recommendation), mapping)

    known = {(item.section_id, item.serial_no) for item in interventions}
    matched: List[Optional[StandardMapping]] = []
    for index, intervention in enumerate(interventions):
        mapping = by_key.get((intervention.section_id, intervention.serial_no))
        if mapping is None and intervention.recommendation:
            mapping = by_text.get(_recommendation_key(intervention.recommendation))
        if mapping is None and index < len(mappings):
            candidate = mappings[index]
            # a positional mapping that names another intervention belongs to that one
            if candidate is not None and (candidate.section_id, candidate.serial_no) not in known:
                mapping = candidate
        matched.append(mapping)
    return matched


@dataclass
class InterpretationPayload:
    interventions: List[Intervention] = field(default_factory=list)
    mappings: List[Optional[StandardMapping]] = field(default_factory=list)

    def paired(self) -> List[Tuple[Intervention, Optional[StandardMapping]]]:
        return list(zip(self.interventions, match_mappings(self.interventions, self.mappings)))


def parse_payload(raw: object) -> InterpretationPayload:
    """Accept ``{"interventions": [...], "mappings": [...]}`` or a bare list of interventions."""
    if isinstance(raw, list):
        return InterpretationPayload(interventions=parse_interventions(raw))
    if not isinstance(raw, Mapping):
        raise ConfigError("Interpretation payload must be a JSON object or array")
    interventions = raw.get("interventions") or []
    mappings = raw.get("mappings") or raw.get("standards") or []
    return InterpretationPayload(
        interventions=parse_interventions(interventions),
        mappings=parse_mappings(mappings),
    )


def load_payload(source: Union[str, Path]) -> InterpretationPayload:
    path = Path(source)
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Interpretation payload not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Interpretation payload {path} is not valid JSON: {exc}") from exc
    payload = parse_payload(raw)
    LOGGER.info(
        "Loaded %d intervention(s) and %d mapping(s) from %s",
        len(payload.interventions),
        len([mapping for mapping in payload.mappings if mapping is not None]),
        path,
    )
    return payload


__all__ = [
    "InterpretationPayload",
    "coerce_quantity",
    "load_payload",
    "match_mappings",
    "normalize_keys",
    "parse_intervention",
    "parse_interventions",
    "parse_mapping",
    "parse_mappings",
    "parse_payload",
]
