"""Flatten an :class:`EstimateTotal` into tables and write the estimate artifacts."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .aggregator import section_summary
from .models import EstimateTotal, InterventionCost
from .validation import lookup_schedule_code

logger = logging.getLogger(__name__)

AUDIT_COLUMNS = [
    "SECTION_ID",
    "SECTION_NAME",
    "INTERVENTION",
    "LOCATION",
    "RECOMMENDATION",
    "STANDARD",
    "ITEM_NAME",
    "QUANTITY",
    "UNIT",
    "UNIT_PRICE",
    "TOTAL_PRICE",
    "SOURCE",
    "CONFIDENCE",
    "OFFICIAL",
    "ITEM_CODE",
    "SCHEDULE_CODE",
    "SOURCE_URL",
    "SANITY_CAPPED",
    "ORIGINAL_PRICE",
    "DERIVED_QUANTITY",
    "NOTES",
]

FINDING_COLUMNS = ["INTERVENTION", "SEVERITY", "CODE", "MATERIAL", "MESSAGE"]
REVIEW_COLUMNS = ["INTERVENTION", "ITEM_NAME", "UNIT", "REASON"]


def estimate_frame(estimate: EstimateTotal) -> pd.DataFrame:
    """One row per priced material."""
    rows: List[Dict[str, object]] = []
    for cost in estimate.interventions:
        intervention = cost.intervention
        for item in cost.materials:
            rows.append(
                {
                    "SECTION_ID": intervention.section_id,
                    "SECTION_NAME": intervention.section_name,
                    "INTERVENTION": intervention.key,
                    "LOCATION": intervention.location,
                    "RECOMMENDATION": intervention.recommendation,
                    "STANDARD": cost.standard_reference,
                    "ITEM_NAME": item.item_name,
                    "QUANTITY": item.quantity,
                    "UNIT": item.unit,
                    "UNIT_PRICE": item.unit_price,
                    "TOTAL_PRICE": item.total_price,
                    "SOURCE": item.source,
                    "CONFIDENCE": item.confidence,
                    "OFFICIAL": item.official,
                    "ITEM_CODE": item.item_code or "",
                    "SCHEDULE_CODE": item.item_code or lookup_schedule_code(item.item_name) or "",
                    "SOURCE_URL": item.source_url or "",
                    "SANITY_CAPPED": item.sanity is not None and not item.sanity.is_valid,
                    "ORIGINAL_PRICE": item.sanity.original_price if item.sanity is not None else None,
                    "DERIVED_QUANTITY": cost.derived_quantities,
                    "NOTES": item.notes,
                }
            )
    return pd.DataFrame(rows, columns=AUDIT_COLUMNS)


def findings_frame(estimate: EstimateTotal) -> pd.DataFrame:
    rows = [
        {
            "INTERVENTION": cost.intervention.key,
            "SEVERITY": finding.severity,
            "CODE": finding.code,
            "MATERIAL": finding.material or "",
            "MESSAGE": finding.message,
        }
        for cost in estimate.interventions
        for finding in cost.findings
    ]
    return pd.DataFrame(rows, columns=FINDING_COLUMNS)


def review_frame(estimate: EstimateTotal) -> pd.DataFrame:
    rows = [
        {"INTERVENTION": item.intervention, "ITEM_NAME": item.item_name, "UNIT": item.unit, "REASON": item.reason}
        for item in estimate.review
    ]
    return pd.DataFrame(rows, columns=REVIEW_COLUMNS)


def _intervention_dict(cost: InterventionCost) -> Dict[str, object]:
    return {
        "intervention": asdict(cost.intervention),
        "standard_reference": cost.standard_reference,
        "total_cost": cost.total_cost,
        "rationale": cost.rationale,
        "assumptions": list(cost.assumptions),
        "narrative_confidence": cost.narrative_confidence,
        "derived_quantities": cost.derived_quantities,
        "materials": [
            {
                "item_name": item.item_name,
                "quantity": item.quantity,
                "unit": item.unit,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
                "source": item.source,
                "confidence": item.confidence,
                "official": item.official,
                "item_code": item.item_code,
                "source_url": item.source_url,
                "specification": item.specification,
                "sanity": asdict(item.sanity) if item.sanity is not None else None,
                "notes": item.notes,
            }
            for item in cost.materials
        ],
        "unpriced": [{"item_name": item.item_name, "quantity": item.quantity, "unit": item.unit} for item in cost.unpriced],
        "dropped": [asdict(item) for item in cost.dropped],
        "findings": [asdict(finding) for finding in cost.findings],
    }


def estimate_to_dict(estimate: EstimateTotal) -> Dict[str, object]:
    return {
        "total": estimate.total,
        "complete": estimate.complete,
        "compliance_score": estimate.compliance_score,
        "sections": [
            {
                "section_id": section.section_id,
                "section_name": section.section_name,
                "total_cost": section.total_cost,
                "interventions": [_intervention_dict(cost) for cost in section.interventions],
            }
            for section in estimate.sections
        ],
        "review": [asdict(item) for item in estimate.review],
        "failures": list(estimate.failures),
    }


def make_summary_text(estimate: EstimateTotal, top_n: int = 5) -> str:
    items_df = estimate_frame(estimate)
    lines = [f"Estimate total: ₹{estimate.total:,.2f} across {len(estimate.sections)} section(s)."]
    for section in section_summary(estimate):
        lines.append(
            f"  {section['section_id']} {section['section_name']}: ₹{section['total_cost']:,.2f} "
            f"({section['interventions']} intervention(s))"
        )
    if not items_df.empty:
        top = items_df.sort_values("TOTAL_PRICE", ascending=False).head(top_n)[
            ["INTERVENTION", "ITEM_NAME", "QUANTITY", "UNIT", "UNIT_PRICE", "TOTAL_PRICE"]
        ]
        lines.append(f"Top cost drivers:\n{top.to_string(index=False)}")
    lines.append(f"Compliance score: {estimate.compliance_score:.2f}%")
    if not estimate.complete:
        lines.append(
            f"INCOMPLETE: {len(estimate.review)} item(s) need review, {len(estimate.failures)} escalation(s)."
        )
    return "\n".join(lines) + "\n"


def write_outputs(
    estimate: EstimateTotal,
    json_path: Path,
    audit_csv: Path,
    xlsx_path: Optional[Path] = None,
    metadata: Optional[Dict[str, object]] = None,
) -> Dict[str, Path]:
    """Write the JSON tree, the per-material audit CSV and (optionally) the Excel workbook."""
    json_path = Path(json_path)
    audit_csv = Path(audit_csv)
    json_path.parent.mkdir(parents=True, exist_ok=True)
    audit_csv.parent.mkdir(parents=True, exist_ok=True)

    payload = estimate_to_dict(estimate)
    if metadata:
        payload["metadata"] = metadata
    with open(json_path, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False)

    items_df = estimate_frame(estimate)
    items_df.to_csv(audit_csv, index=False)
    written = {"json": json_path, "audit_csv": audit_csv}

    if xlsx_path is not None:
        xlsx_path = Path(xlsx_path)
        xlsx_path.parent.mkdir(parents=True, exist_ok=True)
        with pd.ExcelWriter(xlsx_path, engine="openpyxl") as writer:
            pd.DataFrame(section_summary(estimate)).to_excel(writer, sheet_name="SECTIONS", index=False)
            items_df.to_excel(writer, sheet_name="MATERIALS", index=False)
            findings_frame(estimate).to_excel(writer, sheet_name="FINDINGS", index=False)
            review_frame(estimate).to_excel(writer, sheet_name="REVIEW", index=False)
        written["xlsx"] = xlsx_path

    logger.info("Wrote estimate outputs: %s", ", ".join(str(path) for path in written.values()))
    return written


__all__ = [
    "AUDIT_COLUMNS",
    "estimate_frame",
    "estimate_to_dict",
    "findings_frame",
    "make_summary_text",
    "review_frame",
    "write_outputs",
]
