from __future__ import annotations

import json
from pathlib import Path

import pytest

from roadcost.api import EstimateOptions, estimate
from conftest import REFERENCE_RECORDS


def test_estimate_runs_end_to_end(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ROADCOST_CONFIG", raising=False)
    reference = tmp_path / "rates.json"
    reference.write_text(json.dumps({"rates": REFERENCE_RECORDS}), encoding="utf-8")
    payload = tmp_path / "payload.json"
    payload.write_text(
        json.dumps(
            [
                {
                    "sectionId": "A",
                    "sectionName": "Road Markings",
                    "serialNo": 1,
                    "chainage": "10+900 to 11+100",
                    "observation": "Faded edge line for about 200m",
                    "recommendation": "Repaint edge line with thermoplastic paint",
                }
            ]
        ),
        encoding="utf-8",
    )

    run = estimate(
        EstimateOptions(
            input_path=payload,
            reference_data=reference,
            price_store=tmp_path / "prices.json",
            output_dir=tmp_path / "out",
            max_workers=2,
        )
    )

    assert run.estimate.total == 168200.0
    assert run.estimate.complete
    assert set(run.artifacts) == {"json", "audit_csv", "xlsx"}
    assert run.artifacts["json"].parent == (tmp_path / "out").resolve()
    # reference hits are persisted as verified prices
    stored = json.loads((tmp_path / "prices.json").read_text(encoding="utf-8"))
    assert {record["item_name"] for record in stored["prices"]} >= {"Thermoplastic Paint", "Glass Beads Type A"}
