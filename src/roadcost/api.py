from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .cli import run_estimate
from .config import load_config
from .models import EstimateTotal


@dataclass
class EstimateOptions:
    input_path: Path
    reference_data: Optional[Path] = None
    price_store: Optional[Path] = None
    output_dir: Optional[Path] = None
    strict: bool = False
    max_workers: int = 1
    defaults_as_failures: bool = False
    disable_ai: bool = True


@dataclass
class EstimateRun:
    estimate: EstimateTotal
    artifacts: Dict[str, Path]


def estimate(options: EstimateOptions) -> EstimateRun:
    """Programmatic interface to run the estimator.

    Returns the estimate tree and the written artifact paths (keys: json, audit_csv, xlsx).
    """
    env = dict(os.environ)
    if options.reference_data:
        env["ROADCOST_REFERENCE_DATA"] = str(options.reference_data)
    if options.price_store:
        env["ROADCOST_PRICE_STORE"] = str(options.price_store)
    if options.output_dir:
        env["ROADCOST_OUTPUT_DIR"] = str(options.output_dir)
    if options.strict:
        env["ROADCOST_STRICT"] = "1"
    if options.defaults_as_failures:
        env["ROADCOST_DEFAULTS_AS_FAILURES"] = "1"
    if options.disable_ai:
        env["DISABLE_OPENAI"] = "1"
    env["ROADCOST_MAX_WORKERS"] = str(max(1, options.max_workers))

    cfg = load_config(env, None)
    result, artifacts = run_estimate(cfg, Path(options.input_path))
    return EstimateRun(estimate=result, artifacts=artifacts)


__all__ = ["EstimateOptions", "EstimateRun", "estimate"]
