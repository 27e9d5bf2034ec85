from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
from dotenv import load_dotenv

from .ai import AIClientConfig, ModelClient
from .cache import PriceCache
from .config import Config, load_config
from .estimation import AIPriceAdvisor, PriceEstimator
from .interpretation import load_payload
from .live_sources import HttpCatalogSource, LivePriceSource, PreIngestedSource
from .models import EstimateTotal
from .narrative import OpenAINarrativeGenerator
from .pipeline import EstimatePipeline, PipelineSettings
from .price_resolver import PriceResolver
from .price_store import PriceStore
from .reference_data import ReferenceDataset
from .reporting import make_summary_text, write_outputs
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


def retry_policy(cfg: Config) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=cfg.retry_attempts,
        base_delay=cfg.retry_base_delay,
        max_delay=cfg.retry_max_delay,
        timeout_seconds=cfg.http_timeout,
    )


def build_pipeline(cfg: Config, reference: Optional[ReferenceDataset] = None) -> EstimatePipeline:
    """Wire the resolver tiers, the optional OpenAI collaborators and the pipeline settings from ``cfg``."""
    policy = retry_policy(cfg)
    if reference is None:
        reference = ReferenceDataset.load(cfg.reference_data)
    store = PriceStore.load(cfg.price_store)
    cache = PriceCache(ttl_seconds=cfg.cache_ttl_hours * 3600)

    live_sources: List[LivePriceSource] = [HttpCatalogSource(url, policy=policy) for url in cfg.live_sources]
    if cfg.preingested is not None:
        live_sources.append(PreIngestedSource.load(cfg.preingested))

    advisor = None
    narrative = None
    if not cfg.disable_ai:
        client = ModelClient(AIClientConfig(api_key=cfg.openai_api_key, model=cfg.ai_model), policy=policy)
        advisor = AIPriceAdvisor(client)
        narrative = OpenAINarrativeGenerator(client)

    resolver = PriceResolver(
        reference=reference,
        store=store,
        cache=cache,
        live_sources=live_sources,
        estimator=PriceEstimator(reference, advisor),
        strict=cfg.strict,
    )
    settings = PipelineSettings(
        strict=cfg.strict,
        max_workers=cfg.max_workers,
        defaults_as_failures=cfg.defaults_as_failures,
    )
    return EstimatePipeline(resolver, narrative=narrative, settings=settings)


def run_estimate(cfg: Config, input_path: Path) -> Tuple[EstimateTotal, Dict[str, Path]]:
    """Load the interpretation payload, estimate it and write the artifacts."""
    stage_counter = 0

    def log_stage(message: str) -> None:
        nonlocal stage_counter
        stage_counter += 1
        logger.info("[run:%02d] %s", stage_counter, message)

    def log_detail(message: str) -> None:
        logger.info("        %s", message)

    log_stage("Bootstrapping estimator runtime context")
    log_detail(f"output_dir={cfg.output_dir}")
    log_detail(f"python_version={sys.version.split()[0]} | cwd={Path.cwd()}")
    if cfg.settings_file is not None:
        log_detail(f"settings_file={cfg.settings_file}")

    log_stage(f"Loading interpretation payload from {input_path}")
    payload = load_payload(input_path)

    log_stage("Priming reference data and price sources")
    reference = ReferenceDataset.load(cfg.reference_data)
    log_detail(f"reference_dataset={reference.version_info()}")
    pipeline = build_pipeline(cfg, reference)
    log_detail(
        f"price_store={cfg.price_store or 'in-memory'} | live_sources={len(pipeline.resolver.live_sources)} "
        f"| ai={'off' if cfg.disable_ai else cfg.ai_model}"
    )

    log_stage(f"Estimating {len(payload.interventions)} intervention(s)")
    estimate = pipeline.run(payload.paired())

    log_stage("Persisting estimator outputs to disk")
    metadata = {
        "timestamp": pd.Timestamp.now(tz="UTC").isoformat(),
        "input": str(input_path),
        "reference_dataset": reference.version_info(),
        "strict": cfg.strict,
        "disable_ai": cfg.disable_ai,
    }
    written = write_outputs(estimate, cfg.output_json, cfg.output_audit, cfg.output_xlsx, metadata=metadata)
    log_detail(f"outputs_written => {', '.join(str(path) for path in written.values())}")
    return estimate, written


def run(cfg: Config, input_path: Path) -> int:
    estimate, _ = run_estimate(cfg, input_path)
    print(make_summary_text(estimate))
    # incomplete estimates exit 2 so callers can gate approval on it
    return 0 if estimate.complete else 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Price road-safety audit interventions into a bill of materials")
    parser.add_argument("input", help="Interpretation payload (JSON with interventions and mappings)")
    parser.add_argument("--config", help="YAML or JSON settings file")
    parser.add_argument("--reference-data", help="Reference rate dataset (JSON or CSV)")
    parser.add_argument("--price-store", help="JSON file holding verified official prices")
    parser.add_argument("--live-source", action="append", help="JSON catalog URL (repeatable)")
    parser.add_argument("--preingested", help="Pre-scraped catalog JSON file")
    parser.add_argument("--output-dir", help="Directory for generated outputs")
    parser.add_argument("--strict", action="store_true", help="Leave materials without an official rate unpriced")
    parser.add_argument("--max-workers", type=int, help="Resolve prices of one intervention concurrently")
    parser.add_argument(
        "--defaults-as-failures",
        action="store_true",
        help="Drop derived materials that rely on default dimensions instead of pricing them",
    )
    parser.add_argument("--disable-ai", action="store_true", help="Disable OpenAI price estimates and narratives")
    parser.add_argument("-v", "--verbose", action="store_true", help="Increase logging verbosity")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    load_dotenv()
    runtime_cfg = load_config(os.environ, args)
    log_level = logging.DEBUG if runtime_cfg.verbose else logging.INFO
    logging.basicConfig(level=log_level, format="%(message)s")
    try:
        return run(runtime_cfg, Path(args.input))
    except Exception:
        logger.exception("Fatal error during estimate generation")
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
