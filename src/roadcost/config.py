from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError


_BOOLEAN_TRUE = {"1", "true", "yes", "on"}

DEFAULT_AI_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class Config:
    """Runtime configuration assembled from a settings file, environment variables and CLI options."""

    base_dir: Path
    reference_data: Optional[Path]
    price_store: Optional[Path]
    live_sources: Tuple[str, ...]
    preingested: Optional[Path]
    cache_ttl_hours: float
    strict: bool
    max_workers: int
    output_dir: Path
    output_json: Path
    output_audit: Path
    output_xlsx: Path
    disable_ai: bool
    openai_api_key: Optional[str]
    ai_model: str
    retry_attempts: int
    retry_base_delay: float
    retry_max_delay: float
    http_timeout: float
    defaults_as_failures: bool = False
    settings_file: Optional[Path] = None
    verbose: bool = False


def _to_path(value: object | None) -> Optional[Path]:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser().resolve()
    text = str(value).strip()
    if not text:
        return None
    return Path(text).expanduser().resolve()


def _to_int(value: object | None) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _to_float(value: object | None) -> Optional[float]:
    if value is None:
        return None
    text = str(value).replace("₹", "").replace(",", "").strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _flag(value: object | None) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _BOOLEAN_TRUE


def _to_list(value: object | None) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        items = str(value).split(",")
    return tuple(item.strip() for item in items if item.strip())


def _namespace(cli_args: object | None) -> SimpleNamespace:
    if cli_args is None:
        return SimpleNamespace()
    if isinstance(cli_args, SimpleNamespace):
        return cli_args
    if hasattr(cli_args, "__dict__"):
        return SimpleNamespace(**{k: v for k, v in vars(cli_args).items()})
    return SimpleNamespace()


def load_settings_file(path: Path) -> Dict[str, object]:
    """Read a YAML or JSON settings file whose keys are the environment variable names.

    Keys may also be given in lower case (``roadcost_strict``); values become
    defaults that environment variables and CLI options override.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Settings file unreadable: {path} ({exc})") from exc
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Settings file {path} is malformed: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping, got {type(data).__name__}")
    return {str(key).upper(): value for key, value in data.items()}


def load_config(env: Mapping[str, str], cli_args: object | None = None) -> Config:
    """Build a runtime :class:`Config` from a settings file, environment variables and CLI options."""

    base_dir = Path.cwd().resolve()
    cli_ns = _namespace(cli_args)

    settings_file = _to_path(getattr(cli_ns, "config", None)) or _to_path(env.get("ROADCOST_CONFIG"))
    values: Dict[str, object] = {}
    if settings_file is not None:
        values.update(load_settings_file(settings_file))
    values.update({key: value for key, value in env.items() if value is not None})

    default_output_dir = (base_dir / "outputs").resolve()

    reference_data = _to_path(values.get("ROADCOST_REFERENCE_DATA"))
    price_store = _to_path(values.get("ROADCOST_PRICE_STORE"))
    live_sources = _to_list(values.get("ROADCOST_LIVE_SOURCES"))
    preingested = _to_path(values.get("ROADCOST_PREINGESTED"))
    cache_ttl_hours = _to_float(values.get("ROADCOST_CACHE_TTL_HOURS"))
    if cache_ttl_hours is None:
        cache_ttl_hours = 24.0
    strict = _flag(values.get("ROADCOST_STRICT"))
    max_workers = _to_int(values.get("ROADCOST_MAX_WORKERS")) or 1
    output_dir = _to_path(values.get("ROADCOST_OUTPUT_DIR")) or default_output_dir
    disable_ai = _flag(values.get("DISABLE_OPENAI"))
    openai_api_key = str(values.get("OPENAI_API_KEY") or "").strip() or None
    ai_model = str(values.get("ROADCOST_AI_MODEL") or "").strip() or DEFAULT_AI_MODEL
    retry_attempts = _to_int(values.get("ROADCOST_RETRY_ATTEMPTS")) or 3
    retry_base_delay = _to_float(values.get("ROADCOST_RETRY_BASE_DELAY"))
    if retry_base_delay is None:
        retry_base_delay = 1.0
    retry_max_delay = _to_float(values.get("ROADCOST_RETRY_MAX_DELAY")) or 60.0
    http_timeout = _to_float(values.get("ROADCOST_HTTP_TIMEOUT")) or 10.0
    defaults_as_failures = _flag(values.get("ROADCOST_DEFAULTS_AS_FAILURES"))
    verbose = False

    if getattr(cli_ns, "reference_data", None):
        reference_data = _to_path(cli_ns.reference_data)
    if getattr(cli_ns, "price_store", None):
        price_store = _to_path(cli_ns.price_store)
    if getattr(cli_ns, "live_source", None):
        live_sources = live_sources + _to_list(cli_ns.live_source)
    if getattr(cli_ns, "preingested", None):
        preingested = _to_path(cli_ns.preingested)
    if getattr(cli_ns, "output_dir", None):
        output_dir = _to_path(cli_ns.output_dir) or output_dir
    if getattr(cli_ns, "strict", False):
        strict = True
    if getattr(cli_ns, "max_workers", None) is not None:
        max_workers = int(cli_ns.max_workers)
    if getattr(cli_ns, "disable_ai", False):
        disable_ai = True
    if getattr(cli_ns, "defaults_as_failures", False):
        defaults_as_failures = True
    if getattr(cli_ns, "verbose", False):
        verbose = bool(cli_ns.verbose)

    if openai_api_key is None:
        disable_ai = True

    return Config(
        base_dir=base_dir,
        reference_data=reference_data,
        price_store=price_store,
        live_sources=live_sources,
        preingested=preingested,
        cache_ttl_hours=max(0.0, cache_ttl_hours),
        strict=strict,
        max_workers=max(1, max_workers),
        output_dir=output_dir,
        output_json=(output_dir / "estimate.json").resolve(),
        output_audit=(output_dir / "estimate_audit.csv").resolve(),
        output_xlsx=(output_dir / "estimate.xlsx").resolve(),
        disable_ai=disable_ai,
        openai_api_key=openai_api_key,
        ai_model=ai_model,
        retry_attempts=max(1, retry_attempts),
        retry_base_delay=max(0.0, retry_base_delay),
        retry_max_delay=retry_max_delay,
        http_timeout=http_timeout,
        defaults_as_failures=defaults_as_failures,
        settings_file=settings_file,
        verbose=verbose,
    )


__all__ = ["Config", "load_config", "load_settings_file", "DEFAULT_AI_MODEL"]
