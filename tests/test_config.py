from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from roadcost.config import DEFAULT_AI_MODEL, load_config, load_settings_file
from roadcost.errors import ConfigError


def test_defaults_without_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    cfg = load_config({}, None)
    assert cfg.output_dir == (tmp_path / "outputs").resolve()
    assert cfg.output_json.name == "estimate.json"
    assert cfg.output_audit.name == "estimate_audit.csv"
    assert cfg.cache_ttl_hours == 24.0
    assert cfg.max_workers == 1
    assert cfg.retry_attempts == 3
    assert cfg.ai_model == DEFAULT_AI_MODEL
    assert not cfg.strict
    # no API key => AI collaborators disabled
    assert cfg.disable_ai
    assert cfg.live_sources == ()


def test_environment_values(tmp_path: Path) -> None:
    env = {
        "ROADCOST_REFERENCE_DATA": str(tmp_path / "rates.csv"),
        "ROADCOST_LIVE_SOURCES": "https://a.example/rates.json, https://b.example/rates.json",
        "ROADCOST_STRICT": "yes",
        "ROADCOST_MAX_WORKERS": "4",
        "ROADCOST_CACHE_TTL_HOURS": "0.5",
        "OPENAI_API_KEY": "sk-test",
        "ROADCOST_OUTPUT_DIR": str(tmp_path / "out"),
    }
    cfg = load_config(env, None)
    assert cfg.reference_data == (tmp_path / "rates.csv").resolve()
    assert cfg.live_sources == ("https://a.example/rates.json", "https://b.example/rates.json")
    assert cfg.strict
    assert cfg.max_workers == 4
    assert cfg.cache_ttl_hours == 0.5
    assert not cfg.disable_ai
    assert cfg.output_xlsx == (tmp_path / "out" / "estimate.xlsx").resolve()


def test_settings_file_is_overridden_by_env_and_cli(tmp_path: Path) -> None:
    settings = tmp_path / "roadcost.yaml"
    settings.write_text(
        "roadcost_max_workers: 3\nROADCOST_STRICT: true\nROADCOST_AI_MODEL: gpt-test\nROADCOST_RETRY_ATTEMPTS: 5\n",
        encoding="utf-8",
    )
    env = {"ROADCOST_CONFIG": str(settings), "ROADCOST_RETRY_ATTEMPTS": "2"}
    cli = SimpleNamespace(max_workers=8, disable_ai=True, live_source=["https://c.example/rates.json"])

    cfg = load_config(env, cli)
    assert cfg.settings_file == settings.resolve()
    assert cfg.strict
    assert cfg.ai_model == "gpt-test"
    assert cfg.retry_attempts == 2
    assert cfg.max_workers == 8
    assert cfg.live_sources == ("https://c.example/rates.json",)


def test_cli_config_path_wins_over_env(tmp_path: Path) -> None:
    from_env = tmp_path / "env.json"
    from_env.write_text('{"ROADCOST_MAX_WORKERS": 2}', encoding="utf-8")
    from_cli = tmp_path / "cli.json"
    from_cli.write_text('{"ROADCOST_MAX_WORKERS": 6}', encoding="utf-8")
    cfg = load_config({"ROADCOST_CONFIG": str(from_env)}, SimpleNamespace(config=str(from_cli)))
    assert cfg.max_workers == 6


def test_invalid_numbers_fall_back_to_defaults() -> None:
    cfg = load_config({"ROADCOST_MAX_WORKERS": "many", "ROADCOST_RETRY_BASE_DELAY": "soon"}, None)
    assert cfg.max_workers == 1
    assert cfg.retry_base_delay == 1.0


def test_empty_settings_file(tmp_path: Path) -> None:
    settings = tmp_path / "empty.yaml"
    settings.write_text("", encoding="utf-8")
    assert load_settings_file(settings) == {}


@pytest.mark.parametrize(
    "name, content",
    [
        ("broken.json", "{not json"),
        ("broken.yaml", "key: [unclosed"),
        ("list.yaml", "- one\n- two\n"),
    ],
)
def test_malformed_settings_file(tmp_path: Path, name: str, content: str) -> None:
    settings = tmp_path / name
    settings.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config({"ROADCOST_CONFIG": str(settings)}, None)


def test_missing_settings_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings_file(tmp_path / "absent.yaml")
