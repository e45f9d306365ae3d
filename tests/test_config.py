"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, EngineConfig, ModelConfig, PromptsConfig, load_config


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    settings = {
        "defaults": {
            "mode": "validated_consensus",
            "output_dir": "./output",
            "default_panel": ["claude"],
            "full_panel": ["claude", "openai"],
        },
        "engine": {
            "global_timeout_sec": 20,
            "flag_threshold": 0.1,
        },
        "models": {
            "claude": {
                "sdk": "anthropic",
                "model": "claude-opus-4-6",
                "api_key_env": "TEST_CLAUDE_KEY",
                "timeout_sec": 12,
                "max_tokens": 8192,
                "context_chars": 150000,
                "pricing": {"input_per_mtok": 15.0, "output_per_mtok": 75.0},
            }
        },
        "prompts": {
            "system": "You are {agent}. {persona}",
            "round_table": {"draft": "{prompt}"},
        },
        "personas": {
            "claude": "You are a Systems Architect.",
        },
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.mode == "validated_consensus"
    assert config.defaults.default_panel == ["claude"]
    assert config.defaults.full_panel == ["claude", "openai"]
    assert isinstance(config.defaults.output_dir, Path)


def test_engine_overrides_and_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.engine.global_timeout_sec == 20
    assert config.engine.flag_threshold == pytest.approx(0.1)
    # Unset keys keep their defaults
    assert config.engine.quorum == 3
    assert config.engine.max_retries == 2
    assert config.engine.cost_cap_dollars == pytest.approx(1.0)


def test_engine_section_optional(tmp_path: Path, minimal_settings):
    raw = yaml.safe_load(minimal_settings.read_text(encoding="utf-8"))
    del raw["engine"]
    path = tmp_path / "no_engine.yaml"
    path.write_text(yaml.dump(raw), encoding="utf-8")
    config = load_config(path)
    assert config.engine == EngineConfig()


def test_load_config_models_with_pricing(minimal_settings):
    config = load_config(minimal_settings)
    claude = config.models["claude"]
    assert isinstance(claude, ModelConfig)
    assert claude.model == "claude-opus-4-6"
    assert claude.input_price_per_mtok == 15.0
    assert claude.output_price_per_mtok == 75.0
    assert claude.base_url is None
    assert claude.context_chars == 150000


def test_load_config_prompts(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.prompts, PromptsConfig)
    assert "{agent}" in config.prompts.system
    assert config.prompts.modes == {"round_table": {"draft": "{prompt}"}}
    assert "Systems Architect" in config.prompts.personas["claude"]


def test_load_config_available_providers_with_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test-key")
    config = load_config(minimal_settings)
    assert "claude" in config.available_providers


def test_load_config_no_available_providers_without_key(minimal_settings, monkeypatch):
    monkeypatch.delenv("TEST_CLAUDE_KEY", raising=False)
    config = load_config(minimal_settings)
    assert "claude" not in config.available_providers


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_shipped_settings_cover_every_mode():
    """The bundled settings.yaml carries templates for all five protocols."""
    config = load_config()
    assert set(config.prompts.modes) == {
        "round_table",
        "sequential_critique_chain",
        "validated_consensus",
        "creative_brainstorm_swarm",
        "hybrid_guarded_braintrust",
    }
    assert config.engine.global_timeout_sec == 13
    assert config.engine.flag_threshold == pytest.approx(0.04)
    assert {m.sdk for m in config.models.values()} == {"anthropic", "google", "openai", "xai", "deepseek"}


def test_context_chars_optional(tmp_path: Path, minimal_settings):
    raw = yaml.safe_load(minimal_settings.read_text(encoding="utf-8"))
    del raw["models"]["claude"]["context_chars"]
    path = tmp_path / "no_context.yaml"
    path.write_text(yaml.dump(raw), encoding="utf-8")
    assert load_config(path).models["claude"].context_chars is None


def test_shipped_settings_set_context_limits():
    config = load_config()
    assert all(m.context_chars for m in config.models.values())
    assert config.models["claude"].context_chars == 200000
