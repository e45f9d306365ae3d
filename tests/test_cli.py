"""Tests for CLI agent selection and wiring in collab/cli.py."""

from pathlib import Path
from unittest.mock import AsyncMock

import click
import pytest
from click.testing import CliRunner

from collab.cli import (
    PROVIDER_CLASSES,
    _build_agents,
    _build_all_providers,
    _check_and_filter_agents,
    _determine_agents,
    main,
)
from collab.providers.anthropic import AnthropicProvider
from collab.providers.base import ProviderError
from collab.providers.deepseek import DeepSeekProvider
from collab.providers.xai import XAIProvider
from tests.conftest import MockProvider, make_agent


def test_determine_agents_default(sample_app_config):
    names, panel = _determine_agents(sample_app_config, agents_arg=None, full_flag=False)
    assert names == sample_app_config.defaults.default_panel
    assert panel == "default"


def test_determine_agents_full(sample_app_config):
    names, panel = _determine_agents(sample_app_config, agents_arg=None, full_flag=True)
    assert names == sample_app_config.defaults.full_panel
    assert panel == "full"


def test_determine_agents_custom_string(sample_app_config):
    names, panel = _determine_agents(sample_app_config, agents_arg="claude, openai,", full_flag=False)
    assert names == ["claude", "openai"]
    assert panel == "custom"


def test_determine_agents_list_from_frontmatter(sample_app_config):
    names, panel = _determine_agents(sample_app_config, agents_arg=["gemini", "grok"], full_flag=False)
    assert names == ["gemini", "grok"]
    assert panel == "custom"


def test_determine_agents_overrides_full(sample_app_config):
    """--agents wins over --full."""
    names, panel = _determine_agents(sample_app_config, agents_arg="claude,grok", full_flag=True)
    assert names == ["claude", "grok"]
    assert panel == "custom"


def test_determine_agents_returns_copy(sample_app_config):
    names, _ = _determine_agents(sample_app_config, agents_arg=None, full_flag=False)
    names.append("extra")
    assert "extra" not in sample_app_config.defaults.default_panel


def test_build_agents_carries_model_settings(sample_app_config):
    sample_app_config.models["claude"].input_price_per_mtok = 3.0
    sample_app_config.models["claude"].output_price_per_mtok = 15.0
    sample_app_config.models["claude"].context_chars = 200000
    provider = MockProvider("claude")

    agents = _build_agents(sample_app_config, {"claude": provider})

    agent = agents["claude"]
    assert agent.client is provider
    assert agent.model_id == "claude-sonnet-4-20250514"
    assert agent.timeout_sec == 12
    assert agent.max_tokens == 2048
    assert agent.output_price_per_mtok == 15.0
    assert agent.context_chars == 200000


def test_build_all_providers_uses_sdk_key(sample_app_config, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    providers = _build_all_providers(sample_app_config)
    assert isinstance(providers["claude"], AnthropicProvider)


def test_build_all_providers_skips_unknown_sdk(sample_app_config):
    sample_app_config.models["claude"].sdk = "carrier-pigeon"
    assert _build_all_providers(sample_app_config) == {}


def test_build_all_providers_skips_broken_provider(sample_app_config, monkeypatch):
    """A provider whose constructor raises (missing key) is skipped, not fatal."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    assert _build_all_providers(sample_app_config) == {}


def test_openai_compatible_sdks_registered():
    assert PROVIDER_CLASSES["xai"] is XAIProvider
    assert PROVIDER_CLASSES["deepseek"] is DeepSeekProvider


def test_main_rejects_unknown_mode():
    result = CliRunner().invoke(main, ["A question", "--mode", "free_for_all"])
    assert result.exit_code != 0
    assert "free_for_all" in result.output


def test_main_without_prompt_exits(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(main, ["--skip-health-check"])
    assert result.exit_code == 1
    assert "Provide a PROMPT" in result.output


@pytest.mark.parametrize("flag", ["--help"])
def test_main_help_lists_modes(flag):
    result = CliRunner().invoke(main, [flag])
    assert result.exit_code == 0
    assert "round_table" in result.output
    assert "--cost-cap" in result.output
    assert "--lead" in result.output


def test_check_and_filter_agents_drops_unreachable(monkeypatch):
    pool = {"claude": make_agent(MockProvider("claude")), "grok": make_agent(MockProvider("grok"))}
    pool["grok"].client.complete = AsyncMock(side_effect=ProviderError("grok", "401 invalid key", status_code=401))
    monkeypatch.setattr(click, "confirm", lambda *args, **kwargs: True)

    working = _check_and_filter_agents(pool)

    assert list(working) == ["claude"]
    assert working["claude"] is pool["claude"]


def test_check_and_filter_agents_exits_when_none_answer():
    pool = {"grok": make_agent(MockProvider("grok"))}
    pool["grok"].client.complete = AsyncMock(side_effect=ProviderError("grok", "401 invalid key", status_code=401))

    with pytest.raises(SystemExit) as exc_info:
        _check_and_filter_agents(pool)

    assert exc_info.value.code == 1
