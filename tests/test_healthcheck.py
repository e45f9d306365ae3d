"""Unit tests for collab/healthcheck.py, no real API calls."""

import asyncio
from unittest.mock import AsyncMock

from collab.healthcheck import run_health_checks
from collab.models import Completion
from collab.providers.base import ProviderError
from tests.conftest import MockProvider, make_agent


def _ok() -> Completion:
    return Completion(text="OK", token_count=1, cost=0.0)


def _pool(*names: str) -> dict:
    return {name: make_agent(MockProvider(name), max_tokens=2048, timeout_sec=3.0) for name in names}


async def test_all_agents_pass():
    """All agents answer -> all marked ok, no errors."""
    agents = _pool("claude", "gemini")
    for agent in agents.values():
        agent.client.complete = AsyncMock(return_value=_ok())

    results = await run_health_checks(agents)

    assert results["claude"] == (True, "")
    assert results["gemini"] == (True, "")


async def test_ping_uses_agent_settings():
    agents = _pool("claude")
    agents["claude"].client.complete = AsyncMock(return_value=_ok())

    await run_health_checks(agents)

    params = agents["claude"].client.complete.call_args.args[1]
    assert params.phase == "healthcheck"
    assert params.max_tokens == 16
    assert params.timeout_sec <= 3.0
    # The pool itself keeps its allowance
    assert agents["claude"].max_tokens == 2048


async def test_one_agent_fails():
    """An agent that raises returns ok=False with the error message."""
    agents = _pool("claude", "grok")
    agents["claude"].client.complete = AsyncMock(return_value=_ok())
    agents["grok"].client.complete = AsyncMock(side_effect=ProviderError("grok", "403 Forbidden", status_code=403))

    results = await run_health_checks(agents)

    assert results["claude"] == (True, "")
    ok, err = results["grok"]
    assert ok is False
    assert "403" in err


async def test_all_agents_fail():
    """All fail -> all marked False."""
    agents = _pool("openai", "deepseek")
    for name, agent in agents.items():
        agent.client.complete = AsyncMock(side_effect=Exception(f"{name} down"))

    results = await run_health_checks(agents)

    for name in agents:
        ok, err = results[name]
        assert ok is False
        assert name in err


async def test_transient_errors_are_not_retried():
    agents = _pool("claude")
    agents["claude"].client.complete = AsyncMock(
        side_effect=ProviderError("claude", "503 overloaded", transient=True, status_code=503)
    )

    results = await run_health_checks(agents)

    assert results["claude"][0] is False
    assert agents["claude"].client.complete.await_count == 1


async def test_empty_pool():
    results = await run_health_checks({})
    assert results == {}


async def test_timeout_counts_as_failure():
    """An agent that hangs past the ping window is marked as failed."""
    agents = _pool("slow")

    async def hang(*args, **kwargs):
        await asyncio.sleep(9999)

    agents["slow"].client.complete = AsyncMock(side_effect=hang)

    results = await run_health_checks(agents, timeout_sec=0.05)

    ok, err = results["slow"]
    assert ok is False
    assert err
