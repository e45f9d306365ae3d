"""Shared pytest fixtures."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from collab.executor import PhaseExecutor
from collab.models import (
    Agent,
    AgentTask,
    AggregateResult,
    Completion,
    CompletionParams,
    PhaseKind,
    TaskStatus,
)
from collab.providers.base import AIProvider
from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    EngineConfig,
    ModelConfig,
    PromptsConfig,
    load_config,
)


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because complete is defined in the class body below.
        self.complete = AsyncMock(  # type: ignore[assignment]
            return_value=Completion(text=response_content, token_count=10, cost=0.001, latency_sec=0.01)
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def complete(self, prompt: str, params: CompletionParams) -> Completion:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return Completion(text=self._response_content, token_count=10, cost=0.001)


def scripted(replies: dict[str, str], default: str = "Mock response", delay: float = 0.0, cost: float = 0.001):
    """Side effect answering by phase name prefix (longest match wins)."""

    async def reply(prompt: str, params: CompletionParams) -> Completion:
        if delay:
            await asyncio.sleep(delay)
        matches = [key for key in replies if params.phase.startswith(key)]
        text = replies[max(matches, key=len)] if matches else default
        return Completion(text=text, token_count=10, cost=cost)

    return reply


def make_agent(provider: AIProvider, **overrides) -> Agent:
    fields = dict(
        provider_id=provider.name(),
        model_id="mock-model",
        client=provider,
        timeout_sec=5.0,
        max_tokens=100,
        input_price_per_mtok=0.0,
        output_price_per_mtok=0.0,
    )
    fields.update(overrides)
    return Agent(**fields)


def make_result(phase: str, kind: PhaseKind, outputs: dict[str, str | None]) -> AggregateResult:
    """AggregateResult with one task per agent; None marks a failed task."""
    tasks = [
        AgentTask(
            agent=agent,
            phase=phase,
            prompt="",
            status=TaskStatus.DONE if text is not None else TaskStatus.FAILED,
            text=text,
            error=None if text is not None else "boom",
        )
        for agent, text in outputs.items()
    ]
    return AggregateResult(phase=phase, kind=kind, tasks=tasks)


@pytest.fixture
def prompts() -> PromptsConfig:
    return load_config().prompts


@pytest.fixture
def engine() -> EngineConfig:
    return EngineConfig(global_timeout_sec=5.0, backoff_base_sec=0.01, backoff_max_sec=0.02)


@pytest.fixture
def executor(engine: EngineConfig) -> PhaseExecutor:
    return PhaseExecutor(
        max_in_flight=engine.max_in_flight,
        max_retries=engine.max_retries,
        backoff_base_sec=engine.backoff_base_sec,
        backoff_max_sec=engine.backoff_max_sec,
    )


@pytest.fixture
def sample_app_config(tmp_path: Path, prompts: PromptsConfig) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-20250514",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=12,
        max_tokens=2048,
    )
    return AppConfig(
        defaults=DefaultsConfig(
            mode="round_table",
            output_dir=tmp_path / "output",
            default_panel=["claude", "gemini", "openai"],
            full_panel=["claude", "gemini", "openai", "grok", "deepseek"],
        ),
        engine=EngineConfig(),
        models={"claude": model_cfg},
        prompts=prompts,
        available_providers={"claude"},
    )


@pytest.fixture
def three_mock_providers() -> list[MockProvider]:
    return [MockProvider("alpha", "Answer from alpha"), MockProvider("beta", "Answer from beta"),
            MockProvider("gamma", "Answer from gamma")]


@pytest.fixture
def three_agents(three_mock_providers: list[MockProvider]) -> dict[str, Agent]:
    return {p.name(): make_agent(p) for p in three_mock_providers}
