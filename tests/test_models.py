"""Tests for collab/models.py dataclasses."""

from collab.models import (
    AggregateResult,
    CollabRequest,
    CritiqueStyle,
    FinalResult,
    Mode,
    PhaseKind,
    PhaseSpec,
    SessionStatus,
    TaskSpec,
    TaskStatus,
)
from tests.conftest import make_result


def test_mode_values_match_cli_names():
    assert [m.value for m in Mode] == [
        "round_table",
        "sequential_critique_chain",
        "validated_consensus",
        "creative_brainstorm_swarm",
        "hybrid_guarded_braintrust",
    ]
    assert Mode("round_table") is Mode.ROUND_TABLE


def test_collab_request_defaults():
    request = CollabRequest(prompt="Why?", mode="round_table", agents=["claude"])
    assert request.cost_cap_dollars is None
    assert request.global_timeout_ms is None
    assert request.critique_style == CritiqueStyle.BALANCED


def test_phase_spec_agents():
    spec = PhaseSpec(kind=PhaseKind.DRAFT, name="draft", tasks=[TaskSpec("claude", "p"), TaskSpec("gemini", "p")])
    assert spec.agents == ["claude", "gemini"]
    assert spec.min_success == 1
    assert spec.deadline is None


def test_aggregate_result_succeeded_and_cost():
    result = make_result("draft", PhaseKind.DRAFT, {"claude": "yes", "gemini": None})
    result.tasks[0].cost = 0.25
    result.tasks[1].cost = 0.5
    assert [t.agent for t in result.succeeded] == ["claude"]
    assert result.cost == 0.75


def test_empty_aggregate_result():
    result = AggregateResult(phase="vote", kind=PhaseKind.VOTE)
    assert result.succeeded == []
    assert result.cost == 0


def test_final_result_defaults():
    result = FinalResult(session_id="s1", mode=Mode.ROUND_TABLE, status=SessionStatus.PARTIAL, content="")
    assert result.per_agent_trace == []
    assert result.cost_exceeded is False
    assert result.disclaimer is None


def test_status_enums_are_strings():
    assert TaskStatus.TIMED_OUT == "timed_out"
    assert SessionStatus.COMPLETED.value == "completed"
