"""Tests for collab/cost.py."""

import pytest

from collab.cost import CostController, estimate_phase_cost, estimate_tokens, token_cost
from collab.models import PhaseKind, PhaseSpec, TaskSpec
from tests.conftest import MockProvider, make_agent


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_token_cost_per_million():
    assert token_cost(1_000_000, 0, 3.0, 15.0) == pytest.approx(3.0)
    assert token_cost(1000, 2000, 3.0, 15.0) == pytest.approx(0.003 + 0.03)


def test_estimate_phase_cost_assumes_full_output():
    agent = make_agent(MockProvider("alpha"), max_tokens=1000, input_price_per_mtok=0.0, output_price_per_mtok=10.0)
    phase = PhaseSpec(kind=PhaseKind.DRAFT, name="draft", tasks=[TaskSpec("alpha", "x" * 400)])
    assert estimate_phase_cost(phase, {"alpha": agent}) == pytest.approx(0.01)


def test_estimate_phase_cost_covers_one_attempt_per_task():
    agent = make_agent(MockProvider("alpha"), max_tokens=1000, input_price_per_mtok=0.0, output_price_per_mtok=10.0)
    phase = PhaseSpec(kind=PhaseKind.VERIFY, name="verify", tasks=[TaskSpec("alpha", "x"), TaskSpec("alpha", "y")])
    assert estimate_phase_cost(phase, {"alpha": agent}) == pytest.approx(0.02)


def test_reserve_without_cap_always_succeeds():
    ledger = CostController(None)
    assert ledger.reserve(1_000.0)
    assert ledger.reserve(1_000.0)


def test_reserve_refuses_estimate_over_cap():
    ledger = CostController(0.01)
    assert ledger.reserve(0.05) is False
    assert ledger.reserved == 0.0
    assert ledger.realized == 0.0


def test_reserve_counts_realized_spend():
    ledger = CostController(0.10)
    assert ledger.reserve(0.06)
    ledger.reconcile(0.06)
    assert ledger.reserve(0.05) is False
    assert ledger.reserve(0.04)


def test_reconcile_releases_reservation_and_never_goes_negative():
    ledger = CostController(1.0)
    ledger.reserve(0.5)
    ledger.reconcile(0.2)
    assert ledger.reserved == 0.0
    assert ledger.realized == pytest.approx(0.2)
    ledger.reconcile(-5.0)
    assert ledger.realized == pytest.approx(0.2)


def test_refusal_is_logged(caplog):
    ledger = CostController(0.01)
    with caplog.at_level("WARNING"):
        ledger.reserve(0.05)
    assert "Cost gate refused" in caplog.text
