"""Budget gate for a single session. Knows nothing about protocols."""

import logging
import math

from collab.models import Agent, PhaseSpec

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough token count: ~4 characters per token."""
    return math.ceil(len(text) / 4)


def token_cost(
    input_tokens: int,
    output_tokens: int,
    input_price_per_mtok: float,
    output_price_per_mtok: float,
) -> float:
    """Dollar cost of one call at per-million-token prices."""
    return (
        input_tokens * input_price_per_mtok + output_tokens * output_price_per_mtok
    ) / 1_000_000


def estimate_phase_cost(phase: PhaseSpec, agents: dict[str, Agent]) -> float:
    """Upper-bound dollar cost of a single attempt per task in the phase.

    Input is estimated from the prompt and system text; output assumes the
    agent uses its whole max_tokens allowance. Retries are not included: a
    failed attempt reports no cost, and reconcile books what the phase
    actually spent.
    """
    total = 0.0
    for task in phase.tasks:
        agent = agents[task.agent]
        total += token_cost(
            estimate_tokens(task.system) + estimate_tokens(task.prompt),
            agent.max_tokens,
            agent.input_price_per_mtok,
            agent.output_price_per_mtok,
        )
    return total


class CostController:
    """Running ledger of reserved and realized spend against an optional cap."""

    def __init__(self, cap: float | None) -> None:
        self.cap = cap
        self.realized = 0.0
        self.reserved = 0.0

    @property
    def projected(self) -> float:
        return self.realized + self.reserved

    def reserve(self, estimate: float) -> bool:
        """Hold estimate against the cap.

        Returns False, reserving nothing, when the projected total would
        exceed the cap. No cap means every reservation succeeds.
        """
        if self.cap is not None and self.projected + estimate > self.cap:
            logger.warning(
                "Cost gate refused $%.4f (realized $%.4f, reserved $%.4f, cap $%.4f)",
                estimate, self.realized, self.reserved, self.cap,
            )
            return False
        self.reserved += estimate
        return True

    def reconcile(self, actual: float) -> None:
        """Release the outstanding reservation and book the actual spend."""
        self.reserved = 0.0
        self.realized += max(actual, 0.0)
        logger.debug("Cost reconciled: +$%.4f, realized $%.4f", actual, self.realized)
