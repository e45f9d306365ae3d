"""sequential_critique_chain: each agent amends the previous agent's answer."""

import logging

from collab.aggregate import split_sections, summarize_chain, truncate_text
from collab.models import (
    AgentTask,
    AggregateResult,
    Mode,
    Outcome,
    PhaseKind,
    PhaseSpec,
)
from collab.protocols.base import Protocol

logger = logging.getLogger(__name__)


class CritiqueChain(Protocol):
    """Strictly ordered single-agent phases.

    A failed first agent hands the initial draft to the next one; a failed
    later agent is skipped and the chain carries the last good answer on.
    """

    mode = Mode.SEQUENTIAL_CRITIQUE_CHAIN

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._position = -1
        self._steps: list[AgentTask] = []
        self._summary: AgentTask | None = None
        self._summarizing = False
        self._done = False

    @property
    def latest(self) -> str | None:
        return self._steps[-1].text if self._steps else None

    def next_phase(self, last: AggregateResult | None) -> PhaseSpec | None:
        if self._done:
            return None

        if self._summarizing:
            if last is not None and last.succeeded:
                self._summary = last.succeeded[0]
            self._done = True
            return None

        if last is not None:
            if last.succeeded:
                self._steps.append(last.succeeded[0])
            else:
                logger.warning("Chain step %s produced nothing, keeping previous answer", last.phase)

        self._position += 1
        if self._position < len(self.agent_ids):
            return self._step_phase(self.agent_ids[self._position])

        if not self._steps:
            self._done = True
            return None

        self._summarizing = True
        summarizer = self._steps[-1].agent
        chain = summarize_chain(self._steps, max_chars=self.context_chars // 2)
        return self._phase(
            PhaseKind.SYNTHESIZE, "summary", [summarizer], "summary",
            min_success=0,
            chain=chain.context,
            latest=truncate_text(chain.scalars["latest"], self.context_chars // 2),
        )

    def _step_phase(self, agent_id: str) -> PhaseSpec:
        step = self._position + 1
        if self.latest is None:
            return self._phase(PhaseKind.DRAFT, f"step_{step}_draft", [agent_id], "initial", min_success=0)
        return self._phase(
            PhaseKind.CRITIQUE, f"step_{step}_critique", [agent_id], self.style.value,
            min_success=0,
            previous=truncate_text(self.latest, self.context_chars),
            step=str(step),
        )

    def finalize(self, forced: bool = False) -> Outcome:
        if not self._steps:
            return Outcome(content="", degraded=True, note="No agent in the chain produced an answer.")

        if self._summary is not None:
            content, rationale = split_sections(self._summary.text or "", "FINAL ANSWER", "RATIONALE")
            return Outcome(content=content, rationale=rationale)

        authors = " -> ".join(task.agent for task in self._steps)
        return Outcome(
            content=self.latest or "",
            rationale=f"Revised along the chain {authors}.",
            degraded=True,
            note="Chain summary unavailable; returning the latest revision.",
        )
