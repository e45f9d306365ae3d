"""round_table: draft -> critique -> vote -> lead synthesis."""

import logging

from collab.aggregate import (
    count_critique_flags,
    format_labelled,
    merge_drafts,
    split_sections,
    tally_votes,
    truncate_text,
)
from collab.models import (
    AgentTask,
    AggregateResult,
    Mode,
    Outcome,
    PhaseKind,
    PhaseSpec,
    Reduction,
)
from collab.protocols.base import Protocol

logger = logging.getLogger(__name__)

_HEADING = "Proposal"


class RoundTable(Protocol):
    """Drafters critique each other, vote, and one agent merges the winner.

    Synthesis goes to lead_agent when it drafted, else to the winning
    author; one fallback synthesis goes to the next agent in line.
    """

    mode = Mode.ROUND_TABLE

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._state = "start"
        self._drafts: Reduction | None = None
        self._flags: dict[str, int] = {}
        self._tally: Reduction | None = None
        self._synthesizers: list[str] = []
        self._synthesis: AgentTask | None = None

    @property
    def _labels(self) -> dict[str, str]:
        return self._drafts.scalars["labels"] if self._drafts else {}

    @property
    def _texts(self) -> dict[str, str]:
        return self._drafts.scalars["texts"] if self._drafts else {}

    def next_phase(self, last: AggregateResult | None) -> PhaseSpec | None:
        if self._state == "start":
            self._state = "drafting"
            return self._phase(PhaseKind.DRAFT, "draft", self.agent_ids, "draft")

        if self._state == "drafting":
            self._drafts = merge_drafts(last, _HEADING)
            if len(self._labels) < 2:
                logger.warning("Round table has %d draft(s), skipping critique and vote", len(self._labels))
                self._state = "done"
                return None
            self._state = "critiquing"
            return self._critique_phase()

        if self._state == "critiquing":
            self._flags = count_critique_flags(last, self._labels)
            self._state = "voting"
            critiques = format_labelled(
                {str(n): task.text or "" for n, task in enumerate(last.succeeded, start=1)},
                "Critique",
                max_chars=self.context_chars // 2,
            )
            return self._phase(
                PhaseKind.VOTE, "vote", list(self._labels.values()), "vote",
                min_success=0,
                drafts=format_labelled(self._texts, _HEADING, max_chars=self.context_chars // 2),
                critiques=critiques or "No critiques were returned.",
                labels=", ".join(self._labels),
            )

        if self._state == "voting":
            self._tally = tally_votes(last, {label: None for label in self._labels}, self._flags, _HEADING)
            logger.info("Round table vote: %s", self._tally.scalars["counts"])
            winner_author = self._labels[self._tally.decision]
            runners_up = sorted(
                (label for label in self._labels if label != self._tally.decision),
                key=lambda label: -self._tally.scalars["counts"][label],
            )
            order = [winner_author] + [self._labels[label] for label in runners_up]
            if self.lead_agent in order:
                order.remove(self.lead_agent)
                order.insert(0, self.lead_agent)
            self._synthesizers = order[:2]
            self._state = "synthesizing"
            return self._synthesis_phase("synthesize", self._synthesizers[0], min_success=0)

        if self._state == "synthesizing":
            if last.succeeded:
                self._synthesis = last.succeeded[0]
                self._state = "done"
                return None
            self._state = "fallback"
            if len(self._synthesizers) < 2:
                self._state = "done"
                return None
            logger.warning("Lead synthesis failed, falling back to %s", self._synthesizers[1])
            return self._synthesis_phase("synthesize_fallback", self._synthesizers[1], min_success=1)

        if self._state == "fallback":
            if last.succeeded:
                self._synthesis = last.succeeded[0]
            self._state = "done"
            return None

        return None

    def _critique_phase(self) -> PhaseSpec:
        """Each drafter critiques every draft but its own."""
        tasks = []
        for label, agent_id in self._labels.items():
            others = [other for other in self._labels if other != label]
            tasks.append(self._task(
                agent_id, "critique",
                drafts=format_labelled(self._texts, _HEADING, exclude=[label], max_chars=self.context_chars),
                labels=", ".join(others),
            ))
        return PhaseSpec(kind=PhaseKind.CRITIQUE, name="critique", tasks=tasks, min_success=0)

    def _synthesis_phase(self, name: str, agent_id: str, min_success: int) -> PhaseSpec:
        winner = self._tally.decision
        return self._phase(
            PhaseKind.SYNTHESIZE, name, [agent_id], "synthesize",
            min_success=min_success,
            winner=winner,
            winning_draft=truncate_text(self._texts[winner], self.context_chars // 2),
            tally=self._tally.context,
            drafts=format_labelled(self._texts, _HEADING, max_chars=self.context_chars // 2),
        )

    def finalize(self, forced: bool = False) -> Outcome:
        if self._synthesis is not None:
            content, rationale = split_sections(self._synthesis.text or "", "FINAL ANSWER", "RATIONALE")
            return Outcome(content=content, rationale=rationale)

        if not self._labels:
            return Outcome(content="", degraded=True, note="No agent produced a draft.")

        if self._tally is not None:
            winner = self._tally.decision
            reasons = self._tally.scalars["reasons"]
            rationale = "\n\n".join(f"{agent}: {text}" for agent, text in reasons.items()) or None
            return Outcome(
                content=self._texts[winner],
                rationale=rationale,
                degraded=True,
                note=f"Synthesis unavailable; returning top-voted {_HEADING} {winner}.",
            )

        # No vote yet: fewest critique flags, then first draft
        order = list(self._labels)
        best = min(order, key=lambda label: (self._flags.get(label, 0), order.index(label)))
        return Outcome(
            content=self._texts[best],
            degraded=True,
            note=f"Round table stopped before voting; returning {_HEADING} {best}.",
        )
