"""creative_brainstorm_swarm: solo ideation -> fusion -> vote -> expansion."""

import logging

from collab.aggregate import (
    format_labelled,
    fuse_ideas,
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
    TaskSpec,
)
from collab.protocols.base import Protocol

logger = logging.getLogger(__name__)

_HEADING = "Fusion"


class BrainstormSwarm(Protocol):
    mode = Mode.CREATIVE_BRAINSTORM_SWARM

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._state = "start"
        self._ideas: Reduction | None = None
        self._fusions: Reduction | None = None
        self._tally: Reduction | None = None
        self._expanders: list[str] = []
        self._expansion: AgentTask | None = None

    @property
    def fusion_labels(self) -> dict[str, str]:
        return self._fusions.scalars["labels"] if self._fusions else {}

    def votable_for(self, agent_id: str) -> list[str]:
        """Fusion labels the agent may vote for: everything it did not author."""
        return [label for label, author in self.fusion_labels.items() if author != agent_id]

    def next_phase(self, last: AggregateResult | None) -> PhaseSpec | None:
        if self._state == "start":
            self._state = "ideating"
            return self._phase(PhaseKind.DRAFT, "ideate", self.agent_ids, "ideate")

        if self._state == "ideating":
            self._ideas = merge_drafts(last, "Idea set", max_chars=self.context_chars)
            authors = list(self._ideas.scalars["labels"].values())
            if not authors:
                self._state = "done"
                return None
            self._state = "fusing"
            return self._phase(PhaseKind.FUSE, "fuse", authors, "fuse", ideas=self._ideas.context)

        if self._state == "fusing":
            self._fusions = fuse_ideas(last, _HEADING)
            if self._fusions.scalars["rejected"]:
                logger.info("Fusions without two declared sources: %s", self._fusions.scalars["rejected"])
            if self._fusions.decision == "degraded":
                logger.warning("No fusion declared two source ideas, all fusions are votable")
            if not self.fusion_labels:
                self._state = "done"
                return None
            self._state = "voting"
            vote_phase = self._vote_phase()
            if vote_phase is not None:
                return vote_phase
            logger.warning("Nobody can vote without voting for their own fusion, picking by order")
            return self.next_phase(AggregateResult(phase="vote", kind=PhaseKind.VOTE))

        if self._state == "voting":
            candidates = dict(self.fusion_labels)
            self._tally = tally_votes(last, candidates, heading=_HEADING)
            logger.info("Brainstorm vote: %s", self._tally.scalars["counts"])
            winner = self._tally.decision
            self._expanders = [candidates[winner]]
            counts = self._tally.scalars["counts"]
            for label in sorted(candidates, key=lambda label: -counts[label]):
                if candidates[label] not in self._expanders:
                    self._expanders.append(candidates[label])
                    break
            self._state = "expanding"
            return self._expand_phase("expand", self._expanders[0], min_success=0)

        if self._state == "expanding":
            if last.succeeded:
                self._expansion = last.succeeded[0]
                self._state = "done"
                return None
            if len(self._expanders) < 2:
                self._state = "done"
                return None
            logger.warning("Expansion by %s failed, falling back to %s", self._expanders[0], self._expanders[1])
            self._state = "fallback"
            return self._expand_phase("expand_fallback", self._expanders[1], min_success=1)

        if self._state == "fallback":
            if last.succeeded:
                self._expansion = last.succeeded[0]
            self._state = "done"
            return None

        return None

    def _vote_phase(self) -> PhaseSpec | None:
        texts = self._fusions.scalars["texts"]
        voters = list(self._ideas.scalars["labels"].values())
        tasks: list[TaskSpec] = []
        for agent_id in voters:
            votable = self.votable_for(agent_id)
            if not votable:
                continue
            own = [label for label in self.fusion_labels if label not in votable]
            tasks.append(self._task(
                agent_id, "vote",
                fusions=format_labelled(texts, _HEADING, exclude=own, max_chars=self.context_chars),
                labels=", ".join(votable),
            ))
        if not tasks:
            return None
        return PhaseSpec(kind=PhaseKind.VOTE, name="vote", tasks=tasks, min_success=0)

    def _expand_phase(self, name: str, agent_id: str, min_success: int) -> PhaseSpec:
        return self._phase(
            PhaseKind.SYNTHESIZE, name, [agent_id], "expand",
            min_success=min_success,
            fusion=truncate_text(self._fusions.scalars["texts"][self._tally.decision], self.context_chars),
            tally=self._tally.context,
        )

    def finalize(self, forced: bool = False) -> Outcome:
        if self._expansion is not None:
            content, rationale = split_sections(self._expansion.text or "", "FINAL IDEA", "IMPLEMENTATION DETAILS")
            return Outcome(content=content, rationale=rationale)

        if self._tally is not None:
            winner = self._tally.decision
            return Outcome(
                content=self._fusions.scalars["texts"][winner],
                rationale=self._tally.context,
                degraded=True,
                note=f"Expansion unavailable; returning top-voted {_HEADING} {winner}.",
            )

        if self.fusion_labels:
            first = next(iter(self.fusion_labels))
            return Outcome(
                content=self._fusions.scalars["texts"][first],
                degraded=True,
                note="Brainstorm stopped before voting; returning the first fusion.",
            )

        if self._ideas is not None and self._ideas.context:
            return Outcome(
                content=self._ideas.context,
                degraded=True,
                note="No fusion was produced; returning the raw ideas.",
            )

        return Outcome(content="", degraded=True, note="No agent produced ideas.")
