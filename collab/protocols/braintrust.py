"""hybrid_guarded_braintrust: ideate -> rank -> claim check -> elaborate."""

import logging

from collab.aggregate import (
    combine_scores,
    fallback_rankings,
    merge_drafts,
    number_lines,
    parse_rankings,
    score_claims,
    split_sections,
)
from collab.models import (
    AgentTask,
    AggregateResult,
    Mode,
    Outcome,
    PhaseKind,
    PhaseSpec,
    RankedIdea,
    Reduction,
)
from collab.protocols.base import Protocol

logger = logging.getLogger(__name__)

# Verifiers drawn from the non-ranking agents that produced ideas
_MAX_VERIFIERS = 2


def _idea_line(idea: RankedIdea) -> str:
    return f"{idea.title}: {idea.summary}" if idea.summary else idea.title


class GuardedBraintrust(Protocol):
    """Brainstorm breadth with a validated_consensus style claim check.

    The first agent with ideas ranks the pool; survivors are checked as
    numbered lines; the best combined creativity + verification score is
    elaborated by the agent with the largest output allowance.
    """

    mode = Mode.HYBRID_GUARDED_BRAINTRUST

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._state = "start"
        self._ideas: Reduction | None = None
        self._ranker: str | None = None
        self._survivors: list[RankedIdea] = []
        self._verification: Reduction | None = None
        self._scores: list[tuple[RankedIdea, float]] = []
        self._elaborators: list[str] = []
        self._elaboration: AgentTask | None = None
        self._idea_result: AggregateResult | None = None

    @property
    def survivors(self) -> list[RankedIdea]:
        return list(self._survivors)

    @property
    def scores(self) -> list[tuple[RankedIdea, float]]:
        return list(self._scores)

    def next_phase(self, last: AggregateResult | None) -> PhaseSpec | None:
        if self._state == "start":
            self._state = "ideating"
            return self._phase(PhaseKind.DRAFT, "ideate", self.agent_ids, "ideate")

        if self._state == "ideating":
            self._idea_result = last
            self._ideas = merge_drafts(last, "Idea set", max_chars=self.context_chars)
            authors = list(self._ideas.scalars["labels"].values())
            if not authors:
                self._state = "done"
                return None
            self._ranker = authors[0]
            self._elaborators = self._by_token_limit(authors)[:2]
            self._state = "ranking"
            return self._phase(
                PhaseKind.VOTE, "rank", [self._ranker], "rank",
                min_success=0,
                ideas=self._ideas.context,
            )

        if self._state == "ranking":
            if last.succeeded:
                self._survivors = parse_rankings(last.succeeded[0].text or "")
            if not self._survivors:
                logger.warning("No ranking parsed, shortlisting the first idea of each set")
                self._survivors = fallback_rankings(self._idea_result)
            if not self._survivors:
                self._state = "done"
                return None
            authors = list(self._ideas.scalars["labels"].values())
            verifiers = [a for a in authors if a != self._ranker][:_MAX_VERIFIERS] or [self._ranker]
            numbered, _ = number_lines("\n".join(_idea_line(idea) for idea in self._survivors))
            self._state = "verifying"
            return self._phase(PhaseKind.VERIFY, "verify", verifiers, "verify", numbered=numbered)

        if self._state == "verifying":
            self._verification = score_claims(last, len(self._survivors), self.flag_threshold)
            self._scores = combine_scores(self._survivors, self._verification)
            logger.info(
                "Braintrust scores: %s",
                ", ".join(f"{idea.title} {score:.2f}" for idea, score in self._scores),
            )
            self._state = "elaborating"
            return self._elaborate_phase("elaborate", self._elaborators[0], min_success=0)

        if self._state == "elaborating":
            if last.succeeded:
                self._elaboration = last.succeeded[0]
                self._state = "done"
                return None
            if len(self._elaborators) < 2:
                self._state = "done"
                return None
            logger.warning("Elaboration by %s failed, falling back to %s", self._elaborators[0], self._elaborators[1])
            self._state = "fallback"
            return self._elaborate_phase("elaborate_fallback", self._elaborators[1], min_success=1)

        if self._state == "fallback":
            if last.succeeded:
                self._elaboration = last.succeeded[0]
            self._state = "done"
            return None

        return None

    def _elaborate_phase(self, name: str, agent_id: str, min_success: int) -> PhaseSpec:
        scores = "\n".join(
            f"{n}. {_idea_line(idea)} (creativity {idea.score:g}/10, combined {score:.2f})"
            for n, (idea, score) in enumerate(self._scores, start=1)
        )
        return self._phase(
            PhaseKind.SYNTHESIZE, name, [agent_id], "elaborate",
            min_success=min_success,
            scores=scores,
            winner=_idea_line(self._scores[0][0]),
        )

    def finalize(self, forced: bool = False) -> Outcome:
        if self._elaboration is not None:
            content, rationale = split_sections(self._elaboration.text or "", "FINAL SOLUTION", "SUPPORTING EVIDENCE")
            return Outcome(content=content, rationale=rationale)

        ranked = [idea for idea, _ in self._scores] or self._survivors
        if ranked:
            rationale = None
            if self._scores:
                rationale = "\n".join(f"{idea.title}: combined score {score:.2f}" for idea, score in self._scores)
            return Outcome(
                content=_idea_line(ranked[0]),
                rationale=rationale,
                degraded=True,
                note="Elaboration unavailable; returning the top shortlisted idea.",
            )

        if self._ideas is not None and self._ideas.context:
            return Outcome(content=self._ideas.context, degraded=True, note="No idea was shortlisted.")

        return Outcome(content="", degraded=True, note="No agent produced ideas.")
