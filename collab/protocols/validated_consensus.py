"""validated_consensus: co-draft, claim check, at most one rewrite, tagged finalize."""

import logging

from collab.aggregate import merge_drafts, number_lines, score_claims, tag_uncertain
from collab.models import (
    AggregateResult,
    Mode,
    Outcome,
    PhaseKind,
    PhaseSpec,
    Reduction,
)
from collab.protocols.base import Protocol

logger = logging.getLogger(__name__)

_CO_DRAFTERS = 2


class ValidatedConsensus(Protocol):
    """The first two agents co-draft, the rest verify.

    With fewer than three agents the drafters verify the merged draft
    themselves. A flagged-line ratio above the threshold triggers one
    rewrite by the lead drafter, which is verified once more; the loop
    never runs twice.
    """

    mode = Mode.VALIDATED_CONSENSUS

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._state = "start"
        self._drafters = self.agent_ids[:_CO_DRAFTERS]
        self._verifiers = self.agent_ids[_CO_DRAFTERS:] or list(self._drafters)
        self._lead: str | None = None
        self._draft: str | None = None
        self._lines: list[str] = []
        self._verification: Reduction | None = None
        self._first_verification: Reduction | None = None
        self._rewritten = False

    @property
    def rewritten(self) -> bool:
        return self._rewritten

    def _set_draft(self, text: str) -> None:
        self._draft = text
        _, self._lines = number_lines(text)
        self._verification = None

    def next_phase(self, last: AggregateResult | None) -> PhaseSpec | None:
        if self._state == "start":
            self._state = "drafting"
            return self._phase(PhaseKind.DRAFT, "co_draft", self._drafters, "draft")

        if self._state == "drafting":
            if not last.succeeded:
                self._state = "done"
                return None
            self._lead = last.succeeded[0].agent
            self._set_draft(last.succeeded[0].text or "")
            if not self.agent_ids[_CO_DRAFTERS:]:
                self._verifiers = [task.agent for task in last.succeeded]
            if len(last.succeeded) < 2:
                logger.warning("Only one co-draft arrived, verifying it without a merge")
                return self._verify_phase("verify")
            self._state = "merging"
            return self._phase(
                PhaseKind.SYNTHESIZE, "merge", [self._lead], "merge",
                min_success=0,
                drafts=merge_drafts(last, "Draft", max_chars=self.context_chars).context,
            )

        if self._state == "merging":
            if last.succeeded:
                self._set_draft(last.succeeded[0].text or "")
            else:
                logger.warning("Merge failed, verifying the lead co-draft")
            return self._verify_phase("verify")

        if self._state == "verifying":
            self._verification = score_claims(last, len(self._lines), self.flag_threshold)
            self._first_verification = self._verification
            ratio = self._verification.scalars["ratio"]
            logger.info(
                "Claim check: %d/%d lines flagged (%.1f%%), threshold %.1f%%",
                len(self._verification.scalars["flagged"]), len(self._lines),
                ratio * 100, self.flag_threshold * 100,
            )
            if self._verification.decision != "rewrite" or not last.succeeded:
                self._state = "done"
                return None
            self._state = "rewriting"
            return self._phase(
                PhaseKind.DRAFT, "rewrite", [self._lead], "rewrite",
                min_success=0,
                draft=number_lines(self._draft)[0],
                flags=self._verification.context,
            )

        if self._state == "rewriting":
            if not last.succeeded:
                logger.warning("Rewrite failed, keeping the flagged draft")
                self._state = "done"
                return None
            self._rewritten = True
            self._set_draft(last.succeeded[0].text or "")
            return self._verify_phase("reverify")

        if self._state == "reverifying":
            self._verification = score_claims(last, len(self._lines), self.flag_threshold)
            self._state = "done"
            return None

        return None

    def _verify_phase(self, name: str) -> PhaseSpec:
        self._state = "reverifying" if name == "reverify" else "verifying"
        numbered, _ = number_lines(self._draft or "")
        return self._phase(PhaseKind.VERIFY, name, self._verifiers, "verify", numbered=numbered)

    def finalize(self, forced: bool = False) -> Outcome:
        if self._draft is None:
            return Outcome(content="", degraded=True, note="Neither co-drafter produced a draft.")

        if self._verification is None or not self._verification.scalars["verifiers"]:
            return Outcome(
                content=self._draft,
                rationale="The draft was not verified.",
                degraded=True,
                note="Verification did not complete; claims are unchecked.",
            )

        flagged = self._verification.scalars["flagged"]
        ratio = self._verification.scalars["ratio"]
        verifiers = self._verification.scalars["verifiers"]
        parts = [
            f"{len(flagged)} of {len(self._lines)} lines flagged ({ratio:.1%}) by {verifiers} verifier(s).",
            f"Confidence: {1 - ratio:.0%}.",
        ]
        if self._rewritten:
            first = self._first_verification.scalars["ratio"]
            parts.append(f"Rewritten once after the first check flagged {first:.1%} of lines.")
        if flagged:
            parts.append(f"Lines marked [uncertain]: {', '.join(str(n) for n in flagged)}.")
            parts.append(self._verification.context)
        return Outcome(content=tag_uncertain(self._lines, flagged), rationale="\n".join(parts))
