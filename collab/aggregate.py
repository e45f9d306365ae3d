"""Pure reducers over phase results. No I/O, no hidden state.

Labels are assigned in agent order (A, B, C, ...) so the same outputs always
reduce to the same context.
"""

import logging
import re
from collections.abc import Iterable

from collab.models import AggregateResult, AgentTask, RankedIdea, Reduction

logger = logging.getLogger(__name__)

_LABEL_NOUNS = r"(?:proposal|draft|idea|fusion|option)"
_VOTE_LINE_RE = re.compile(rf"VOTE\s*:\s*\**\s*(?:{_LABEL_NOUNS}\s+)?([A-Z])\b", re.IGNORECASE)
_LABEL_MENTION_RE = re.compile(rf"\b{_LABEL_NOUNS}\s+([A-Z])\b", re.IGNORECASE)
_VOTE_KEYWORDS = ("vote", "choose", "select", "prefer", "pick")
_KEYWORD_WINDOW = 50

_CRITIQUE_FLAG_RE = re.compile(
    rf"^\W*FLAG\s+(?:{_LABEL_NOUNS}\s+)?([A-Z])\s*:", re.IGNORECASE | re.MULTILINE
)
_CLAIM_FLAG_RE = re.compile(r"FLAG\s+L(\d+)\s*:\s*(.*)", re.IGNORECASE)
_FUSES_RE = re.compile(r"FUSES\s*:\s*(.+)", re.IGNORECASE)
_RANK_RE = re.compile(
    r"RANK\s*(\d+)\s*:\s*(.+?)\s*\|\s*SCORE\s*:\s*(\d+(?:\.\d+)?)\s*(?:/\s*10)?\s*(?:\|\s*(.*))?$",
    re.IGNORECASE | re.MULTILINE,
)

MAX_RANKED = 5
UNCERTAIN_TAG = "[uncertain]"

# Context budget for models that do not declare one
DEFAULT_CONTEXT_CHARS = 50_000
_HEAD_SHARE = 0.3


def label_for(index: int) -> str:
    return chr(ord("A") + index)


def truncate_text(text: str, max_chars: int) -> str:
    """Cut text to at most max_chars, keeping its opening and its ending.

    The removed middle is replaced by a marker naming the original length,
    so the result is exactly max_chars long whenever truncation happens.
    """
    if len(text) <= max_chars:
        return text
    marker = f"\n\n[... truncated from {len(text)} characters ...]\n\n"
    room = max_chars - len(marker)
    if room <= 0:
        return text[:max(max_chars, 0)]
    head = int(room * _HEAD_SHARE)
    tail = room - head
    return text[:head] + marker + text[len(text) - tail:]


def fit_texts(texts: dict[str, str], max_total: int) -> dict[str, str]:
    """Shrink every text by the same ratio so the combined length fits max_total."""
    total = sum(len(text) for text in texts.values())
    if total <= max_total:
        return dict(texts)
    ratio = max_total / total
    logger.warning("Context of %d characters exceeds %d, truncating each entry", total, max_total)
    return {key: truncate_text(text, int(len(text) * ratio)) for key, text in texts.items()}


def format_labelled(
    texts: dict[str, str],
    heading: str,
    exclude: Iterable[str] = (),
    max_chars: int | None = None,
) -> str:
    """Render labelled texts as '--- Heading X ---' blocks, skipping excluded labels.

    With max_chars set, the texts are truncated proportionally to fit it.
    """
    skip = set(exclude)
    kept = {label: text for label, text in texts.items() if label not in skip}
    if max_chars is not None:
        kept = fit_texts(kept, max_chars)
    return "\n\n".join(f"--- {heading} {label} ---\n{text}" for label, text in kept.items())


def merge_drafts(result: AggregateResult, heading: str = "Proposal", max_chars: int | None = None) -> Reduction:
    """Label every successful draft and merge them into one context block.

    Returns:
        Reduction whose context is the labelled block, truncated to max_chars
        when given, and whose scalars hold 'labels' (label -> author) and
        'texts' (label -> full draft).
    """
    labels: dict[str, str] = {}
    texts: dict[str, str] = {}
    for index, task in enumerate(result.succeeded):
        label = label_for(index)
        labels[label] = task.agent
        texts[label] = task.text or ""
    return Reduction(
        context=format_labelled(texts, heading, max_chars=max_chars),
        scalars={"labels": labels, "texts": texts},
    )


def count_critique_flags(result: AggregateResult, labels: Iterable[str]) -> dict[str, int]:
    """Count 'FLAG <label>:' lines per label across all successful critiques."""
    counts = {label: 0 for label in labels}
    for task in result.succeeded:
        for match in _CRITIQUE_FLAG_RE.finditer(task.text or ""):
            label = match.group(1).upper()
            if label in counts:
                counts[label] += 1
    return counts


def extract_vote(text: str, labels: Iterable[str]) -> str | None:
    """Find the label a voter picked.

    Tries an explicit 'VOTE: X' line first, then a label mentioned shortly
    after a voting keyword, then the first label mentioned at all.
    """
    valid = set(labels)
    match = _VOTE_LINE_RE.search(text)
    if match and match.group(1).upper() in valid:
        return match.group(1).upper()

    lowered = text.lower()
    for keyword in _VOTE_KEYWORDS:
        index = lowered.find(keyword)
        if index == -1:
            continue
        window = text[index:index + _KEYWORD_WINDOW]
        for mention in _LABEL_MENTION_RE.finditer(window):
            if mention.group(1).upper() in valid:
                return mention.group(1).upper()

    for mention in _LABEL_MENTION_RE.finditer(text):
        if mention.group(1).upper() in valid:
            return mention.group(1).upper()
    return None


def tally_votes(
    result: AggregateResult,
    candidates: dict[str, str | None],
    flag_counts: dict[str, int] | None = None,
    heading: str = "Proposal",
) -> Reduction:
    """Count votes per candidate label and pick the winner.

    A vote for a candidate authored by the voter is discarded. Ties go to
    the candidate with fewer critique flags, then to the earliest label.

    Args:
        result: The vote phase result.
        candidates: Candidate label -> author agent id (None if unknown), in label order.
        flag_counts: Optional critique flag count per label for tie-breaking.
        heading: Noun used in the rendered tally.

    Returns:
        Reduction with decision = winning label (None when there are no
        candidates) and scalars 'counts', 'votes', 'discarded', 'reasons'.
    """
    flags = flag_counts or {}
    counts = {label: 0 for label in candidates}
    votes: dict[str, str] = {}
    reasons: dict[str, str] = {}
    discarded: list[str] = []

    for task in result.succeeded:
        choice = extract_vote(task.text or "", candidates)
        if choice is None:
            discarded.append(task.agent)
            logger.debug("No readable vote from %s", task.agent)
            continue
        if candidates[choice] == task.agent:
            discarded.append(task.agent)
            logger.debug("Discarded self-vote from %s for %s", task.agent, choice)
            continue
        counts[choice] += 1
        votes[task.agent] = choice
        reasons[task.agent] = task.text or ""

    order = list(candidates)
    winner = None
    if order:
        winner = min(order, key=lambda label: (-counts[label], flags.get(label, 0), order.index(label)))

    lines = [f"{heading} {label}: {count} vote(s)" for label, count in counts.items()]
    return Reduction(
        context="\n".join(lines),
        decision=winner,
        scalars={"counts": counts, "votes": votes, "discarded": discarded, "reasons": reasons},
    )


def number_lines(text: str) -> tuple[str, list[str]]:
    """Number the non-empty lines of text as 'L<n>: ...' for claim checking."""
    lines = [line.rstrip() for line in text.splitlines() if line.strip()]
    numbered = "\n".join(f"L{n}: {line}" for n, line in enumerate(lines, start=1))
    return numbered, lines


def score_claims(result: AggregateResult, line_count: int, threshold: float) -> Reduction:
    """Reduce verifier flags into a flagged-line ratio and a branch decision.

    Each verifier flags a line at most once. The ratio is distinct flagged
    lines over line_count; above threshold the decision is 'rewrite', else 'accept'.
    """
    per_line: dict[int, int] = {}
    notes: list[str] = []
    verifiers = 0
    for task in result.succeeded:
        verifiers += 1
        seen: set[int] = set()
        for match in _CLAIM_FLAG_RE.finditer(task.text or ""):
            number = int(match.group(1))
            if not 1 <= number <= line_count or number in seen:
                continue
            seen.add(number)
            per_line[number] = per_line.get(number, 0) + 1
            notes.append(f"L{number} ({task.agent}): {match.group(2).strip()}")

    flagged = sorted(per_line)
    ratio = len(flagged) / line_count if line_count else 0.0
    decision = "rewrite" if ratio > threshold else "accept"
    return Reduction(
        context="\n".join(notes) if notes else "No flags.",
        decision=decision,
        scalars={"ratio": ratio, "flagged": flagged, "per_line": per_line, "verifiers": verifiers},
    )


def tag_uncertain(lines: list[str], flagged: Iterable[int]) -> str:
    """Append the uncertainty tag to each flagged (1-indexed) line."""
    marks = set(flagged)
    return "\n".join(
        f"{line} {UNCERTAIN_TAG}" if n in marks else line
        for n, line in enumerate(lines, start=1)
    )


def _fusion_sources(text: str) -> list[str]:
    match = _FUSES_RE.search(text)
    if not match:
        return []
    return [part.strip() for part in match.group(1).split(";") if part.strip()]


def fuse_ideas(result: AggregateResult, heading: str = "Fusion") -> Reduction:
    """Collect the votable fusions from a fuse phase.

    A fusion must declare at least two source ideas. If none does, every
    fusion is votable so the swarm still has something to choose from.

    Returns:
        Reduction with the labelled votable block as context and scalars
        'labels' (label -> author), 'texts', 'sources' and 'rejected'.
    """
    fusions = [(task, _fusion_sources(task.text or "")) for task in result.succeeded]
    valid = [(task, sources) for task, sources in fusions if len(sources) >= 2]
    rejected = [task.agent for task, sources in fusions if len(sources) < 2]
    if not valid:
        valid = fusions
        rejected = []

    labels: dict[str, str] = {}
    texts: dict[str, str] = {}
    sources_by_label: dict[str, list[str]] = {}
    for index, (task, sources) in enumerate(valid):
        label = label_for(index)
        labels[label] = task.agent
        texts[label] = task.text or ""
        sources_by_label[label] = sources
    return Reduction(
        context=format_labelled(texts, heading),
        decision="degraded" if fusions and not any(len(s) >= 2 for _, s in fusions) else None,
        scalars={"labels": labels, "texts": texts, "sources": sources_by_label, "rejected": rejected},
    )


def summarize_chain(steps: list[AgentTask], max_chars: int | None = None) -> Reduction:
    """Render the successful steps of a critique chain in order.

    Returns:
        Reduction whose context lists every revision (truncated to max_chars
        when given), decision names the author of the latest revision, and
        scalars carry 'latest' and 'authors'.
    """
    texts = {str(n): task.text or "" for n, task in enumerate(steps, start=1)}
    if max_chars is not None:
        texts = fit_texts(texts, max_chars)
    parts = [f"### Revision {n} ({task.agent})\n{texts[str(n)]}" for n, task in enumerate(steps, start=1)]
    latest = steps[-1] if steps else None
    return Reduction(
        context="\n\n".join(parts),
        decision=latest.agent if latest else None,
        scalars={
            "latest": latest.text if latest else "",
            "authors": [task.agent for task in steps],
        },
    )


def parse_rankings(text: str, limit: int = MAX_RANKED) -> list[RankedIdea]:
    """Parse 'RANK n: title | SCORE: x/10 | summary' lines, best rank first."""
    ranked: list[tuple[int, RankedIdea]] = []
    for match in _RANK_RE.finditer(text):
        score = min(max(float(match.group(3)), 0.0), 10.0)
        ranked.append((
            int(match.group(1)),
            RankedIdea(title=match.group(2).strip(), score=score, summary=(match.group(4) or "").strip()),
        ))
    ranked.sort(key=lambda item: item[0])
    return [idea for _, idea in ranked[:limit]]


def fallback_rankings(result: AggregateResult, limit: int = MAX_RANKED) -> list[RankedIdea]:
    """First line of each agent's idea set, with a neutral score."""
    ideas: list[RankedIdea] = []
    for task in result.succeeded:
        first = next((line.strip() for line in (task.text or "").splitlines() if line.strip()), "")
        if first:
            ideas.append(RankedIdea(title=first.lstrip("#*-0123456789. ").strip() or first, score=5.0))
    return ideas[:limit]


def combine_scores(ideas: list[RankedIdea], verification: Reduction) -> list[tuple[RankedIdea, float]]:
    """Creativity (score/10) plus verification (1 - share of verifiers flagging).

    Line n of the verified block is ideas[n-1]. Sorted best first; ties keep rank order.
    """
    verifiers = verification.scalars.get("verifiers", 0)
    per_line = verification.scalars.get("per_line", {})
    scored = []
    for n, idea in enumerate(ideas, start=1):
        share = per_line.get(n, 0) / verifiers if verifiers else 0.0
        scored.append((idea, idea.score / 10 + (1 - share)))
    return sorted(scored, key=lambda item: -item[1])


def split_sections(text: str, head: str, tail: str) -> tuple[str, str | None]:
    """Split 'HEAD: ... TAIL: ...' replies into (content, rationale).

    Missing markers degrade gracefully: without TAIL the rationale is None,
    without HEAD the whole leading text is the content.
    """
    tail_match = re.search(rf"\**{re.escape(tail)}\**\s*:?\**", text)
    if tail_match:
        body, rest = text[:tail_match.start()], text[tail_match.end():]
    else:
        body, rest = text, None
    head_match = re.search(rf"\**{re.escape(head)}\**\s*:?\**", body)
    if head_match:
        body = body[head_match.end():]
    content = body.rstrip().rstrip("#").strip()
    rationale = rest.strip() if rest is not None else None
    return content or text.strip(), rationale or None
