"""Rich console output and markdown file save for collaboration results."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from collab.models import FinalResult, SessionStatus, TaskStatus

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLE = {
    TaskStatus.DONE: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.TIMED_OUT: "yellow",
    TaskStatus.CANCELLED: "dim",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str | None, words: int = 12) -> str:
    """Return first N words of an output."""
    all_words = (text or "").split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_trace(result: FinalResult) -> None:
    """Print one row per agent phase output."""
    table = Table(title=f"Session {result.session_id} trace", show_lines=False)
    table.add_column("Agent", style="bold")
    table.add_column("Phase")
    table.add_column("Status")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Output / error")
    for trace in result.per_agent_trace:
        if not trace.phase_outputs:
            table.add_row(trace.agent, "-", "[dim]idle[/dim]", "", "", "")
            continue
        for out in trace.phase_outputs:
            style = _STATUS_STYLE.get(out.status, "white")
            table.add_row(
                trace.agent,
                out.phase,
                f"[{style}]{out.status.value}[/{style}]",
                str(out.token_count) if out.token_count is not None else "",
                f"${out.cost:.4f}" if out.cost else "",
                _preview(out.text) if out.text else (out.error or ""),
            )
    console.print(table)


def print_result(result: FinalResult) -> None:
    """Print the final answer to the console using Rich markdown."""
    colour = "green" if result.status == SessionStatus.COMPLETED else "yellow"
    console.print(Rule(f"[bold {colour}]{result.mode.value} ({result.status.value})[/bold {colour}]"))
    console.print(
        Text(
            f"Phases: {len(result.phases)} | "
            f"Cost: ${result.cost_actual:.4f} | "
            f"Duration: {result.duration_sec:.1f}s",
            style="dim",
        )
    )
    if result.disclaimer:
        console.print(Panel(result.disclaimer, title="Disclaimer", border_style="yellow"))
    console.print(Markdown(result.content or "_No answer was produced._"))
    if result.rationale:
        console.print(Rule("[dim]Rationale[/dim]"))
        console.print(Markdown(result.rationale))


def save_to_file(
    result: FinalResult,
    prompt: str,
    output_dir: Path,
    source: str = "cli",
    slug_override: str | None = None,
) -> Path:
    """Save the answer and the full per-agent transcript as a markdown file.

    Args:
        result: The FinalResult of the session.
        prompt: The prompt the session answered.
        output_dir: Directory to save the file in.
        source: Where the prompt came from ("cli", a file path, ...).
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the prompt. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(prompt)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    lines: list[str] = [
        f"# AI Collaboration: {prompt[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Mode:** {result.mode.value}",
        f"**Status:** {result.status.value}",
        f"**Agents:** {', '.join(t.agent for t in result.per_agent_trace)}",
        f"**Phases:** {', '.join(result.phases) or 'none'}",
        f"**Cost:** ${result.cost_actual:.4f}",
        f"**Duration:** {result.duration_sec:.1f}s",
        f"**Source:** {source}",
        "",
    ]
    if result.disclaimer:
        lines += [f"> **Disclaimer:** {result.disclaimer}", ""]
    lines += ["---", "", "## Answer", "", result.content or "_No answer was produced._", ""]
    if result.rationale:
        lines += ["## Rationale", "", result.rationale, ""]

    lines += ["## Transcript", ""]
    for trace in result.per_agent_trace:
        lines.append(f"### {trace.agent}")
        lines.append("")
        for out in trace.phase_outputs:
            lines.append(f"#### {out.phase} ({out.status.value})")
            lines.append("")
            lines.append(out.text if out.text else f"*{out.error or 'no output'}*")
            lines.append("")
            lines.append(
                f"*Cost: ${out.cost:.4f}"
                + (f" | Tokens: {out.token_count}" if out.token_count else "")
                + "*"
            )
            lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Session saved to: %s", filepath)
    return filepath
