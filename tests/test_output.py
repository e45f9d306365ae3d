"""Tests for collab/output.py."""

from pathlib import Path

import pytest

from collab.models import AgentTrace, FinalResult, Mode, PhaseOutput, SessionStatus, TaskStatus
from collab.output import _preview, _slug, print_result, print_trace, save_to_file

PROMPT = "Should we use YAML or JSON?"


def test_slug_basic():
    assert _slug(PROMPT) == "should-we-use-yaml-or-json"


def test_slug_max_len():
    assert len(_slug("a" * 100)) <= 40


def test_slug_special_chars():
    result = _slug("API vs. SDK (2024)")
    assert "." not in result
    assert "(" not in result
    assert ")" not in result


def test_preview_truncates():
    assert _preview("one two three", words=2) == "one two..."
    assert _preview(None) == ""


@pytest.fixture
def sample_result() -> FinalResult:
    return FinalResult(
        session_id="abc123",
        mode=Mode.ROUND_TABLE,
        status=SessionStatus.COMPLETED,
        content="Use YAML with a schema.",
        rationale="Most voters preferred readability.",
        per_agent_trace=[
            AgentTrace(agent="claude", phase_outputs=[
                PhaseOutput(phase="draft", status=TaskStatus.DONE, text="YAML is readable.", token_count=42, cost=0.0012),
            ]),
            AgentTrace(agent="openai", phase_outputs=[
                PhaseOutput(phase="draft", status=TaskStatus.TIMED_OUT, error="Phase deadline reached"),
            ]),
        ],
        cost_actual=0.0012,
        phases=["draft"],
        duration_sec=3.2,
    )


def test_save_to_file_creates_file(tmp_path: Path, sample_result: FinalResult):
    saved = save_to_file(sample_result, PROMPT, tmp_path / "output")
    assert saved.exists()
    assert saved.suffix == ".md"


def test_save_to_file_creates_output_dir(tmp_path: Path, sample_result: FinalResult):
    output_dir = tmp_path / "nested" / "output"
    assert not output_dir.exists()
    save_to_file(sample_result, PROMPT, output_dir)
    assert output_dir.exists()


def test_save_to_file_content(tmp_path: Path, sample_result: FinalResult):
    content = save_to_file(sample_result, PROMPT, tmp_path).read_text(encoding="utf-8")
    assert "# AI Collaboration: Should we use YAML or JSON?" in content
    assert "**Mode:** round_table" in content
    assert "**Status:** completed" in content
    assert "**Agents:** claude, openai" in content
    assert "## Answer\n\nUse YAML with a schema." in content
    assert "## Rationale" in content
    assert "Disclaimer" not in content


def test_save_to_file_transcript(tmp_path: Path, sample_result: FinalResult):
    content = save_to_file(sample_result, PROMPT, tmp_path).read_text(encoding="utf-8")
    assert "### claude" in content
    assert "#### draft (done)" in content
    assert "YAML is readable." in content
    assert "#### draft (timed_out)" in content
    assert "*Phase deadline reached*" in content


def test_save_to_file_partial_has_disclaimer(tmp_path: Path, sample_result: FinalResult):
    sample_result.status = SessionStatus.PARTIAL
    sample_result.disclaimer = "Only 1 of 2 agents responded (quorum 3)."
    content = save_to_file(sample_result, PROMPT, tmp_path).read_text(encoding="utf-8")
    assert "> **Disclaimer:** Only 1 of 2 agents responded" in content


def test_save_to_file_filename(tmp_path: Path, sample_result: FinalResult):
    assert save_to_file(sample_result, PROMPT, tmp_path).name.endswith("_should-we-use-yaml-or-json.md")
    assert save_to_file(sample_result, PROMPT, tmp_path, slug_override="inbox-q").name.endswith("_inbox-q.md")


def test_print_helpers_do_not_raise(sample_result: FinalResult):
    print_trace(sample_result)
    print_result(sample_result)
