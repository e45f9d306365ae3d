"""Inbox folder scanning, frontmatter parsing into request overrides, and archive logic."""

import logging
import shutil
from datetime import datetime
from pathlib import Path

import frontmatter

logger = logging.getLogger(__name__)

# Front-matter keys a batch request may set
REQUEST_KEYS = ("mode", "agents", "cost_cap", "timeout", "style", "lead")


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, sorted by mtime ascending (oldest first)."""
    files = list(inbox_dir.glob("*.md"))
    return sorted(files, key=lambda p: p.stat().st_mtime)


def parse_file(file_path: Path) -> tuple[str, dict]:
    """Parse a markdown request file with optional YAML frontmatter.

    Returns:
        (prompt, overrides) where prompt is the body text and overrides holds
        the recognised keys, normalised: mode (str), agents (list[str]),
        cost_cap (float), timeout (float seconds), style (str), lead (str).
        Unknown keys are dropped with a warning.
    """
    post = frontmatter.load(str(file_path))
    prompt = post.content.strip()
    overrides: dict = {}
    for key, value in post.metadata.items():
        if key not in REQUEST_KEYS:
            logger.warning("Ignoring unknown front-matter key %r in %s", key, file_path.name)
            continue
        if key == "agents":
            items = value if isinstance(value, list) else str(value).split(",")
            overrides[key] = [str(item).strip() for item in items if str(item).strip()]
        elif key in ("cost_cap", "timeout"):
            overrides[key] = float(value)
        else:
            overrides[key] = str(value)
    return prompt, overrides


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move file to archive_dir with a timestamp prefix.

    Args:
        file_path: Source file to archive.
        archive_dir: Destination directory.
        failed: If True, prefix filename with "FAILED_".

    Returns:
        Path to the archived file.
    """
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest
