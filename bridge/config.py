"""Pixel Office Bridge configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

VERSION = "0.1.0"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class ResolvedClaudeDir:
    claude_dir: Path
    projects_dir: Path
    resolved_via: str


def resolve_claude_dir(
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> ResolvedClaudeDir:
    """Locate the Claude config directory that holds `projects/`.

    Candidates are tried in order; the first one with a `projects/` directory
    wins, then the first one that exists at all. When nothing exists yet the
    default `~/.claude` is returned so the watcher can wait for it.
    """
    env = os.environ if env is None else env
    home = Path.home() if home is None else home

    candidates: list[tuple[Optional[str], str]] = [
        (env.get("CLAUDE_CONFIG_DIR"), "CLAUDE_CONFIG_DIR env"),
        (str(home / ".claude"), "default (~/.claude)"),
        (str(home / ".config" / "claude"), "XDG (~/.config/claude)"),
    ]

    for raw_path, via in candidates:
        if not raw_path:
            continue
        path = Path(raw_path).expanduser()
        if (path / "projects").is_dir():
            return ResolvedClaudeDir(path, path / "projects", via)

    for raw_path, via in candidates:
        if not raw_path:
            continue
        path = Path(raw_path).expanduser()
        if path.exists():
            return ResolvedClaudeDir(path, path / "projects", f"{via} (no projects/ yet)")

    fallback = home / ".claude"
    return ResolvedClaudeDir(fallback, fallback / "projects", "default (~/.claude, missing)")


_resolved = resolve_claude_dir()

# Claude Code session files
CLAUDE_DIR = _resolved.claude_dir
PROJECTS_DIR = _resolved.projects_dir
CLAUDE_DIR_RESOLVED_VIA = _resolved.resolved_via

# Session lifecycle (the only options consumed by the session registry)
SESSION_TTL_SECONDS = _env_int("PIXEL_OFFICE_SESSION_TTL_SECONDS", 2 * 60)
SESSION_REAP_INTERVAL_SECONDS = _env_int("PIXEL_OFFICE_REAP_INTERVAL_SECONDS", 30)

# Watcher tuning
WATCH_RECENCY_SECONDS = _env_int("PIXEL_OFFICE_WATCH_RECENCY_SECONDS", 10 * 60)
WATCH_DEBOUNCE_MS = _env_int("PIXEL_OFFICE_WATCH_DEBOUNCE_MS", 100)
DEFAULT_SOURCE = os.getenv("PIXEL_OFFICE_SOURCE", "claude-code")

# Event fan-out
SUBSCRIBER_QUEUE_SIZE = _env_int("PIXEL_OFFICE_SUBSCRIBER_QUEUE_SIZE", 1000)

# Server settings
HOST = os.getenv("PIXEL_OFFICE_HOST", "0.0.0.0")
PORT = _env_int("PIXEL_OFFICE_PORT", 8765)
VERBOSE = _env_bool("PIXEL_OFFICE_VERBOSE", False)
CORS_ORIGINS = [o.strip() for o in os.getenv("PIXEL_OFFICE_CORS_ORIGINS", "*").split(",") if o.strip()]
