"""Event factories and privacy helpers shared by every source adapter.

Factories drop falsy optional values so that a field which does not apply is
absent from the serialized event rather than present as null or "".
"""
from __future__ import annotations

import uuid
from typing import Any, Literal, Optional

from bridge.date_utils import now_iso
from bridge.models import (
    ActivityEvent,
    AgentEvent,
    ErrorEvent,
    PixelEvent,
    SessionEvent,
    SummaryEvent,
    TokenUsage,
    ToolCategory,
    ToolEvent,
)

# Literal text Claude Code writes for an empty assistant turn.
NO_CONTENT_SENTINEL = "(no content)"

DEFAULT_AGENT_ROLE = "general"


def _new_id() -> str:
    return str(uuid.uuid4())


def create_session_event(
    session_id: str,
    action: Literal["started", "ended"],
    project: Optional[str] = None,
    model: Optional[str] = None,
    source: Optional[str] = None,
) -> SessionEvent:
    return SessionEvent(
        id=_new_id(),
        sessionId=session_id,
        timestamp=now_iso(),
        action=action,
        project=project or None,
        model=model or None,
        source=source or None,
    )


def create_activity_event(
    session_id: str,
    agent_id: Optional[str],
    timestamp: str,
    action: Literal["thinking", "responding", "waiting", "user_prompt"],
    tokens: Optional[TokenUsage] = None,
) -> ActivityEvent:
    return ActivityEvent(
        id=_new_id(),
        sessionId=session_id,
        agentId=agent_id or None,
        timestamp=timestamp,
        action=action,
        tokens=tokens,
    )


def create_tool_event(
    session_id: str,
    agent_id: Optional[str],
    timestamp: str,
    tool: ToolCategory,
    status: Literal["started", "completed", "error"],
    tool_use_id: str,
    detail: Optional[str] = None,
    context: Optional[str] = None,
) -> ToolEvent:
    return ToolEvent(
        id=_new_id(),
        sessionId=session_id,
        agentId=agent_id or None,
        timestamp=timestamp,
        tool=tool,
        detail=detail or None,
        status=status,
        toolUseId=tool_use_id,
        context=context or None,
    )


def create_agent_event(
    session_id: str,
    agent_id: Optional[str],
    timestamp: str,
    action: Literal["spawned", "completed", "error"],
    agent_role: Optional[str] = None,
) -> AgentEvent:
    return AgentEvent(
        id=_new_id(),
        sessionId=session_id,
        agentId=agent_id or None,
        timestamp=timestamp,
        action=action,
        agentRole=agent_role or None,
    )


def create_error_event(
    session_id: str,
    agent_id: Optional[str],
    timestamp: str,
    severity: Literal["warning", "error"],
) -> ErrorEvent:
    return ErrorEvent(
        id=_new_id(),
        sessionId=session_id,
        agentId=agent_id or None,
        timestamp=timestamp,
        severity=severity,
    )


def create_summary_event(session_id: str, timestamp: str) -> SummaryEvent:
    return SummaryEvent(id=_new_id(), sessionId=session_id, timestamp=timestamp)


def serialize_event(event: PixelEvent) -> dict[str, Any]:
    """Wire form of an event. Unset optional fields are omitted, never null."""
    return event.model_dump(mode="json", exclude_none=True)


# ── Privacy helpers ────────────────────────────────────────────────

def to_basename(file_path: Any) -> Optional[str]:
    if not file_path or not isinstance(file_path, str):
        return None
    return file_path.split("/")[-1] or None


def to_project_name(project_path: Any) -> Optional[str]:
    if not project_path or not isinstance(project_path, str):
        return None
    return project_path.rstrip("/").split("/")[-1] or None


def safe_string(value: Any) -> Optional[str]:
    """Return `value` when it is a non-blank string, else None."""
    if isinstance(value, str) and value.strip():
        return value
    return None


def is_error_output(output: Any) -> bool:
    # Substring heuristic: any successful output mentioning "Error" is
    # reported as an error. Known false positives are accepted.
    return isinstance(output, str) and "Error" in output


def extract_tokens(usage: Any, include_cache: bool = True) -> Optional[TokenUsage]:
    if not isinstance(usage, dict):
        return None

    tokens = TokenUsage(
        input=_coerce_int(usage.get("input_tokens")),
        output=_coerce_int(usage.get("output_tokens")),
    )
    if include_cache:
        cache_read = _coerce_int(usage.get("cache_read_input_tokens"))
        cache_write = _coerce_int(usage.get("cache_creation_input_tokens"))
        if cache_read:
            tokens.cacheRead = cache_read
        if cache_write:
            tokens.cacheWrite = cache_write
    return tokens


def _coerce_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
