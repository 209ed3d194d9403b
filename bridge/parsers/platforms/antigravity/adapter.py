"""Map Antigravity JSONL records into normalized events.

Antigravity logs follow the Claude-style message envelope, with `model` as an
alternative assistant kind and camelCase tool names. Argument keys vary by
version (`file_path`, `target_file`, `TargetFile`, `AbsolutePath`), so the
context lookup checks each of them; only the basename is ever emitted.
"""
from __future__ import annotations

from typing import Any, Optional

from bridge.date_utils import now_iso
from bridge.events import (
    DEFAULT_AGENT_ROLE,
    create_activity_event,
    create_agent_event,
    create_error_event,
    create_summary_event,
    create_tool_event,
    extract_tokens,
    is_error_output,
    safe_string,
    to_basename,
)
from bridge.models import AntigravityRecord, PixelEvent, ToolCategory, ToolMapping

SOURCE = "antigravity"

SPAWN_TOOLS = {"spawnAgent", "Task"}
ASK_USER_TOOL = "askUser"

TOOL_TO_CATEGORY: dict[str, ToolMapping] = {
    "readFile": ToolMapping(category=ToolCategory.FILE_READ, detail="read"),
    "writeFile": ToolMapping(category=ToolCategory.FILE_WRITE, detail="write"),
    "editFile": ToolMapping(category=ToolCategory.FILE_WRITE, detail="edit"),
    "runCommand": ToolMapping(category=ToolCategory.TERMINAL, detail="bash"),
    "grepSearch": ToolMapping(category=ToolCategory.SEARCH, detail="grep"),
    "globSearch": ToolMapping(category=ToolCategory.SEARCH, detail="glob"),
    "findByName": ToolMapping(category=ToolCategory.SEARCH, detail="find"),
    "searchWeb": ToolMapping(category=ToolCategory.SEARCH, detail="web_search"),
    "readUrl": ToolMapping(category=ToolCategory.SEARCH, detail="web_fetch"),
    "spawnAgent": ToolMapping(category=ToolCategory.SPAWN_AGENT, detail="task"),
    "Task": ToolMapping(category=ToolCategory.SPAWN_AGENT, detail="task"),
    "listTasks": ToolMapping(category=ToolCategory.PLAN, detail="todo"),
    "askUser": ToolMapping(category=ToolCategory.COMMUNICATE, detail="ask_user"),
}

_PATH_KEYS = ("file_path", "target_file", "TargetFile", "AbsolutePath")


def adapt(record: AntigravityRecord) -> list[PixelEvent]:
    session_id = record.sessionId
    agent_id = record.agentId or None
    timestamp = record.timestamp or now_iso()

    if record.type in ("assistant", "model"):
        return _handle_model(record, session_id, agent_id, timestamp)
    if record.type == "user":
        return _handle_user(record, session_id, agent_id, timestamp)
    if record.type == "summary":
        return [create_summary_event(session_id, timestamp)]
    return []


def _handle_model(
    record: AntigravityRecord,
    session_id: str,
    agent_id: Optional[str],
    timestamp: str,
) -> list[PixelEvent]:
    events: list[PixelEvent] = []
    message = record.message or {}
    content = message.get("content")
    if not isinstance(content, list):
        return events

    for block in content:
        if not isinstance(block, dict):
            continue

        block_type = block.get("type")
        if block_type == "thinking":
            events.append(create_activity_event(session_id, agent_id, timestamp, "thinking"))
        elif block_type == "text":
            if safe_string(block.get("text")):
                tokens = extract_tokens(message.get("usage"), include_cache=False)
                events.append(create_activity_event(session_id, agent_id, timestamp, "responding", tokens))
        elif block_type == "tool_use":
            events.extend(_handle_tool_use(block, session_id, agent_id, timestamp))

    return events


def _handle_tool_use(
    block: dict[str, Any],
    session_id: str,
    agent_id: Optional[str],
    timestamp: str,
) -> list[PixelEvent]:
    tool_name = safe_string(block.get("name")) or "unknown"
    tool_use_id = str(block.get("id") or "unknown")
    tool_input = block.get("input") if isinstance(block.get("input"), dict) else {}
    mapping = TOOL_TO_CATEGORY.get(tool_name) or ToolMapping(category=ToolCategory.OTHER, detail=tool_name)

    events: list[PixelEvent] = [
        create_tool_event(
            session_id,
            agent_id,
            timestamp,
            tool=mapping.category,
            status="started",
            tool_use_id=tool_use_id,
            detail=mapping.detail,
            context=_extract_safe_context(tool_name, tool_input),
        )
    ]

    if tool_name in SPAWN_TOOLS:
        role = safe_string(tool_input.get("type")) or DEFAULT_AGENT_ROLE
        events.append(create_agent_event(session_id, tool_use_id, timestamp, "spawned", role))
    if tool_name == ASK_USER_TOOL:
        events.append(create_activity_event(session_id, agent_id, timestamp, "waiting"))
    return events


def _handle_user(
    record: AntigravityRecord,
    session_id: str,
    agent_id: Optional[str],
    timestamp: str,
) -> list[PixelEvent]:
    events: list[PixelEvent] = []
    message = record.message or {}
    content = message.get("content")
    if not content:
        return events

    if record.userType != "tool_result":
        events.append(create_activity_event(session_id, agent_id, timestamp, "user_prompt"))
        return events

    if not isinstance(content, list):
        return events

    for block in content:
        if not isinstance(block, dict) or block.get("type") != "tool_result":
            continue
        is_error = block.get("is_error") is True or is_error_output(block.get("content"))
        events.append(
            create_tool_event(
                session_id,
                agent_id,
                timestamp,
                tool=ToolCategory.OTHER,
                status="error" if is_error else "completed",
                tool_use_id=str(block.get("tool_use_id") or "unknown"),
            )
        )
        if is_error:
            events.append(create_error_event(session_id, agent_id, timestamp, "warning"))
    return events


def _extract_safe_context(tool_name: str, tool_input: dict[str, Any]) -> Optional[str]:
    """Basename of the first path-like argument; runCommand uses its description.

    The command line itself (`CommandLine` / `command`) is never used.
    """
    if not tool_input:
        return None

    for key in _PATH_KEYS:
        if tool_input.get(key):
            return to_basename(tool_input.get(key))

    if tool_name == "runCommand":
        return safe_string(tool_input.get("description")) or safe_string(tool_input.get("Description"))
    return None
