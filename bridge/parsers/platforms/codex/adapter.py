"""Map Codex CLI rollout records into normalized events.

Raw shape::

    {"type": "response_item" | "session_meta" | "turn_context" | "event_msg" | ...,
     "timestamp": "...",
     "payload": {"type": "message" | "reasoning" | "function_call" | ..., ...}}

Function-call `arguments` arrive as a JSON-encoded string; they are decoded
only to derive the allowlisted context for `read_file`, `view_image` and
`grep_files`. Commands, patches, prompts and queries are never copied.
"""
from __future__ import annotations

import json
from typing import Any, Optional

from bridge.date_utils import now_iso
from bridge.events import (
    create_activity_event,
    create_agent_event,
    create_error_event,
    create_tool_event,
    is_error_output,
    safe_string,
    to_basename,
)
from bridge.models import CodexRecord, PixelEvent, ToolCategory, ToolMapping

SOURCE = "codex"

SPAWN_TOOL = "spawn_agent"
ASK_USER_TOOL = "request_user_input"
SPAWN_AGENT_ROLE = "collab"

TOOL_TO_CATEGORY: dict[str, ToolMapping] = {
    "shell": ToolMapping(category=ToolCategory.TERMINAL, detail="bash"),
    "exec_command": ToolMapping(category=ToolCategory.TERMINAL, detail="bash"),
    "apply_patch": ToolMapping(category=ToolCategory.FILE_WRITE, detail="patch"),
    "read_file": ToolMapping(category=ToolCategory.FILE_READ, detail="read"),
    "view_image": ToolMapping(category=ToolCategory.FILE_READ, detail="image"),
    "list_dir": ToolMapping(category=ToolCategory.SEARCH, detail="list_dir"),
    "grep_files": ToolMapping(category=ToolCategory.SEARCH, detail="grep"),
    "web_search": ToolMapping(category=ToolCategory.SEARCH, detail="web_search"),
    "plan": ToolMapping(category=ToolCategory.PLAN, detail="plan"),
    "update_plan": ToolMapping(category=ToolCategory.PLAN, detail="plan"),
    "request_user_input": ToolMapping(category=ToolCategory.COMMUNICATE, detail="ask_user"),
    "spawn_agent": ToolMapping(category=ToolCategory.SPAWN_AGENT, detail="collab"),
}


def adapt(record: CodexRecord) -> list[PixelEvent]:
    session_id = record.sessionId
    agent_id = record.agentId or None
    timestamp = record.timestamp or now_iso()

    # session_meta, turn_context, compacted and event_msg carry nothing to show.
    if record.type != "response_item":
        return []

    payload = record.payload or {}
    payload_type = payload.get("type")
    if not isinstance(payload_type, str) or not payload_type:
        return []

    handler = _RESPONSE_ITEM_HANDLERS.get(payload_type)
    if handler is None:
        return []
    return handler(payload, session_id, agent_id, timestamp)


def _call_id(payload: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return "unknown"


def _handle_message(payload: dict[str, Any], session_id: str, agent_id: Optional[str], timestamp: str) -> list[PixelEvent]:
    content = payload.get("content")
    if not isinstance(content, list):
        return []

    def has_block(block_type: str) -> bool:
        return any(isinstance(block, dict) and block.get("type") == block_type for block in content)

    role = payload.get("role")
    if role == "user" and has_block("input_text"):
        return [create_activity_event(session_id, agent_id, timestamp, "user_prompt")]
    if role == "assistant" and has_block("output_text"):
        return [create_activity_event(session_id, agent_id, timestamp, "responding")]
    return []


def _handle_reasoning(payload: dict[str, Any], session_id: str, agent_id: Optional[str], timestamp: str) -> list[PixelEvent]:
    return [create_activity_event(session_id, agent_id, timestamp, "thinking")]


def _handle_function_call(payload: dict[str, Any], session_id: str, agent_id: Optional[str], timestamp: str) -> list[PixelEvent]:
    tool_name = safe_string(payload.get("name")) or "unknown"
    call_id = _call_id(payload, "call_id", "id")
    mapping = TOOL_TO_CATEGORY.get(tool_name) or ToolMapping(category=ToolCategory.OTHER, detail=tool_name)

    events: list[PixelEvent] = [
        create_tool_event(
            session_id,
            agent_id,
            timestamp,
            tool=mapping.category,
            status="started",
            tool_use_id=call_id,
            detail=mapping.detail,
            context=_extract_safe_context(tool_name, payload.get("arguments")),
        )
    ]

    if tool_name == ASK_USER_TOOL:
        events.append(create_activity_event(session_id, agent_id, timestamp, "waiting"))
    if tool_name == SPAWN_TOOL:
        events.append(create_agent_event(session_id, call_id, timestamp, "spawned", SPAWN_AGENT_ROLE))
    return events


def _handle_call_output(payload: dict[str, Any], session_id: str, agent_id: Optional[str], timestamp: str) -> list[PixelEvent]:
    is_error = is_error_output(payload.get("output"))
    events: list[PixelEvent] = [
        create_tool_event(
            session_id,
            agent_id,
            timestamp,
            tool=ToolCategory.OTHER,
            status="error" if is_error else "completed",
            tool_use_id=_call_id(payload, "call_id"),
        )
    ]
    if is_error:
        events.append(create_error_event(session_id, agent_id, timestamp, "warning"))
    return events


def _handle_local_shell_call(payload: dict[str, Any], session_id: str, agent_id: Optional[str], timestamp: str) -> list[PixelEvent]:
    call_id = _call_id(payload, "call_id", "id")
    status = payload.get("status")

    if status in ("completed", "failed"):
        failed = status == "failed"
        events: list[PixelEvent] = [
            create_tool_event(
                session_id,
                agent_id,
                timestamp,
                tool=ToolCategory.TERMINAL,
                status="error" if failed else "completed",
                tool_use_id=call_id,
                detail="shell",
            )
        ]
        if failed:
            events.append(create_error_event(session_id, agent_id, timestamp, "warning"))
        return events

    return [
        create_tool_event(
            session_id,
            agent_id,
            timestamp,
            tool=ToolCategory.TERMINAL,
            status="started",
            tool_use_id=call_id,
            detail="shell",
        )
    ]


def _handle_web_search_call(payload: dict[str, Any], session_id: str, agent_id: Optional[str], timestamp: str) -> list[PixelEvent]:
    status = payload.get("status")
    if status == "completed":
        tool_status = "completed"
    elif status == "failed":
        tool_status = "error"
    else:
        tool_status = "started"

    return [
        create_tool_event(
            session_id,
            agent_id,
            timestamp,
            tool=ToolCategory.SEARCH,
            status=tool_status,
            tool_use_id=_call_id(payload, "id"),
            detail="web_search",
        )
    ]


def _handle_custom_tool_call(payload: dict[str, Any], session_id: str, agent_id: Optional[str], timestamp: str) -> list[PixelEvent]:
    return [
        create_tool_event(
            session_id,
            agent_id,
            timestamp,
            tool=ToolCategory.OTHER,
            status="started",
            tool_use_id=_call_id(payload, "call_id", "id"),
            detail=safe_string(payload.get("name")) or "custom",
        )
    ]


# ghost_snapshot, compaction and other are recognized and inert.
_RESPONSE_ITEM_HANDLERS = {
    "message": _handle_message,
    "reasoning": _handle_reasoning,
    "function_call": _handle_function_call,
    "function_call_output": _handle_call_output,
    "local_shell_call": _handle_local_shell_call,
    "web_search_call": _handle_web_search_call,
    "custom_tool_call": _handle_custom_tool_call,
    "custom_tool_call_output": _handle_call_output,
}


def _decode_arguments(raw_args: Any) -> dict[str, Any]:
    if isinstance(raw_args, dict):
        return raw_args
    if not isinstance(raw_args, str) or not raw_args:
        return {}
    try:
        parsed = json.loads(raw_args)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _extract_safe_context(tool_name: str, raw_args: Any) -> Optional[str]:
    """read_file/view_image: basename of `path` (or `file_path`); grep_files: `pattern`."""
    args = _decode_arguments(raw_args)
    if not args:
        return None

    if tool_name in ("read_file", "view_image"):
        return to_basename(args.get("path")) or to_basename(args.get("file_path"))
    if tool_name == "grep_files":
        return safe_string(args.get("pattern"))
    return None
