"""Map Claude Code JSONL session records into normalized events.

Privacy: thinking text, responses, prompts, command lines, URLs, search
queries, file contents, edit strings and todo items never leave this module.
Only presence signals, tool categories and the per-tool context strings
documented in `TOOL_TO_CATEGORY` / `_extract_safe_context` cross the boundary.

Raw shape (one JSON object per line)::

    {"type": "assistant" | "user" | "summary" | "system" | "progress" | ...,
     "timestamp": "...",
     "userType": "external" | "tool_result",
     "message": {"content": [<block>, ...] | "<text>",
                 "usage": {"input_tokens": n, "output_tokens": n,
                           "cache_read_input_tokens": n,
                           "cache_creation_input_tokens": n}}}

Content blocks are `thinking`, `text`, `tool_use` (`id`, `name`, `input`) and
`tool_result` (`tool_use_id`, `content`, `is_error`).
"""
from __future__ import annotations

from typing import Any, Optional

from bridge.date_utils import now_iso
from bridge.events import (
    DEFAULT_AGENT_ROLE,
    NO_CONTENT_SENTINEL,
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
from bridge.models import ClaudeCodeRecord, PixelEvent, ToolCategory, ToolMapping

SOURCE = "claude-code"

# Tool that starts a sub-agent; its tool_use id becomes the agent identity.
SPAWN_TOOL = "Task"
ASK_USER_TOOL = "AskUserQuestion"

TOOL_TO_CATEGORY: dict[str, ToolMapping] = {
    "Read": ToolMapping(category=ToolCategory.FILE_READ, detail="read"),
    "Write": ToolMapping(category=ToolCategory.FILE_WRITE, detail="write"),
    "Edit": ToolMapping(category=ToolCategory.FILE_WRITE, detail="edit"),
    "MultiEdit": ToolMapping(category=ToolCategory.FILE_WRITE, detail="edit"),
    "Bash": ToolMapping(category=ToolCategory.TERMINAL, detail="bash"),
    "Grep": ToolMapping(category=ToolCategory.SEARCH, detail="grep"),
    "Glob": ToolMapping(category=ToolCategory.SEARCH, detail="glob"),
    "WebFetch": ToolMapping(category=ToolCategory.SEARCH, detail="web_fetch"),
    "WebSearch": ToolMapping(category=ToolCategory.SEARCH, detail="web_search"),
    "Task": ToolMapping(category=ToolCategory.SPAWN_AGENT, detail="task"),
    "TodoWrite": ToolMapping(category=ToolCategory.PLAN, detail="todo"),
    "EnterPlanMode": ToolMapping(category=ToolCategory.PLAN, detail="enter_plan"),
    "ExitPlanMode": ToolMapping(category=ToolCategory.PLAN, detail="exit_plan"),
    "AskUserQuestion": ToolMapping(category=ToolCategory.COMMUNICATE, detail="ask_user"),
    "NotebookEdit": ToolMapping(category=ToolCategory.NOTEBOOK, detail="notebook"),
}

# Record kinds that are recognized but carry nothing to visualize.
_INERT_TYPES = {"system", "progress", "queue-operation", "file-history-snapshot"}


def adapt(record: ClaudeCodeRecord) -> list[PixelEvent]:
    session_id = record.sessionId
    agent_id = record.agentId or None
    timestamp = record.timestamp or now_iso()

    if record.type == "assistant":
        return _handle_assistant(record, session_id, agent_id, timestamp)
    if record.type == "user":
        return _handle_user(record, session_id, agent_id, timestamp)
    if record.type == "summary":
        return [create_summary_event(session_id, timestamp)]
    return []


def _handle_assistant(
    record: ClaudeCodeRecord,
    session_id: str,
    agent_id: Optional[str],
    timestamp: str,
) -> list[PixelEvent]:
    events: list[PixelEvent] = []
    message = record.message or {}
    content = message.get("content")
    if not isinstance(content, list):
        return events

    tokens = extract_tokens(message.get("usage"))

    for block in content:
        if not isinstance(block, dict):
            continue

        block_type = block.get("type")
        if block_type == "thinking":
            events.append(create_activity_event(session_id, agent_id, timestamp, "thinking"))
        elif block_type == "text":
            if block.get("text") == NO_CONTENT_SENTINEL:
                events.append(create_activity_event(session_id, agent_id, timestamp, "thinking"))
            else:
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

    if tool_name == SPAWN_TOOL:
        role = safe_string(tool_input.get("subagent_type")) or DEFAULT_AGENT_ROLE
        events.append(create_agent_event(session_id, tool_use_id, timestamp, "spawned", role))
    if tool_name == ASK_USER_TOOL:
        events.append(create_activity_event(session_id, agent_id, timestamp, "waiting"))

    return events


def _handle_user(
    record: ClaudeCodeRecord,
    session_id: str,
    agent_id: Optional[str],
    timestamp: str,
) -> list[PixelEvent]:
    events: list[PixelEvent] = []
    message = record.message or {}
    content = message.get("content")
    if not content:
        return events

    # Terminal CLI logs store plain prompts as a bare string.
    if isinstance(content, str):
        content = [{"type": "text", "text": content}]
    if not isinstance(content, list):
        return events

    blocks = [block for block in content if isinstance(block, dict)]
    has_results = any(block.get("type") == "tool_result" for block in blocks)

    if record.userType == "tool_result" or has_results:
        for block in blocks:
            if block.get("type") != "tool_result":
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

    has_text = any(block.get("type") == "text" and safe_string(block.get("text")) for block in blocks)
    if has_text:
        events.append(create_activity_event(session_id, agent_id, timestamp, "user_prompt"))
    return events


def _extract_safe_context(tool_name: str, tool_input: dict[str, Any]) -> Optional[str]:
    """Allowlisted context per tool.

    Read/Write/Edit/MultiEdit: basename of `file_path`.
    NotebookEdit: basename of `notebook_path`.
    Bash: the user-facing one-line `description`, never the command.
    Grep/Glob: the search `pattern`.
    Task: the `subagent_type`.
    TodoWrite: "<n> items".
    Everything else: no context.
    """
    if not tool_input:
        return None

    if tool_name in ("Read", "Write", "Edit", "MultiEdit"):
        return to_basename(tool_input.get("file_path"))
    if tool_name == "NotebookEdit":
        return to_basename(tool_input.get("notebook_path"))
    if tool_name == "Bash":
        return safe_string(tool_input.get("description"))
    if tool_name in ("Grep", "Glob"):
        return safe_string(tool_input.get("pattern"))
    if tool_name == SPAWN_TOOL:
        return safe_string(tool_input.get("subagent_type"))
    if tool_name == "TodoWrite":
        todos = tool_input.get("todos")
        return f"{len(todos)} items" if isinstance(todos, list) else None
    return None
