"""Pydantic models matching the client-side event protocol."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ToolCategory(str, Enum):
    FILE_READ = "file_read"
    FILE_WRITE = "file_write"
    TERMINAL = "terminal"
    SEARCH = "search"
    PLAN = "plan"
    COMMUNICATE = "communicate"
    SPAWN_AGENT = "spawn_agent"
    NOTEBOOK = "notebook"
    OTHER = "other"


class ToolMapping(BaseModel):
    category: ToolCategory
    detail: str


# ── Normalized events ──────────────────────────────────────────────

class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0
    cacheRead: Optional[int] = None
    cacheWrite: Optional[int] = None


class _BaseEvent(BaseModel):
    id: str
    sessionId: str
    timestamp: str
    agentId: Optional[str] = None


class SessionEvent(_BaseEvent):
    type: Literal["session"] = "session"
    action: Literal["started", "ended"]
    project: Optional[str] = None
    model: Optional[str] = None
    source: Optional[str] = None


class ActivityEvent(_BaseEvent):
    type: Literal["activity"] = "activity"
    action: Literal["thinking", "responding", "waiting", "user_prompt"]
    tokens: Optional[TokenUsage] = None


class ToolEvent(_BaseEvent):
    type: Literal["tool"] = "tool"
    tool: ToolCategory
    detail: Optional[str] = None
    status: Literal["started", "completed", "error"]
    toolUseId: str
    context: Optional[str] = None


class AgentEvent(_BaseEvent):
    type: Literal["agent"] = "agent"
    action: Literal["spawned", "completed", "error"]
    agentRole: Optional[str] = None


class ErrorEvent(_BaseEvent):
    type: Literal["error"] = "error"
    severity: Literal["warning", "error"]


class SummaryEvent(_BaseEvent):
    """Turn boundary marker."""
    type: Literal["summary"] = "summary"


PixelEvent = Annotated[
    Union[SessionEvent, ActivityEvent, ToolEvent, AgentEvent, ErrorEvent, SummaryEvent],
    Field(discriminator="type"),
]


# ── Raw log records (one tagged variant per source) ────────────────

class RawRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""
    timestamp: Optional[str] = None
    sessionId: str
    agentId: Optional[str] = None


class ClaudeCodeRecord(RawRecord):
    source: Literal["claude-code"] = "claude-code"
    message: Optional[dict[str, Any]] = None
    userType: Optional[str] = None


class CodexRecord(RawRecord):
    source: Literal["codex"] = "codex"
    payload: Optional[dict[str, Any]] = None


class AntigravityRecord(RawRecord):
    source: Literal["antigravity"] = "antigravity"
    message: Optional[dict[str, Any]] = None
    userType: Optional[str] = None


AnyRawRecord = Annotated[
    Union[ClaudeCodeRecord, CodexRecord, AntigravityRecord],
    Field(discriminator="source"),
]


# ── Session registry state ─────────────────────────────────────────

@dataclass
class SessionInfo:
    """Live state for one session. Owned exclusively by the session registry."""
    sessionId: str
    project: str
    source: str
    lastEventAt: datetime
    agentIds: set[str] = field(default_factory=set)
    pendingTaskIds: set[str] = field(default_factory=set)
    pendingSpawnQueue: deque[str] = field(default_factory=deque)
    agentIdMap: dict[str, str] = field(default_factory=dict)
    deferredAgentFiles: deque[str] = field(default_factory=deque)


class SessionStateEntry(BaseModel):
    sessionId: str
    project: str
    source: str
    lastEventAt: str
    agentIds: list[str] = Field(default_factory=list)
    pendingTaskIds: list[str] = Field(default_factory=list)


class BridgeState(BaseModel):
    sessions: list[SessionStateEntry] = Field(default_factory=list)
    timestamp: str


# ── Reader signals ─────────────────────────────────────────────────

class DiscoverySignal(BaseModel):
    sessionId: str
    agentId: Optional[str] = None
    project: str = ""
    source: str = "claude-code"
    filePath: Optional[str] = None


class LineSignal(BaseModel):
    line: str
    sessionId: str
    agentId: Optional[str] = None
    project: str = ""
    source: str = "claude-code"
    filePath: Optional[str] = None
