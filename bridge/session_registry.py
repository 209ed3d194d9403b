"""Session registry: lifecycle, sub-agent tracking and spawn correlation.

A Task-style tool call and the sub-agent log file it eventually produces
arrive independently, in either order. Both are queued per session and paired
strictly first-in first-out: the Nth spawn binds to the Nth distinct sub-agent
file. Queue membership means "unresolved", map membership means "resolved";
only `_bind_next` moves an id from the queues into the map.

All operations are synchronous and complete without yielding, so the reaper
task and record processing only interleave between whole operations.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from bridge.channel import EventChannel
from bridge.date_utils import format_datetime_utc, now_iso, utc_now
from bridge.events import create_session_event
from bridge.models import BridgeState, SessionInfo, SessionStateEntry

logger = logging.getLogger("bridge.session")

DEFAULT_SOURCE = "claude-code"


class SessionRegistry:
    """Owns every `SessionInfo`; publishes session started/ended events."""

    def __init__(
        self,
        channel: EventChannel,
        ttl_seconds: float = 120,
        reap_interval_seconds: float = 30,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._channel = channel
        self.ttl_seconds = ttl_seconds
        self.reap_interval_seconds = reap_interval_seconds
        self._clock = clock or utc_now
        self._sessions: dict[str, SessionInfo] = {}
        self._reap_task: Optional[asyncio.Task] = None

    # ── Lifecycle ──────────────────────────────────────────────────

    def register_session(
        self,
        session_id: str,
        project: str,
        agent_id: Optional[str] = None,
        source: str = DEFAULT_SOURCE,
    ) -> SessionInfo:
        session = self._sessions.get(session_id)
        if session is None:
            session = SessionInfo(
                sessionId=session_id,
                project=project,
                source=source,
                lastEventAt=self._clock(),
            )
            self._sessions[session_id] = session
            logger.info(f"Streaming session {session_id[:8]}... ({project})")
            self._channel.publish(create_session_event(session_id, "started", project=project, source=source))

        if agent_id:
            session.agentIds.add(agent_id)
        return session

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get_session(self, session_id: str) -> Optional[SessionInfo]:
        return self._sessions.get(session_id)

    def record_activity(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        now = self._clock()
        if now > session.lastEventAt:
            session.lastEventAt = now

    def remove_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        logger.debug(f"Session removed: {session_id[:8]}...")
        self._channel.publish(
            create_session_event(session_id, "ended", project=session.project, source=session.source)
        )

    # ── Task / agent tracking ──────────────────────────────────────

    def track_task_spawn(self, session_id: str, tool_use_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.pendingTaskIds.add(tool_use_id)
        session.pendingSpawnQueue.append(tool_use_id)
        self._drain_deferred(session)

    def handle_task_result(self, session_id: str, tool_use_id: str) -> bool:
        """Clear a pending spawn. True only for the first result of a tracked spawn."""
        session = self._sessions.get(session_id)
        if session is None or tool_use_id not in session.pendingTaskIds:
            return False
        session.pendingTaskIds.discard(tool_use_id)
        return True

    def is_task_pending(self, session_id: str, tool_use_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and tool_use_id in session.pendingTaskIds

    def agent_completed(self, session_id: str, agent_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return

        session.agentIds.discard(agent_id)
        # Reverse lookup; a session rarely has more than a handful of sub-agents.
        for file_agent_id, mapped_id in session.agentIdMap.items():
            if mapped_id == agent_id:
                del session.agentIdMap[file_agent_id]
                break
        logger.debug(f"Agent completed: {agent_id} in session {session_id[:8]}...")

    # ── Sub-agent file correlation (FIFO) ──────────────────────────

    def correlate_agent_file(self, session_id: str, file_agent_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        if file_agent_id in session.agentIdMap or file_agent_id in session.deferredAgentFiles:
            return

        session.deferredAgentFiles.append(file_agent_id)
        self._drain_deferred(session)

    def resolve_agent_id(self, session_id: str, file_agent_id: str) -> str:
        session = self._sessions.get(session_id)
        if session is None:
            return file_agent_id
        return session.agentIdMap.get(file_agent_id, file_agent_id)

    def _drain_deferred(self, session: SessionInfo) -> None:
        while session.deferredAgentFiles and session.pendingSpawnQueue:
            self._bind_next(session)

    def _bind_next(self, session: SessionInfo) -> None:
        file_agent_id = session.deferredAgentFiles.popleft()
        tool_use_id = session.pendingSpawnQueue.popleft()
        session.agentIdMap[file_agent_id] = tool_use_id
        # An agent announced before its spawn was active under its file id.
        if file_agent_id in session.agentIds:
            session.agentIds.discard(file_agent_id)
            session.agentIds.add(tool_use_id)
        logger.debug(f"Correlated agent file {file_agent_id} -> {tool_use_id}")

    # ── State queries ──────────────────────────────────────────────

    def get_state(self) -> BridgeState:
        sessions = [
            SessionStateEntry(
                sessionId=session_id,
                project=info.project,
                source=info.source,
                lastEventAt=format_datetime_utc(info.lastEventAt),
                agentIds=list(info.agentIds),
                pendingTaskIds=list(info.pendingTaskIds),
            )
            for session_id, info in self._sessions.items()
        ]
        return BridgeState(sessions=sessions, timestamp=now_iso())

    def get_active_count(self) -> int:
        return len(self._sessions)

    # ── TTL reaper ─────────────────────────────────────────────────

    def reap_stale_sessions(self, now: Optional[datetime] = None) -> list[str]:
        """Remove every session idle for longer than the TTL. Returns the reaped ids."""
        now = now or self._clock()
        reaped: list[str] = []
        for session_id in list(self._sessions):
            session = self._sessions.get(session_id)
            if session is None:
                continue
            idle_seconds = (now - session.lastEventAt).total_seconds()
            if idle_seconds > self.ttl_seconds:
                logger.debug(f"Reaping stale session: {session_id[:8]}... (idle {round(idle_seconds)}s)")
                self.remove_session(session_id)
                reaped.append(session_id)
        return reaped

    async def start(self) -> None:
        """Start the periodic reaper in a background task."""
        if self._reap_task is not None and not self._reap_task.done():
            logger.warning("Session reaper already running")
            return
        self._reap_task = asyncio.create_task(self._reap_loop())
        logger.info(
            f"Session reaper started (ttl={self.ttl_seconds}s, interval={self.reap_interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Cancel the reaper task."""
        task = self._reap_task
        self._reap_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Session reaper stopped")

    @property
    def is_running(self) -> bool:
        return self._reap_task is not None and not self._reap_task.done()

    async def _reap_loop(self) -> None:
        while True:
            await asyncio.sleep(self.reap_interval_seconds)
            try:
                self.reap_stale_sessions()
            except Exception as e:
                logger.error(f"Session reap failed: {e}")

    async def cleanup(self) -> None:
        """Stop the reaper and forget every session without emitting events.

        Runs at shutdown, once subscribers are closed, so no `ended` events are owed.
        """
        await self.stop()
        self._sessions.clear()
