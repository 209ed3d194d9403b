"""Glue between the reader signals and the event channel.

One line signal flows parser → source adapter → registry enrichment and
correlation → channel. Events of a single line are published in the order the
adapter produced them; a completed sub-agent's derived agent event follows its
tool result directly.
"""
from __future__ import annotations

import logging

from bridge.channel import EventChannel
from bridge.events import create_agent_event
from bridge.models import DiscoverySignal, LineSignal, PixelEvent, ToolCategory, ToolEvent
from bridge.parsers.platforms.registry import transform_to_events
from bridge.parsers.records import parse_jsonl_line
from bridge.session_registry import SessionRegistry

logger = logging.getLogger("bridge.pipeline")


class BridgePipeline:
    def __init__(self, registry: SessionRegistry, channel: EventChannel):
        self.registry = registry
        self.channel = channel
        self.lines_processed = 0
        self.events_published = 0

    def handle_discovery(self, signal: DiscoverySignal) -> None:
        """A session log (or sub-agent log) appeared on disk."""
        session_id = signal.sessionId
        self.registry.register_session(session_id, signal.project, source=signal.source)
        if signal.agentId:
            self.registry.correlate_agent_file(session_id, signal.agentId)
            agent_id = self.registry.resolve_agent_id(session_id, signal.agentId)
            self.registry.register_session(session_id, signal.project, agent_id=agent_id, source=signal.source)

    def handle_line(self, signal: LineSignal) -> list[PixelEvent]:
        """Process one appended log line. Returns the events published for it."""
        session_id = signal.sessionId
        if not self.registry.has_session(session_id):
            # A fresh session has no bindings, so the file id is its resolved form.
            self.registry.register_session(session_id, signal.project, agent_id=signal.agentId, source=signal.source)

        agent_id = None
        if signal.agentId:
            agent_id = self.registry.resolve_agent_id(session_id, signal.agentId)

        record = parse_jsonl_line(signal.line, session_id, agent_id, signal.source)
        if record is None:
            return []
        self.lines_processed += 1

        events = transform_to_events(record, signal.source)
        self.registry.record_activity(session_id)

        published: list[PixelEvent] = []
        for event in events:
            published.append(event)
            self.channel.publish(event)

            if not isinstance(event, ToolEvent):
                continue

            if event.status == "started":
                if event.tool == ToolCategory.SPAWN_AGENT:
                    self.registry.track_task_spawn(session_id, event.toolUseId)
                continue

            if self.registry.handle_task_result(session_id, event.toolUseId):
                action = "error" if event.status == "error" else "completed"
                agent_event = create_agent_event(session_id, event.toolUseId, event.timestamp, action)
                published.append(agent_event)
                self.channel.publish(agent_event)
                self.registry.agent_completed(session_id, event.toolUseId)
                logger.debug(f"Sub-agent {event.toolUseId} {action} in session {session_id[:8]}...")

        self.events_published += len(published)
        return published
