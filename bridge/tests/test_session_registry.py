import asyncio
import unittest
from datetime import datetime, timedelta, timezone

from bridge.channel import EventChannel
from bridge.session_registry import SessionRegistry


class _FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 2, 16, 10, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class SessionRegistryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.channel = EventChannel()
        self.subscription = self.channel.subscribe()
        self.clock = _FakeClock()
        self.registry = SessionRegistry(self.channel, ttl_seconds=120, reap_interval_seconds=30, clock=self.clock)

    def _session_events(self) -> list[tuple[str, str]]:
        return [(e.action, e.sessionId) for e in self.subscription.drain() if e.type == "session"]

    def test_register_is_idempotent(self) -> None:
        first = self.registry.register_session("sess-1", "app")
        second = self.registry.register_session("sess-1", "app")

        self.assertIs(first, second)
        self.assertEqual(self._session_events(), [("started", "sess-1")])
        self.assertEqual(self.registry.get_active_count(), 1)

    def test_started_event_carries_project_and_source(self) -> None:
        self.registry.register_session("sess-1", "app", source="codex")
        event = self.subscription.drain()[0]
        self.assertEqual((event.project, event.source), ("app", "codex"))

    def test_repeat_register_adds_agent_without_reemitting(self) -> None:
        self.registry.register_session("sess-1", "app")
        self.registry.register_session("sess-1", "app", agent_id="agent-1")

        self.assertEqual(self.registry.get_session("sess-1").agentIds, {"agent-1"})
        self.assertEqual(len(self._session_events()), 1)

    def test_remove_emits_one_ended_and_purges_state(self) -> None:
        self.registry.register_session("sess-1", "app")
        self.registry.track_task_spawn("sess-1", "toolu_1")
        self.registry.remove_session("sess-1")
        self.registry.remove_session("sess-1")

        self.assertEqual(self._session_events(), [("started", "sess-1"), ("ended", "sess-1")])
        self.assertFalse(self.registry.has_session("sess-1"))
        self.assertFalse(self.registry.is_task_pending("sess-1", "toolu_1"))

    def test_unknown_sessions_are_no_ops(self) -> None:
        self.registry.record_activity("missing")
        self.registry.remove_session("missing")
        self.registry.track_task_spawn("missing", "toolu_1")
        self.registry.correlate_agent_file("missing", "agent-1")
        self.registry.agent_completed("missing", "toolu_1")

        self.assertEqual(self.registry.resolve_agent_id("missing", "agent-1"), "agent-1")
        self.assertFalse(self.registry.handle_task_result("missing", "toolu_1"))
        self.assertFalse(self.registry.is_task_pending("missing", "toolu_1"))
        self.assertEqual(self.subscription.drain(), [])

    def test_handle_task_result_is_true_once(self) -> None:
        self.registry.register_session("sess-1", "app")
        self.registry.track_task_spawn("sess-1", "toolu_1")

        self.assertTrue(self.registry.is_task_pending("sess-1", "toolu_1"))
        self.assertTrue(self.registry.handle_task_result("sess-1", "toolu_1"))
        self.assertFalse(self.registry.handle_task_result("sess-1", "toolu_1"))
        self.assertFalse(self.registry.handle_task_result("sess-1", "toolu_unknown"))

    def test_state_snapshot_hides_correlation_internals(self) -> None:
        self.registry.register_session("sess-1", "app", agent_id="agent-1")
        self.registry.track_task_spawn("sess-1", "toolu_1")
        self.registry.correlate_agent_file("sess-1", "file-a")
        self.registry.correlate_agent_file("sess-1", "file-b")

        state = self.registry.get_state().model_dump(mode="json")
        self.assertEqual(len(state["sessions"]), 1)
        entry = state["sessions"][0]
        self.assertEqual(
            set(entry),
            {"sessionId", "project", "source", "lastEventAt", "agentIds", "pendingTaskIds"},
        )
        self.assertEqual(entry["pendingTaskIds"], ["toolu_1"])
        self.assertEqual(entry["agentIds"], ["agent-1"])
        self.assertEqual(entry["lastEventAt"], "2026-02-16T10:00:00.000Z")
        self.assertTrue(state["timestamp"].endswith("Z"))


class TtlReaperTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.channel = EventChannel()
        self.subscription = self.channel.subscribe()
        self.clock = _FakeClock()
        self.registry = SessionRegistry(self.channel, ttl_seconds=120, reap_interval_seconds=30, clock=self.clock)

    def _ended(self) -> list[str]:
        return [e.sessionId for e in self.subscription.drain() if e.type == "session" and e.action == "ended"]

    def test_idle_session_is_reaped_once(self) -> None:
        self.registry.register_session("idle", "app")
        self.clock.advance(121)

        self.assertEqual(self.registry.reap_stale_sessions(), ["idle"])
        self.assertEqual(self.registry.reap_stale_sessions(), [])
        self.assertEqual(self._ended(), ["idle"])

    def test_active_session_is_kept(self) -> None:
        self.registry.register_session("busy", "app")
        self.registry.register_session("idle", "app")
        self.clock.advance(100)
        self.registry.record_activity("busy")
        self.clock.advance(50)

        self.assertEqual(self.registry.reap_stale_sessions(), ["idle"])
        self.assertTrue(self.registry.has_session("busy"))

    def test_idle_exactly_ttl_is_kept(self) -> None:
        self.registry.register_session("edge", "app")
        self.clock.advance(120)
        self.assertEqual(self.registry.reap_stale_sessions(), [])

    def test_explicit_now(self) -> None:
        self.registry.register_session("s", "app")
        later = self.clock.now + timedelta(minutes=5)
        self.assertEqual(self.registry.reap_stale_sessions(now=later), ["s"])

    def test_reaped_then_reregistered_session_starts_again(self) -> None:
        self.registry.register_session("s", "app")
        self.clock.advance(200)
        self.registry.reap_stale_sessions()
        self.registry.register_session("s", "app")

        actions = [e.action for e in self.subscription.drain() if e.type == "session"]
        self.assertEqual(actions, ["started", "ended", "started"])

    async def test_background_reaper_sweeps_periodically(self) -> None:
        registry = SessionRegistry(self.channel, ttl_seconds=120, reap_interval_seconds=0.01, clock=self.clock)
        registry.register_session("idle", "app")
        self.clock.advance(500)

        await registry.start()
        self.assertTrue(registry.is_running)
        for _ in range(100):
            if not registry.has_session("idle"):
                break
            await asyncio.sleep(0.01)
        await registry.stop()

        self.assertFalse(registry.is_running)
        self.assertFalse(registry.has_session("idle"))
        self.assertEqual(self._ended(), ["idle"])

    async def test_stop_without_start_and_cleanup(self) -> None:
        await self.registry.stop()
        self.registry.register_session("s", "app")
        self.subscription.drain()

        await self.registry.cleanup()
        self.assertEqual(self.registry.get_active_count(), 0)
        self.assertEqual(self.subscription.drain(), [])


if __name__ == "__main__":
    unittest.main()
