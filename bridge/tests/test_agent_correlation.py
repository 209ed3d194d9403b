import itertools
import unittest

from bridge.channel import EventChannel
from bridge.session_registry import SessionRegistry


class AgentCorrelationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = SessionRegistry(EventChannel())
        self.registry.register_session("sess-1", "app")

    def _resolve(self, file_agent_id: str) -> str:
        return self.registry.resolve_agent_id("sess-1", file_agent_id)

    def test_spawn_then_file(self) -> None:
        self.registry.track_task_spawn("sess-1", "toolu_S1")
        self.registry.correlate_agent_file("sess-1", "agent-F1")
        self.assertEqual(self._resolve("agent-F1"), "toolu_S1")

    def test_file_before_spawn_is_deferred(self) -> None:
        self.registry.correlate_agent_file("sess-1", "agent-F1")
        self.assertEqual(self._resolve("agent-F1"), "agent-F1")

        self.registry.track_task_spawn("sess-1", "toolu_S1")
        self.assertEqual(self._resolve("agent-F1"), "toolu_S1")

    def test_active_file_id_is_replaced_when_bound(self) -> None:
        self.registry.register_session("sess-1", "app", agent_id="agent-F1")
        self.registry.correlate_agent_file("sess-1", "agent-F1")
        self.registry.track_task_spawn("sess-1", "toolu_S1")

        self.assertEqual(self.registry.get_session("sess-1").agentIds, {"toolu_S1"})

    def test_fifo_for_every_interleaving(self) -> None:
        operations = [("spawn", "S1"), ("spawn", "S2"), ("file", "F1"), ("file", "F2")]
        for order in itertools.permutations(operations):
            spawns = [name for kind, name in order if kind == "spawn"]
            files = [name for kind, name in order if kind == "file"]
            if spawns != ["S1", "S2"] or files != ["F1", "F2"]:
                continue
            with self.subTest(order=order):
                registry = SessionRegistry(EventChannel())
                registry.register_session("s", "app")
                for kind, name in order:
                    if kind == "spawn":
                        registry.track_task_spawn("s", name)
                    else:
                        registry.correlate_agent_file("s", name)

                self.assertEqual(registry.resolve_agent_id("s", "F1"), "S1")
                self.assertEqual(registry.resolve_agent_id("s", "F2"), "S2")

    def test_duplicate_file_does_not_consume_two_spawns(self) -> None:
        self.registry.track_task_spawn("sess-1", "toolu_S1")
        self.registry.track_task_spawn("sess-1", "toolu_S2")
        self.registry.correlate_agent_file("sess-1", "agent-F1")
        self.registry.correlate_agent_file("sess-1", "agent-F1")
        self.registry.correlate_agent_file("sess-1", "agent-F2")

        self.assertEqual(self._resolve("agent-F1"), "toolu_S1")
        self.assertEqual(self._resolve("agent-F2"), "toolu_S2")

    def test_duplicate_deferred_file_is_queued_once(self) -> None:
        self.registry.correlate_agent_file("sess-1", "agent-F1")
        self.registry.correlate_agent_file("sess-1", "agent-F1")
        self.registry.correlate_agent_file("sess-1", "agent-F2")
        self.registry.track_task_spawn("sess-1", "toolu_S1")
        self.registry.track_task_spawn("sess-1", "toolu_S2")

        self.assertEqual(self._resolve("agent-F1"), "toolu_S1")
        self.assertEqual(self._resolve("agent-F2"), "toolu_S2")

    def test_agent_completed_removes_reverse_mapping(self) -> None:
        self.registry.register_session("sess-1", "app", agent_id="toolu_S1")
        self.registry.track_task_spawn("sess-1", "toolu_S1")
        self.registry.correlate_agent_file("sess-1", "agent-F1")
        self.assertEqual(self._resolve("agent-F1"), "toolu_S1")

        self.registry.agent_completed("sess-1", "toolu_S1")

        self.assertEqual(self._resolve("agent-F1"), "agent-F1")
        self.assertNotIn("toolu_S1", self.registry.get_session("sess-1").agentIds)

    def test_agent_completed_for_unknown_agent_is_a_no_op(self) -> None:
        self.registry.track_task_spawn("sess-1", "toolu_S1")
        self.registry.correlate_agent_file("sess-1", "agent-F1")
        self.registry.agent_completed("sess-1", "toolu_other")
        self.assertEqual(self._resolve("agent-F1"), "toolu_S1")

    def test_unmatched_spawn_stays_pending_for_a_later_file(self) -> None:
        self.registry.track_task_spawn("sess-1", "toolu_S1")
        self.registry.handle_task_result("sess-1", "toolu_S1")
        self.registry.correlate_agent_file("sess-1", "agent-F1")

        # The spawn queue is independent of result tracking.
        self.assertEqual(self._resolve("agent-F1"), "toolu_S1")

    def test_sessions_are_isolated(self) -> None:
        self.registry.register_session("sess-2", "other")
        self.registry.track_task_spawn("sess-1", "toolu_S1")
        self.registry.correlate_agent_file("sess-2", "agent-F1")

        self.assertEqual(self.registry.resolve_agent_id("sess-2", "agent-F1"), "agent-F1")
        self.assertEqual(self.registry.resolve_agent_id("sess-1", "agent-F1"), "agent-F1")


if __name__ == "__main__":
    unittest.main()
