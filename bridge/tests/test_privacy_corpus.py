import json
import unittest

from bridge.events import serialize_event
from bridge.parsers.platforms.registry import SUPPORTED_SOURCES, transform_to_events
from bridge.parsers.records import parse_jsonl_line

SECRETS = [
    "sk-ant-api03-SECRET",
    "/Users/alice/work/payments",
    "hunter2",
    "rm -rf /var/lib/postgres",
    "curl -H 'Authorization: Bearer abc'",
    "Please migrate the billing database",
    "internal.corp.example.com",
    "const apiKey =",
    "Investigating the outage privately",
]

CORPUS: dict[str, list[dict]] = {
    "claude-code": [
        {"type": "user", "message": {"content": "Please migrate the billing database, password hunter2"}},
        {
            "type": "assistant",
            "message": {
                "content": [
                    {"type": "thinking", "thinking": "Investigating the outage privately"},
                    {"type": "text", "text": "I'll use sk-ant-api03-SECRET"},
                    {"type": "tool_use", "id": "t1", "name": "Read", "input": {"file_path": "/Users/alice/work/payments/auth.ts"}},
                    {"type": "tool_use", "id": "t2", "name": "Bash", "input": {"command": "rm -rf /var/lib/postgres"}},
                    {"type": "tool_use", "id": "t3", "name": "WebFetch", "input": {"url": "https://internal.corp.example.com"}},
                    {"type": "tool_use", "id": "t4", "name": "Write", "input": {"file_path": "/Users/alice/work/payments/key.ts", "content": "const apiKey = 1"}},
                    {"type": "tool_use", "id": "t5", "name": "Task", "input": {"prompt": "Please migrate the billing database"}},
                ]
            },
        },
        {
            "type": "user",
            "userType": "tool_result",
            "message": {"content": [{"type": "tool_result", "tool_use_id": "t1", "content": "const apiKey = 'sk-ant-api03-SECRET'"}]},
        },
        {"type": "summary", "summary": "Investigating the outage privately"},
    ],
    "codex": [
        {"type": "session_meta", "payload": {"cwd": "/Users/alice/work/payments"}},
        {"type": "response_item", "payload": {"type": "message", "role": "user", "content": [{"type": "input_text", "text": "Please migrate the billing database"}]}},
        {"type": "response_item", "payload": {"type": "reasoning", "summary": [{"text": "Investigating the outage privately"}]}},
        {
            "type": "response_item",
            "payload": {
                "type": "function_call",
                "name": "shell",
                "call_id": "c1",
                "arguments": json.dumps({"command": ["bash", "-lc", "curl -H 'Authorization: Bearer abc'"]}),
            },
        },
        {
            "type": "response_item",
            "payload": {"type": "function_call", "name": "read_file", "call_id": "c2", "arguments": json.dumps({"path": "/Users/alice/work/payments/auth.ts"})},
        },
        {"type": "response_item", "payload": {"type": "function_call_output", "call_id": "c1", "output": "hunter2"}},
    ],
    "antigravity": [
        {"type": "user", "message": {"content": "Please migrate the billing database"}},
        {
            "type": "model",
            "message": {
                "content": [
                    {"type": "thinking", "thinking": "Investigating the outage privately"},
                    {"type": "tool_use", "id": "a1", "name": "runCommand", "input": {"CommandLine": "rm -rf /var/lib/postgres"}},
                    {"type": "tool_use", "id": "a2", "name": "readFile", "input": {"AbsolutePath": "/Users/alice/work/payments/auth.ts"}},
                    {"type": "tool_use", "id": "a3", "name": "readUrl", "input": {"Url": "https://internal.corp.example.com"}},
                ]
            },
        },
        {"type": "user", "userType": "tool_result", "message": {"content": [{"type": "tool_result", "tool_use_id": "a1", "content": "sk-ant-api03-SECRET"}]}},
    ],
}


class PrivacyCorpusTests(unittest.TestCase):
    def _run(self, source: str) -> list[dict]:
        payloads: list[dict] = []
        for raw in CORPUS[source]:
            record = parse_jsonl_line(json.dumps(raw), "sess-privacy", source=source)
            self.assertIsNotNone(record)
            payloads.extend(serialize_event(event) for event in transform_to_events(record, source))
        return payloads

    def test_every_source_has_a_corpus(self) -> None:
        self.assertEqual(set(CORPUS), set(SUPPORTED_SOURCES))

    def test_serialized_output_never_contains_secrets(self) -> None:
        for source in CORPUS:
            with self.subTest(source=source):
                serialized = json.dumps(self._run(source))
                for secret in SECRETS:
                    self.assertNotIn(secret, serialized)

    def test_serialized_output_keeps_basenames_and_categories(self) -> None:
        for source in CORPUS:
            with self.subTest(source=source):
                payloads = self._run(source)
                contexts = {p.get("context") for p in payloads if p["type"] == "tool"}
                categories = {p.get("tool") for p in payloads if p["type"] == "tool"}
                self.assertIn("auth.ts", contexts)
                self.assertIn("file_read", categories)
                self.assertIn("terminal", categories)


if __name__ == "__main__":
    unittest.main()
