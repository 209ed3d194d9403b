"""Parse raw JSONL log lines into tagged, validated records.

Source-agnostic: the parser only checks that a line is a JSON object, injects
the session/agent identity the reader attached to it, and validates it into
the record variant for its source. Anything else is dropped and logged.
"""
from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import TypeAdapter, ValidationError

from bridge.models import AnyRawRecord

logger = logging.getLogger("bridge.parser")

_RECORD_ADAPTER: TypeAdapter[AnyRawRecord] = TypeAdapter(AnyRawRecord)


def parse_jsonl_line(
    line: str,
    session_id: str,
    agent_id: Optional[str] = None,
    source: str = "claude-code",
) -> Optional[AnyRawRecord]:
    trimmed = (line or "").strip()
    if not trimmed:
        return None

    try:
        raw = json.loads(trimmed)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse JSONL line for session {session_id[:8]}: {e}")
        return None

    if not isinstance(raw, dict):
        logger.warning(f"Skipping non-object JSONL line for session {session_id[:8]} ({type(raw).__name__})")
        return None

    raw["sessionId"] = session_id
    raw["agentId"] = agent_id
    raw["source"] = source

    try:
        return _RECORD_ADAPTER.validate_python(raw)
    except ValidationError as e:
        logger.warning(
            f"Dropping {source} record for session {session_id[:8]}: "
            f"{e.error_count()} validation error(s)"
        )
        return None
