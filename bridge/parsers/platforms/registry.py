"""Source adapter registry for platform-specific log schemas."""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from bridge.models import PixelEvent
from bridge.parsers.platforms.antigravity import adapter as antigravity_adapter
from bridge.parsers.platforms.claude_code import adapter as claude_code_adapter
from bridge.parsers.platforms.codex import adapter as codex_adapter

logger = logging.getLogger("bridge.parser")

Adapter = Callable[[Any], list[PixelEvent]]

ADAPTERS: dict[str, Adapter] = {
    claude_code_adapter.SOURCE: claude_code_adapter.adapt,
    codex_adapter.SOURCE: codex_adapter.adapt,
    antigravity_adapter.SOURCE: antigravity_adapter.adapt,
}

SUPPORTED_SOURCES = tuple(ADAPTERS)


def transform_to_events(record: Any, source: Optional[str] = None) -> list[PixelEvent]:
    """Transform a parsed record into normalized events with its source adapter.

    `source` defaults to the record's own tag. Unknown sources yield no events.
    """
    record_source = getattr(record, "source", None)
    source = source or record_source or ""
    adapter = ADAPTERS.get(source)
    if adapter is None:
        logger.warning(f"No adapter for source: {source or '<missing>'}")
        return []
    if record_source != source:
        logger.warning(f"Record tagged {record_source!r} cannot be adapted as {source!r}")
        return []
    return adapter(record)
