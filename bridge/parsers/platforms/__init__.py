"""Per-source adapters and the registry that dispatches to them."""

from bridge.parsers.platforms.registry import ADAPTERS, SUPPORTED_SOURCES, transform_to_events

__all__ = ["ADAPTERS", "SUPPORTED_SOURCES", "transform_to_events"]
