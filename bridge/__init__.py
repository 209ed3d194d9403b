"""Pixel Office Bridge: normalized, privacy-safe activity events from AI coding-agent logs."""
