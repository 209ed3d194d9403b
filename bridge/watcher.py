"""Session log watcher using watchfiles.

Watches the Claude projects directory for JSONL session logs and feeds the
pipeline with discovery signals (a log became active) and line signals (one
complete appended line). Layout::

    <projects>/<project>/<session>.jsonl
    <projects>/<project>/<session>/subagents/<agent>.jsonl
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from watchfiles import Change, awatch

from bridge.events import to_project_name
from bridge.models import DiscoverySignal, LineSignal

logger = logging.getLogger("bridge.watcher")

SUBAGENTS_DIR = "subagents"


@dataclass(frozen=True)
class ParsedFilePath:
    sessionId: str
    project: str
    agentId: Optional[str] = None


def decode_project_dir(name: str) -> str:
    """`-Users-me-app` -> `app`. Claude encodes the project path with dashes."""
    if name.startswith("-"):
        name = "/" + name[1:]
    decoded = name.replace("-", "/")
    return to_project_name(decoded) or name


def parse_file_path(path: Union[str, Path]) -> ParsedFilePath:
    path = Path(path)
    file_id = path.stem
    parent = path.parent

    if parent.name == SUBAGENTS_DIR:
        session_dir = parent.parent
        return ParsedFilePath(
            sessionId=session_dir.name,
            project=decode_project_dir(session_dir.parent.name),
            agentId=file_id,
        )

    return ParsedFilePath(sessionId=file_id, project=decode_project_dir(parent.name))


def read_new_lines(path: Union[str, Path], offset: int) -> tuple[list[str], int]:
    """Read the complete lines appended after `offset`.

    A trailing partial line is left unread; the returned offset points at its
    first byte so the next read picks it up once the writer finishes it.
    """
    with open(path, "rb") as f:
        f.seek(offset)
        data = f.read()

    end = data.rfind(b"\n")
    if end < 0:
        return [], offset

    complete = data[: end + 1]
    # Split on newline bytes only; JSON strings may hold raw U+2028/U+2029/U+0085.
    lines = [
        raw.decode("utf-8", errors="replace").rstrip("\r")
        for raw in complete.split(b"\n")[:-1]
    ]
    return lines, offset + len(complete)


def _is_session_log(change: Change, path: str) -> bool:
    return path.endswith(".jsonl")


class SessionWatcher:
    """Background watcher that tails session logs into the pipeline."""

    def __init__(
        self,
        pipeline,
        projects_dir: Path,
        recency_seconds: float = 600,
        source: str = "claude-code",
        debounce_ms: int = 100,
    ):
        self.pipeline = pipeline
        self.projects_dir = Path(projects_dir)
        self.recency_seconds = recency_seconds
        self.source = source
        self.debounce_ms = debounce_ms
        self._offsets: dict[Path, int] = {}
        self._discovered: set[Path] = set()
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    async def start(self) -> None:
        """Scan existing logs, then watch for changes in a background task."""
        if self._running:
            logger.warning("Session watcher already running")
            return

        self._running = True
        self.scan_existing()
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop(self._stop_event))
        logger.info(f"Session watcher started for {self.projects_dir}")

    async def stop(self) -> None:
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Session watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def tracked_files(self) -> int:
        return len(self._offsets)

    def iter_session_logs(self) -> list[Path]:
        if not self.projects_dir.is_dir():
            return []
        top_level = self.projects_dir.glob("*/*.jsonl")
        subagents = self.projects_dir.glob(f"*/*/{SUBAGENTS_DIR}/*.jsonl")
        return sorted([*top_level, *subagents])

    def scan_existing(self, now: Optional[float] = None) -> int:
        """Start tailing every existing log at its current size.

        Logs modified within the recency window are announced to the pipeline.
        Returns the number of logs announced.
        """
        now = time.time() if now is None else now
        announced = 0
        for path in self.iter_session_logs():
            try:
                stat = path.stat()
            except OSError as e:
                logger.error(f"Error reading file stats for {path}: {e}")
                continue

            self._offsets[path] = stat.st_size
            modified_ago = now - stat.st_mtime
            if modified_ago > self.recency_seconds:
                continue

            parsed = self._announce(path)
            announced += 1
            logger.debug(f"Tracking recent session: {parsed.sessionId[:8]}... ({round(modified_ago / 60)}m ago)")
        return announced

    def process_file(self, path: Union[str, Path]) -> int:
        """Feed lines appended to `path` since the last read. Returns the line count."""
        path = Path(path)
        offset = self._offsets.get(path, 0)

        try:
            size = path.stat().st_size
            if size < offset:
                logger.info(f"Log truncated, re-reading from start: {path.name}")
                offset = 0
            if size == offset:
                return 0

            lines, new_offset = read_new_lines(path, offset)
        except OSError as e:
            logger.error(f"Error reading file changes for {path}: {e}")
            return 0

        self._offsets[path] = new_offset
        parsed = parse_file_path(path)
        if path not in self._discovered:
            self._announce(path, parsed)
            logger.debug(f"Session became active: {parsed.sessionId[:8]}...")

        count = 0
        for line in lines:
            if not line.strip():
                continue
            self.pipeline.handle_line(
                LineSignal(
                    line=line,
                    sessionId=parsed.sessionId,
                    agentId=parsed.agentId,
                    project=parsed.project,
                    source=self.source,
                    filePath=str(path),
                )
            )
            count += 1
        return count

    def forget_file(self, path: Union[str, Path]) -> None:
        path = Path(path)
        self._offsets.pop(path, None)
        self._discovered.discard(path)

    def _announce(self, path: Path, parsed: Optional[ParsedFilePath] = None) -> ParsedFilePath:
        parsed = parsed or parse_file_path(path)
        self._discovered.add(path)
        self.pipeline.handle_discovery(
            DiscoverySignal(
                sessionId=parsed.sessionId,
                agentId=parsed.agentId,
                project=parsed.project,
                source=self.source,
                filePath=str(path),
            )
        )
        return parsed

    def watched_path(self, path: Union[str, Path]) -> Optional[Path]:
        """Map a reported path onto the projects dir; None outside the log layout."""
        path = Path(path)
        relative = None
        for root in (self.projects_dir, self.projects_dir.resolve()):
            try:
                relative = path.relative_to(root)
                break
            except ValueError:
                continue
        if relative is None:
            return None

        depth = len(relative.parts)
        if depth == 2 or (depth == 4 and relative.parts[2] == SUBAGENTS_DIR):
            return self.projects_dir / relative
        return None

    async def _watch_loop(self, stop_event: asyncio.Event) -> None:
        if not self.projects_dir.exists():
            logger.warning(f"Projects directory does not exist, watcher has nothing to monitor: {self.projects_dir}")
            self._running = False
            return

        try:
            async for changes in awatch(
                self.projects_dir,
                watch_filter=_is_session_log,
                debounce=self.debounce_ms,
                stop_event=stop_event,
            ):
                if not self._running:
                    break

                for change_type, path_str in sorted(changes, key=lambda c: c[1]):
                    path = self.watched_path(path_str)
                    if path is None:
                        continue
                    if change_type == Change.deleted:
                        self.forget_file(path)
                        continue
                    try:
                        self.process_file(path)
                    except Exception as e:
                        logger.error(f"Error processing {path.name}: {e}")
        except asyncio.CancelledError:
            logger.info("Session watcher task cancelled")
        except Exception as e:
            logger.error(f"Session watcher error: {e}")
        finally:
            self._running = False
