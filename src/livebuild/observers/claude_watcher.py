# src/livebuild/observers/claude_watcher.py
"""
ClaudeCodeWatcher: turns AI-assistant session logs into AssistantActivity
events.

Session logs are JSONL files under `<history>/projects/**`. The watcher keeps
a per-file line offset in AppState.claude_offsets and, whenever a file grows,
parses only the lines past that offset. Files present before startup (or
created while running) start at their current line count, so old history is
never replayed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from watchdog.observers import Observer

from livebuild.context.bus import EventBus
from livebuild.context.events import AssistantActivity
from livebuild.managers.utils import spawn
from livebuild.observers.fs_events import CREATED, LoopForwardingHandler
from livebuild.state.store import StateStore

logger = logging.getLogger(__name__)

_USER_TYPES = ("user", "human")


# ============================================================================
# Parsing
# ============================================================================

def read_lines(path: Path) -> List[str]:
    """Non-empty lines of a JSONL file."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return [line for line in text.split("\n") if line.strip()]


def _blocks(entry: Dict[str, Any]) -> List[Dict[str, Any]]:
    message = entry.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if isinstance(content, list):
        return [b for b in content if isinstance(b, dict)]
    return []


def message_text(entry: Dict[str, Any]) -> str:
    """Plain text of an entry's message: a string, or its text blocks joined."""
    message = entry.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if isinstance(content, str):
        return content.strip()
    texts = [
        b["text"]
        for b in _blocks(entry)
        if b.get("type") == "text" and isinstance(b.get("text"), str) and b["text"]
    ]
    return "\n".join(texts).strip()


def tools_and_files(entries: Sequence[Dict[str, Any]]) -> Tuple[List[str], List[str]]:
    tools: List[str] = []
    files: List[str] = []
    for entry in entries:
        name = entry.get("toolName") or entry.get("tool_name")
        if name:
            tools.append(str(name))
        if entry.get("filePath"):
            files.append(str(entry["filePath"]))
        for block in _blocks(entry):
            if block.get("type") != "tool_use":
                continue
            if block.get("name"):
                tools.append(str(block["name"]))
            tool_input = block.get("input")
            if isinstance(tool_input, dict):
                path = tool_input.get("file_path") or tool_input.get("path")
                if path:
                    files.append(str(path))
    return tools, files


def _is_user_prompt(entry: Dict[str, Any]) -> bool:
    message = entry.get("message")
    return (
        entry.get("type") in _USER_TYPES
        and isinstance(message, dict)
        and message.get("role") == "user"
    )


def parse_exchanges(
    lines: Sequence[str],
    session_id: str,
    *,
    now: datetime,
) -> List[AssistantActivity]:
    """
    Rebuild user/assistant exchanges from raw JSONL lines.

    An exchange opens on a user prompt and closes on the first assistant
    entry with text; tool and file mentions seen in between are attached to
    it. A new prompt while one is still open emits the open one without a
    reply, and so does a prompt left open at the end of `lines`. User entries
    with no text (tool results) are treated as in-between entries.
    Unparseable lines are skipped.
    """
    activities: List[AssistantActivity] = []
    pending: List[Dict[str, Any]] = []
    prompt: Optional[str] = None

    def emit(reply: Optional[str]) -> None:
        tools, files = tools_and_files(pending)
        activities.append(
            AssistantActivity(
                timestamp=now,
                session_id=session_id,
                user_message=prompt,
                assistant_message=reply,
                tools_used=tools,
                files_modified=files,
            )
        )
        pending.clear()

    for line in lines:
        try:
            entry = json.loads(line)
        except ValueError:
            continue
        if not isinstance(entry, dict):
            continue

        if _is_user_prompt(entry):
            text = message_text(entry)
            if not text:
                pending.append(entry)
                continue
            if prompt:
                emit(None)
            prompt = text
        elif entry.get("type") == "assistant":
            pending.append(entry)
            reply = message_text(entry)
            if reply and prompt:
                emit(reply)
                prompt = None
        else:
            pending.append(entry)

    if prompt:
        emit(None)
    return activities


# ============================================================================
# Watcher
# ============================================================================

class ClaudeCodeWatcher:
    def __init__(
        self,
        *,
        bus: EventBus,
        state_store: StateStore,
        history_path: str,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.bus = bus
        self.state_store = state_store
        self.projects_path = Path(history_path).expanduser() / "projects"
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._observer: Optional[Observer] = None
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        if not self.projects_path.is_dir():
            logger.info("claude watcher: %s not found, skipping", self.projects_path)
            return
        await self.init_existing()

        loop = asyncio.get_running_loop()
        handler = LoopForwardingHandler(
            loop,
            self._schedule,
            lambda path: path.suffix == ".jsonl",
        )
        observer = Observer()
        observer.schedule(handler, str(self.projects_path), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("claude watcher: watching %s", self.projects_path)

    async def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5.0)
            self._observer = None
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("claude watcher: stopped")

    def _schedule(self, kind: str, path: Path) -> None:
        work = self.init_offset(path) if kind == CREATED else self.process(path)
        spawn(work, self._tasks, what=f"claude watcher {kind} handling of {path}")

    # ------------------------------------------------------------------
    # offsets
    # ------------------------------------------------------------------
    async def init_existing(self) -> int:
        """
        Record the current line count of every session log that has no
        offset yet. Returns how many files were initialised.
        """
        paths = await asyncio.to_thread(lambda: sorted(self.projects_path.rglob("*.jsonl")))
        count = 0
        for path in paths:
            if await self.init_offset(path):
                count += 1
        return count

    async def init_offset(self, path: Path) -> bool:
        key = str(path)
        async with self._lock:
            state = self.state_store.load()
            if key in state.claude_offsets:
                return False
            try:
                lines = await asyncio.to_thread(read_lines, path)
            except OSError:
                logger.warning("claude watcher: could not read %s", path, exc_info=True)
                return False
            state = self.state_store.load()
            state.claude_offsets[key] = len(lines)
            self.state_store.save(state)
            logger.debug("claude watcher: offset for %s set to %d", path, len(lines))
            return True

    async def process(self, path: Path) -> List[AssistantActivity]:
        """
        Publish exchanges from lines appended to `path` since its offset.
        """
        key = str(path)
        async with self._lock:
            offset = self.state_store.load().claude_offsets.get(key, 0)
            try:
                lines = await asyncio.to_thread(read_lines, path)
            except OSError:
                logger.warning("claude watcher: could not read %s", path, exc_info=True)
                return []

            if len(lines) <= offset:
                if len(lines) < offset:
                    # file was truncated or rewritten
                    state = self.state_store.load()
                    state.claude_offsets[key] = len(lines)
                    self.state_store.save(state)
                return []

            activities = parse_exchanges(lines[offset:], path.stem, now=self._clock())
            for activity in activities:
                self.bus.publish(activity)
                logger.info(
                    "claude watcher: exchange in %s prompt=%r tools=%s",
                    activity.session_id,
                    (activity.user_message or "")[:100],
                    activity.tools_used,
                )

            state = self.state_store.load()
            state.claude_offsets[key] = len(lines)
            self.state_store.save(state)
            return activities


__all__ = [
    "ClaudeCodeWatcher",
    "message_text",
    "parse_exchanges",
    "read_lines",
    "tools_and_files",
]
