# src/livebuild/context/accumulator.py
"""
ContextAccumulator: keeps a sliding window of activity events and, on a
fixed period, hands a ContextSnapshot of that window to a callback.

    bus --(activity)--> on_event -> deque
    prune timer    ---> drop events older than the window
    snapshot timer ---> prune, partition, summarize, on_snapshot(snapshot)

Events are appended in arrival order and trimmed from the head only, so a
prune is a single forward scan that stops at the first event still inside
the window. A snapshot also drops older events left behind the head, as
server-stamped screen and voice captures can arrive out of order.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Iterable, List, Optional, Tuple

from livebuild.context.bus import EventBus
from livebuild.context.events import (
    ALL_ACTIVITY,
    ActivityEvent,
    AssistantActivity,
    RepositoryActivity,
    ScreenActivity,
    VoiceActivity,
)
from livebuild.managers.utils import PeriodicTask

logger = logging.getLogger(__name__)

SNAPSHOT_INTERVAL_SECONDS = 5 * 60
PRUNE_INTERVAL_SECONDS = 60

NO_ACTIVITY_SUMMARY = "No notable activity in the current window."


@dataclass(frozen=True)
class ContextSnapshot:
    timestamp: datetime
    screen_activity: Tuple[ScreenActivity, ...]
    voice_activity: Tuple[VoiceActivity, ...]
    claude_activity: Tuple[AssistantActivity, ...]
    git_activity: Tuple[RepositoryActivity, ...]
    summary: str

    @property
    def event_count(self) -> int:
        return (
            len(self.screen_activity)
            + len(self.voice_activity)
            + len(self.claude_activity)
            + len(self.git_activity)
        )


def _distinct(values: Iterable[Optional[str]]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


def build_summary(
    screen: List[ScreenActivity],
    voice: List[VoiceActivity],
    claude: List[AssistantActivity],
    git: List[RepositoryActivity],
) -> str:
    """
    One clause per non-empty variant, always in the order
    screen, voice, claude, git.
    """
    parts: List[str] = []

    if screen:
        apps = _distinct(s.app_name for s in screen)
        parts.append(
            f"Screen: {len(screen)} captures across "
            f"{', '.join(apps) if apps else 'unknown apps'}"
        )

    if voice:
        parts.append(f"Voice: {len(voice)} transcriptions")

    if claude:
        files = _distinct(f for c in claude for f in (c.files_modified or ()))
        tools = _distinct(t for c in claude for t in (c.tools_used or ()))
        clause = f"Claude: {len(claude)} interactions"
        if files:
            clause += f", modified {', '.join(files)}"
        if tools:
            clause += f", used {', '.join(tools)}"
        parts.append(clause)

    if git:
        repos = _distinct(g.repo for g in git)
        messages = "; ".join(g.commit_message for g in git)
        parts.append(f"Git: {len(git)} commits in {', '.join(repos)} — {messages}")

    if not parts:
        return NO_ACTIVITY_SUMMARY
    return ". ".join(parts) + "."


def partition_events(
    events: Iterable[ActivityEvent],
) -> Tuple[
    List[ScreenActivity],
    List[VoiceActivity],
    List[AssistantActivity],
    List[RepositoryActivity],
]:
    screen: List[ScreenActivity] = []
    voice: List[VoiceActivity] = []
    claude: List[AssistantActivity] = []
    git: List[RepositoryActivity] = []
    for event in events:
        if isinstance(event, ScreenActivity):
            screen.append(event)
        elif isinstance(event, VoiceActivity):
            voice.append(event)
        elif isinstance(event, AssistantActivity):
            claude.append(event)
        elif isinstance(event, RepositoryActivity):
            git.append(event)
        else:
            logger.warning("accumulator: ignoring unknown event %r", event)
    return screen, voice, claude, git


class ContextAccumulator:
    """
    Owns the event window. Everything here runs on the event-loop thread
    (bus delivery and both timers), so the deque needs no lock.
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        on_snapshot: Callable[[ContextSnapshot], None],
        window_minutes: float = 15,
        snapshot_interval_seconds: float = SNAPSHOT_INTERVAL_SECONDS,
        prune_interval_seconds: float = PRUNE_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if window_minutes <= 0:
            raise ValueError("window_minutes must be positive")
        self.bus = bus
        self.on_snapshot = on_snapshot
        self.window = timedelta(minutes=window_minutes)
        self.snapshot_interval_seconds = snapshot_interval_seconds
        self.prune_interval_seconds = prune_interval_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._events: Deque[ActivityEvent] = deque()
        self._prune_task: Optional[PeriodicTask] = None
        self._snapshot_task: Optional[PeriodicTask] = None

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> Tuple[ActivityEvent, ...]:
        return tuple(self._events)

    # ------------------------------------------------------------------
    # window maintenance
    # ------------------------------------------------------------------
    def on_event(self, event: ActivityEvent) -> None:
        self._events.append(event)
        logger.debug(
            "accumulator: event added type=%s total=%d", event.type.value, len(self._events)
        )

    def prune(self, now: Optional[datetime] = None) -> int:
        cutoff = (now or self._clock()) - self.window
        pruned = 0
        while self._events and self._events[0].timestamp < cutoff:
            self._events.popleft()
            pruned += 1
        if pruned:
            logger.debug(
                "accumulator: pruned %d old events, %d remaining", pruned, len(self._events)
            )
        return pruned

    def _drop_stragglers(self, cutoff: datetime) -> None:
        # server-stamped captures can sit behind newer events
        kept = [e for e in self._events if e.timestamp >= cutoff]
        if len(kept) != len(self._events):
            logger.debug(
                "accumulator: dropped %d out-of-order events", len(self._events) - len(kept)
            )
            self._events = deque(kept)

    def emit_snapshot(self, now: Optional[datetime] = None) -> Optional[ContextSnapshot]:
        now = now or self._clock()
        self.prune(now)
        self._drop_stragglers(now - self.window)

        if not self._events:
            logger.debug("accumulator: no events in window, skipping snapshot")
            return None

        screen, voice, claude, git = partition_events(self._events)
        snapshot = ContextSnapshot(
            timestamp=now,
            screen_activity=tuple(screen),
            voice_activity=tuple(voice),
            claude_activity=tuple(claude),
            git_activity=tuple(git),
            summary=build_summary(screen, voice, claude, git),
        )

        logger.info(
            "accumulator: emitting snapshot events=%d screen=%d voice=%d claude=%d git=%d",
            len(self._events),
            len(screen),
            len(voice),
            len(claude),
            len(git),
        )
        self.on_snapshot(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        self.bus.subscribe(ALL_ACTIVITY, self.on_event)
        self._prune_task = PeriodicTask(
            "accumulator-prune", self.prune_interval_seconds, self.prune
        )
        self._snapshot_task = PeriodicTask(
            "accumulator-snapshot", self.snapshot_interval_seconds, self.emit_snapshot
        )
        self._prune_task.start()
        self._snapshot_task.start()
        logger.info(
            "accumulator: started window=%s snapshot_every=%ss prune_every=%ss",
            self.window,
            self.snapshot_interval_seconds,
            self.prune_interval_seconds,
        )

    async def stop(self) -> None:
        self.bus.unsubscribe(ALL_ACTIVITY, self.on_event)
        for task in (self._prune_task, self._snapshot_task):
            if task is not None:
                await task.stop()
        self._prune_task = None
        self._snapshot_task = None
        logger.info("accumulator: stopped")


__all__ = [
    "ContextAccumulator",
    "ContextSnapshot",
    "NO_ACTIVITY_SUMMARY",
    "build_summary",
    "partition_events",
]
