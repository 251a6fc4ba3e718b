# src/livebuild/context/events.py
"""
Immutable activity events that observers publish on the EventBus and the
ContextAccumulator consumes.

Every event carries a `type` tag and a timezone-aware `timestamp`. The four
variants map one-to-one onto the bus channels below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Tuple, Union

MAX_ASSISTANT_MESSAGE_CHARS = 500


class ActivityType(str, Enum):
    SCREEN = "screen-activity"
    VOICE = "voice-activity"
    ASSISTANT = "claude-activity"
    REPOSITORY = "git-activity"


# catch-all channel: receives every event regardless of variant
ALL_ACTIVITY = "activity"


def _distinct(values: Optional[Iterable[str]]) -> Optional[Tuple[str, ...]]:
    """
    De-duplicate while keeping first-seen order. Empty input collapses to None.
    """
    if not values:
        return None
    out = tuple(dict.fromkeys(v for v in values if v))
    return out or None


@dataclass(frozen=True)
class ScreenActivity:
    timestamp: datetime
    ocr_text: str
    app_name: Optional[str] = None
    window_title: Optional[str] = None
    type: ActivityType = field(default=ActivityType.SCREEN, init=False)


@dataclass(frozen=True)
class VoiceActivity:
    timestamp: datetime
    transcript: str
    type: ActivityType = field(default=ActivityType.VOICE, init=False)


@dataclass(frozen=True)
class AssistantActivity:
    """
    One completed user/assistant exchange from an AI-assistant session log.
    """
    timestamp: datetime
    session_id: str
    user_message: Optional[str] = None
    assistant_message: Optional[str] = None
    tools_used: Optional[Tuple[str, ...]] = None
    files_modified: Optional[Tuple[str, ...]] = None
    type: ActivityType = field(default=ActivityType.ASSISTANT, init=False)

    def __post_init__(self) -> None:
        if not self.user_message and not self.assistant_message:
            raise ValueError("AssistantActivity needs a user or assistant message")
        reply = self.assistant_message
        if reply and len(reply) > MAX_ASSISTANT_MESSAGE_CHARS:
            object.__setattr__(
                self, "assistant_message", reply[:MAX_ASSISTANT_MESSAGE_CHARS] + "..."
            )
        object.__setattr__(self, "tools_used", _distinct(self.tools_used))
        object.__setattr__(self, "files_modified", _distinct(self.files_modified))


@dataclass(frozen=True)
class RepositoryActivity:
    timestamp: datetime
    repo: str
    commit_hash: str
    commit_message: str
    files_changed: Tuple[str, ...] = ()
    additions: int = 0
    deletions: int = 0
    branch: str = "unknown"
    type: ActivityType = field(default=ActivityType.REPOSITORY, init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "files_changed", tuple(self.files_changed))


ActivityEvent = Union[ScreenActivity, VoiceActivity, AssistantActivity, RepositoryActivity]


__all__ = [
    "ALL_ACTIVITY",
    "ActivityEvent",
    "ActivityType",
    "AssistantActivity",
    "RepositoryActivity",
    "ScreenActivity",
    "VoiceActivity",
]
