# src/livebuild/state/store.py
"""
Persistence for the agent's state and post history.

Two small JSON files live in the user's platform-specific data directory
under the "livebuild" app folder (or LIVEBUILD_DATA_DIR when set):

- state.json          -> AppState (rate limiter counters, source offsets, thread id)
- tweet-history.json  -> list of TweetRecord dicts (see livebuild.state.history)

Callers go through a `load()` / `save()` store and never see the path.
Every save rewrites the whole file via a temp file + os.replace, so a crash
mid-write leaves the previous file intact.

Only one livebuild process may use a data directory at a time; nothing here
locks across processes.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from platformdirs import user_data_dir

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"
HISTORY_FILENAME = "tweet-history.json"


# ============================================================================
# Paths
# ============================================================================

def get_data_dir() -> Path:
    """
    Return the data directory, creating it if needed.

    Examples
    --------
    macOS:   ~/Library/Application Support/livebuild/
    Linux:   ~/.local/share/livebuild/
    Windows: C:\\Users\\<user>\\AppData\\Local\\livebuild\\
    """
    env_path = os.getenv("LIVEBUILD_DATA_DIR")
    data_dir = Path(env_path).expanduser() if env_path else Path(user_data_dir(appname="livebuild"))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 string into an aware datetime. Naive values are read as
    local time; a trailing "Z" is accepted. Returns None for empty, non-string
    or bad input.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


# ============================================================================
# Stores
# ============================================================================

class Store(Protocol):
    def load(self) -> Optional[Any]:
        ...

    def save(self, data: Any) -> None:
        ...


class JsonFileStore:
    """
    Whole-file JSON store. `load()` returns None when the file is missing or
    unreadable (the latter is logged). A file that is not valid JSON is moved
    aside to `<name>.corrupt-<timestamp>` so the next save cannot overwrite it.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def load(self) -> Optional[Any]:
        if not self._path.exists():
            return None
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except ValueError:
            self._quarantine()
            return None
        except OSError:
            logger.warning("store: failed to read %s, using defaults", self._path, exc_info=True)
            return None

    def _quarantine(self) -> None:
        stamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        target = self._path.with_name(f"{self._path.name}.corrupt-{stamp}")
        try:
            os.replace(self._path, target)
        except OSError:
            logger.exception("store: %s is not valid JSON and could not be moved aside", self._path)
            raise
        logger.error("store: %s is not valid JSON, moved it to %s", self._path, target)

    def save(self, data: Any) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise


class MemoryStore:
    """In-memory stand-in for JsonFileStore, used by tests."""

    def __init__(self, data: Optional[Any] = None) -> None:
        self._data = copy.deepcopy(data)

    def load(self) -> Optional[Any]:
        return copy.deepcopy(self._data)

    def save(self, data: Any) -> None:
        self._data = copy.deepcopy(data)


# ============================================================================
# AppState
# ============================================================================

def _epoch() -> str:
    # already in the past, so the first reset check rolls both boundaries forward
    return datetime(1970, 1, 1, tzinfo=timezone.utc).isoformat()


@dataclass
class AppState:
    last_tweet_timestamp: Optional[str] = None
    last_screenpipe_poll: Optional[str] = None
    claude_offsets: Dict[str, int] = field(default_factory=dict)
    git_last_commit: Dict[str, str] = field(default_factory=dict)
    current_thread_id: Optional[str] = None
    tweets_this_hour: int = 0
    tweets_today: int = 0
    hour_reset_at: str = field(default_factory=_epoch)
    day_reset_at: str = field(default_factory=_epoch)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "AppState":
        if not isinstance(raw, dict):
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in raw.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StateStore:
    """
    Typed wrapper: `load()` -> AppState, `save(AppState)`.
    """

    def __init__(self, backend: Store) -> None:
        self._backend = backend

    @classmethod
    def at(cls, data_dir: Optional[Path] = None) -> "StateStore":
        return cls(JsonFileStore((data_dir or get_data_dir()) / STATE_FILENAME))

    @classmethod
    def in_memory(cls, state: Optional[AppState] = None) -> "StateStore":
        return cls(MemoryStore(state.to_dict() if state else None))

    def load(self) -> AppState:
        return AppState.from_dict(self._backend.load())

    def save(self, state: AppState) -> None:
        self._backend.save(state.to_dict())


__all__ = [
    "AppState",
    "HISTORY_FILENAME",
    "JsonFileStore",
    "MemoryStore",
    "STATE_FILENAME",
    "StateStore",
    "Store",
    "get_data_dir",
    "parse_timestamp",
]
