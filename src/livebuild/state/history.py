# src/livebuild/state/history.py
"""
Append-only log of published posts.

Only ever appended to; the decider and generator read the tail of it so they
can avoid repeating themselves.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from livebuild.state.store import HISTORY_FILENAME, JsonFileStore, MemoryStore, Store, get_data_dir

logger = logging.getLogger(__name__)

RECENT_TWEETS = 10


@dataclass(frozen=True)
class TweetRecord:
    id: str
    text: str
    timestamp: str
    topic: str
    thread_id: Optional[str] = None
    media_url: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TweetRecord":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in raw.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        # keep the file compact: omit unset optionals
        return {k: v for k, v in asdict(self).items() if v is not None}


class TweetHistory:
    def __init__(self, backend: Store) -> None:
        self._backend = backend

    @classmethod
    def at(cls, data_dir: Optional[Path] = None) -> "TweetHistory":
        return cls(JsonFileStore((data_dir or get_data_dir()) / HISTORY_FILENAME))

    @classmethod
    def in_memory(cls) -> "TweetHistory":
        return cls(MemoryStore([]))

    def load(self) -> List[TweetRecord]:
        raw = self._backend.load()
        if not isinstance(raw, list):
            return []
        records: List[TweetRecord] = []
        for item in raw:
            try:
                records.append(TweetRecord.from_dict(item))
            except (TypeError, AttributeError):
                logger.warning("history: skipping malformed record %r", item)
        return records

    def append(self, record: TweetRecord) -> None:
        raw = self._backend.load()
        items = raw if isinstance(raw, list) else []
        items.append(record.to_dict())
        self._backend.save(items)
        logger.debug("history: appended %s (%d total)", record.id, len(items))

    def recent(self, count: int = RECENT_TWEETS) -> List[TweetRecord]:
        if count <= 0:
            return []
        return self.load()[-count:]


__all__ = ["RECENT_TWEETS", "TweetHistory", "TweetRecord"]
