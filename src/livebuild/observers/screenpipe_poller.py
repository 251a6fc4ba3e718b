# src/livebuild/observers/screenpipe_poller.py
"""
ScreenpipePoller: pulls OCR and audio transcriptions from a local screenpipe
capture server and publishes them as ScreenActivity / VoiceActivity.

Every poll asks `/search` for items since the previous poll (persisted in
AppState.last_screenpipe_poll). Capture servers re-report the same text over
and over, so items are dropped when their MD5 content hash was already seen.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from livebuild.context.bus import EventBus
from livebuild.context.events import ScreenActivity, VoiceActivity
from livebuild.managers.utils import PeriodicTask
from livebuild.state.store import StateStore, parse_timestamp

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
MAX_SEEN_HASHES = 10_000


def content_hash(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def format_since(when: datetime) -> str:
    """UTC ISO-8601 with a trailing Z, the form the search API expects."""
    return when.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _content(item: Dict[str, Any], kind: str) -> Optional[Dict[str, Any]]:
    content = item.get("content")
    if item.get("type") != kind or not isinstance(content, dict):
        return None
    return content


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def screen_activity(item: Dict[str, Any], now: datetime) -> Optional[ScreenActivity]:
    """
    ScreenActivity for one OCR search item, or None when it is not OCR or has
    no text. A missing or unparseable timestamp falls back to `now`.
    """
    content = _content(item, "OCR")
    if content is None:
        return None
    text = content.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    return ScreenActivity(
        timestamp=parse_timestamp(content.get("timestamp")) or now,
        ocr_text=text.strip(),
        app_name=_optional_str(content.get("app_name")),
        window_title=_optional_str(content.get("window_name")),
    )


def voice_activity(item: Dict[str, Any], now: datetime) -> Optional[VoiceActivity]:
    content = _content(item, "Audio")
    if content is None:
        return None
    transcript = content.get("transcription")
    if not isinstance(transcript, str) or not transcript.strip():
        return None
    return VoiceActivity(
        timestamp=parse_timestamp(content.get("timestamp")) or now,
        transcript=transcript.strip(),
    )


class RecentHashes:
    """
    Insertion-ordered set of content hashes. Once it grows past `capacity`
    the oldest entries are evicted until half of `capacity` remain.
    """

    def __init__(self, capacity: int = MAX_SEEN_HASHES) -> None:
        if capacity < 2:
            raise ValueError("capacity must be at least 2")
        self.capacity = capacity
        self._seen: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, digest: object) -> bool:
        return digest in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def add(self, digest: str) -> bool:
        """Returns False when `digest` was already present."""
        if digest in self._seen:
            return False
        self._seen[digest] = None
        if len(self._seen) > self.capacity:
            while len(self._seen) > self.capacity // 2:
                self._seen.popitem(last=False)
        return True


class ScreenpipePoller:
    def __init__(
        self,
        *,
        bus: EventBus,
        state_store: StateStore,
        base_url: str = "http://localhost:3030",
        poll_interval_seconds: float = 30,
        client: Optional[httpx.AsyncClient] = None,
        hashes: Optional[RecentHashes] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.bus = bus
        self.state_store = state_store
        self.base_url = base_url.rstrip("/")
        self.poll_interval_seconds = poll_interval_seconds
        self._client = client
        self._owns_client = client is None
        self.hashes = hashes or RecentHashes()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._task: Optional[PeriodicTask] = None

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        logger.info(
            "screenpipe poller: polling %s every %ss", self.base_url, self.poll_interval_seconds
        )
        self._task = PeriodicTask(
            "screenpipe-poller",
            self.poll_interval_seconds,
            self.poll,
            run_immediately=True,
        )
        self._task.start()

    async def stop(self) -> None:
        if self._task is not None:
            await self._task.stop()
            self._task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("screenpipe poller: stopped")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(10.0))
        return self._client

    # ------------------------------------------------------------------
    # polling
    # ------------------------------------------------------------------
    async def _search(self, content_type: str, since: str) -> List[Dict[str, Any]]:
        response = await self.client.get(
            f"{self.base_url}/search",
            params={
                "content_type": content_type,
                "start_time": since,
                "limit": SEARCH_LIMIT,
            },
        )
        response.raise_for_status()
        payload = response.json()
        items = payload.get("data") if isinstance(payload, dict) else None
        return [i for i in items or [] if isinstance(i, dict)]

    async def poll(self) -> int:
        """
        One poll round. Returns the number of events published. Fetch errors
        are logged; the poll time is stored either way.
        """
        now = self._clock()
        since = self.state_store.load().last_screenpipe_poll or format_since(now)

        published = 0
        try:
            ocr_items, audio_items = await asyncio.gather(
                self._search("ocr", since),
                self._search("audio", since),
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("screenpipe poller: search failed: %s", exc)
        else:
            published += self._emit_screen(ocr_items, now)
            published += self._emit_voice(audio_items, now)

        state = self.state_store.load()
        state.last_screenpipe_poll = format_since(now)
        self.state_store.save(state)
        return published

    def _emit_screen(self, items: List[Dict[str, Any]], now: datetime) -> int:
        count = 0
        for item in items:
            try:
                activity = screen_activity(item, now)
            except (AttributeError, TypeError, ValueError):
                logger.debug("screenpipe poller: skipping malformed OCR item %r", item, exc_info=True)
                continue
            if activity is None or not self.hashes.add(content_hash(activity.ocr_text)):
                continue
            self.bus.publish(activity)
            logger.debug(
                "screenpipe poller: screen activity app=%s chars=%d",
                activity.app_name,
                len(activity.ocr_text),
            )
            count += 1
        return count

    def _emit_voice(self, items: List[Dict[str, Any]], now: datetime) -> int:
        count = 0
        for item in items:
            try:
                activity = voice_activity(item, now)
            except (AttributeError, TypeError, ValueError):
                logger.debug("screenpipe poller: skipping malformed audio item %r", item, exc_info=True)
                continue
            if activity is None or not self.hashes.add(content_hash(activity.transcript)):
                continue
            self.bus.publish(activity)
            logger.debug("screenpipe poller: voice activity chars=%d", len(activity.transcript))
            count += 1
        return count


__all__ = [
    "MAX_SEEN_HASHES",
    "RecentHashes",
    "ScreenpipePoller",
    "content_hash",
    "format_since",
    "screen_activity",
    "voice_activity",
]
