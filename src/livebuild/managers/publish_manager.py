# src/livebuild/managers/publish_manager.py
"""
PublishManager: the per-snapshot pipeline

    snapshot
      -> rate check      (RateLimiter.can_publish)
      -> decide          (DecisionOracle)
      -> generate        (GenerationOracle)
      -> publish         (Publisher)
      -> record          (RateLimiter.record_publish + TweetHistory.append)

Each stage can end the run early. Any exception ends the run at the stage
where it happened, gets logged, and is not retried: the next snapshot is a
fresh attempt. Losing one window is fine; double-posting is not.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Set

from livebuild.context.accumulator import ContextSnapshot
from livebuild.managers.base import DecisionOracle, GenerationOracle, PublishedPost, Publisher
from livebuild.managers.rate_limiter import RateLimiter, local_now
from livebuild.managers.utils import spawn
from livebuild.state.history import RECENT_TWEETS, TweetHistory, TweetRecord
from livebuild.state.store import StateStore

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    BUSY = "busy"
    RATE_CHECK = "rate-check"
    DECIDE = "decide"
    GENERATE = "generate"
    PUBLISH = "publish"
    RECORD = "record"
    DONE = "done"


@dataclass(frozen=True)
class PipelineOutcome:
    """
    Where a run stopped. `stage` is DONE only when a post went out and was
    recorded; otherwise it is the stage that ended the run.
    """
    stage: PipelineStage
    post: Optional[PublishedPost] = None
    topic: str = ""
    reason: str = ""
    error: Optional[str] = None

    @property
    def published(self) -> bool:
        return self.post is not None


class PublishManager:
    def __init__(
        self,
        *,
        rate_limiter: RateLimiter,
        decider: DecisionOracle,
        generator: GenerationOracle,
        publisher: Publisher,
        history: TweetHistory,
        state_store: StateStore,
        as_thread: bool = True,
        screenshot_provider: Optional[Callable[[], Path]] = None,
        recent_count: int = RECENT_TWEETS,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.decider = decider
        self.generator = generator
        self.publisher = publisher
        self.history = history
        self.state_store = state_store
        self.as_thread = as_thread
        self.screenshot_provider = screenshot_provider
        self.recent_count = recent_count
        self._clock = clock
        self._busy = False
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # scheduling
    # ------------------------------------------------------------------
    def submit(self, snapshot: ContextSnapshot) -> asyncio.Task:
        """
        Snapshot callback for the accumulator: run the pipeline in the
        background so the timer that emitted the snapshot is not held up.
        """
        return spawn(self.run(snapshot), self._tasks, what="publish pipeline")

    async def drain(self) -> None:
        """Wait for in-flight runs (used at shutdown)."""
        if self._tasks:
            logger.info("publish_manager: waiting for %d in-flight run(s)", len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # pipeline
    # ------------------------------------------------------------------
    async def run(self, snapshot: ContextSnapshot) -> PipelineOutcome:
        if self._busy:
            logger.info("publish_manager: previous run still in flight, skipping snapshot")
            return PipelineOutcome(stage=PipelineStage.BUSY, reason="previous run in flight")

        self._busy = True
        stage = PipelineStage.RATE_CHECK
        try:
            if not self.rate_limiter.can_publish():
                status = self.rate_limiter.get_status()
                logger.info("publish_manager: rate limited, skipping snapshot %s", status.as_dict())
                return PipelineOutcome(stage=stage, reason="rate limited")

            recent = self.history.recent(self.recent_count)

            stage = PipelineStage.DECIDE
            decision = await self.decider.decide(snapshot, recent)
            if not decision.should_tweet:
                logger.info("publish_manager: not tweet-worthy (%s)", decision.reason)
                return PipelineOutcome(stage=stage, reason=decision.reason)

            stage = PipelineStage.GENERATE
            tweet = await self.generator.generate(snapshot, decision.topic, recent)
            if not tweet.text:
                logger.warning("publish_manager: empty tweet generated, skipping")
                return PipelineOutcome(stage=stage, topic=decision.topic, reason="empty tweet")

            media_path = None
            if tweet.suggest_screenshot and self.screenshot_provider is not None:
                media_path = await self._capture_screenshot()

            stage = PipelineStage.PUBLISH
            reply_to = self.state_store.load().current_thread_id if self.as_thread else None
            post = await self.publisher.publish(tweet.text, reply_to=reply_to, media_path=media_path)

            stage = PipelineStage.RECORD
            self._record(post, topic=decision.topic, reply_to=reply_to, media_path=media_path)

            logger.info(
                "publish_manager: tweet published id=%s topic=%r text=%r",
                post.id,
                decision.topic,
                post.text,
            )
            return PipelineOutcome(stage=PipelineStage.DONE, post=post, topic=decision.topic)

        except Exception as exc:
            logger.exception("publish_manager: pipeline failed at stage %s", stage.value)
            return PipelineOutcome(stage=stage, error=str(exc) or type(exc).__name__)
        finally:
            self._busy = False

    async def _capture_screenshot(self) -> Optional[str]:
        try:
            path = await asyncio.to_thread(self.screenshot_provider)
        except Exception:
            logger.warning("publish_manager: screenshot capture failed, posting without media", exc_info=True)
            return None
        logger.info("publish_manager: captured screenshot %s", path)
        return str(path)

    def _record(
        self,
        post: PublishedPost,
        *,
        topic: str,
        reply_to: Optional[str],
        media_path: Optional[str],
    ) -> None:
        self.rate_limiter.record_publish()
        self.history.append(
            TweetRecord(
                id=post.id,
                text=post.text,
                timestamp=self._clock().isoformat(),
                topic=topic,
                thread_id=reply_to,
                media_url=media_path,
            )
        )
        # dry-run ids never become a reply target
        if self.as_thread and not post.dry_run:
            state = self.state_store.load()
            state.current_thread_id = post.id
            self.state_store.save(state)


__all__ = ["PipelineOutcome", "PipelineStage", "PublishManager"]
