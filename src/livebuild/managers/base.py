# src/livebuild/managers/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from livebuild.components.tweet_decider import TweetDecision
from livebuild.components.tweet_generator import GeneratedTweet
from livebuild.context.accumulator import ContextSnapshot
from livebuild.state.history import TweetRecord


@dataclass(frozen=True)
class PublishedPost:
    id: str
    text: str
    dry_run: bool = False


class DecisionOracle(Protocol):
    """
    Judges whether a snapshot is worth posting about. TweetDecider is the
    LM-backed implementation; tests pass fakes.
    """

    async def decide(
        self,
        snapshot: ContextSnapshot,
        recent_tweets: Sequence[TweetRecord],
    ) -> TweetDecision:
        ...


class GenerationOracle(Protocol):
    async def generate(
        self,
        snapshot: ContextSnapshot,
        topic: str,
        recent_tweets: Sequence[TweetRecord],
    ) -> GeneratedTweet:
        ...


class Publisher(Protocol):
    async def publish(
        self,
        text: str,
        *,
        reply_to: Optional[str] = None,
        media_path: Optional[str] = None,
    ) -> PublishedPost:
        ...
