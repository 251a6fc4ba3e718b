# src/livebuild/components/tweet_decider.py
from __future__ import annotations

import logging
from typing import Optional, Sequence

import dspy
import pydantic

from livebuild.context.accumulator import ContextSnapshot
from livebuild.state.history import TweetRecord

logger = logging.getLogger(__name__)


class TweetDecision(pydantic.BaseModel):
    should_tweet: bool = False
    reason: str = ""
    topic: str = ""


class DecideTweetWorthiness(dspy.Signature):
    """
You are a tweet-worthiness evaluator for a developer who builds in public.
Decide whether the recent coding activity is interesting enough to tweet about.

Tweet-worthy activity:
- Starting or completing a feature
- Solving an interesting bug
- Learning something new or having an "aha" moment
- Making architectural decisions
- Breakthroughs or milestones
- Trying new tools or technologies

NOT tweet-worthy:
- Routine file saves without meaningful changes
- Repetitive debugging without resolution
- Context switching between tasks without progress
- Minor formatting or config changes
- Activity that is too similar to a recent tweet

If you decide to tweet, give a concise topic for the tweet.
    """

    activity_summary: str = dspy.InputField(
        description="Summary of the developer's activity in the recent window"
    )
    window_minutes: int = dspy.InputField(
        description="How many minutes of activity the summary covers"
    )
    recent_tweets: str = dspy.InputField(
        description="Recently published tweets, oldest first (avoid repetition)"
    )
    should_tweet: bool = dspy.OutputField(
        description="True if this activity is worth tweeting about"
    )
    reason: str = dspy.OutputField(description="Brief explanation of the decision")
    topic: str = dspy.OutputField(
        description="Concise topic to tweet about; empty if not tweeting"
    )


def format_recent_tweets(records: Sequence[TweetRecord]) -> str:
    if not records:
        return "No recent tweets."
    return "\n".join(f"- [{r.timestamp}] {r.text}" for r in records)


class TweetDecider(dspy.Module):
    """
    Decision oracle: is this snapshot publish-worthy, and about what?

    Errors (LM failures, unparseable output) propagate to the caller; the
    publish manager treats them as "skip this window".
    """

    def __init__(self, *, window_minutes: int = 15, lm: Optional[dspy.LM] = None) -> None:
        super().__init__()
        self.window_minutes = window_minutes
        self.predict = dspy.Predict(DecideTweetWorthiness)
        if lm is not None:
            self.set_lm(lm)

    def forward(self, *, activity_summary: str, recent_tweets: str) -> TweetDecision:
        res = self.predict(
            activity_summary=activity_summary,
            window_minutes=self.window_minutes,
            recent_tweets=recent_tweets,
        )
        return self._to_decision(res)

    async def aforward(self, *, activity_summary: str, recent_tweets: str) -> TweetDecision:
        res = await self.predict.acall(
            activity_summary=activity_summary,
            window_minutes=self.window_minutes,
            recent_tweets=recent_tweets,
        )
        return self._to_decision(res)

    async def decide(
        self,
        snapshot: ContextSnapshot,
        recent_tweets: Sequence[TweetRecord],
    ) -> TweetDecision:
        logger.info("tweet_decider: evaluating tweet-worthiness")
        decision = await self.aforward(
            activity_summary=snapshot.summary,
            recent_tweets=format_recent_tweets(recent_tweets),
        )
        logger.info(
            "tweet_decider: should_tweet=%s topic=%r reason=%r",
            decision.should_tweet,
            decision.topic,
            decision.reason,
        )
        return decision

    @staticmethod
    def _to_decision(res) -> TweetDecision:
        return TweetDecision(
            should_tweet=bool(getattr(res, "should_tweet", False)),
            reason=str(getattr(res, "reason", "") or ""),
            topic=str(getattr(res, "topic", "") or "").strip(),
        )


__all__ = ["DecideTweetWorthiness", "TweetDecider", "TweetDecision", "format_recent_tweets"]
