# src/livebuild/components/tweet_generator.py
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import dspy
import pydantic

from livebuild.context.accumulator import ContextSnapshot
from livebuild.state.history import TweetRecord

logger = logging.getLogger(__name__)

MAX_TWEET_CHARS = 280


class GeneratedTweet(pydantic.BaseModel):
    text: str = ""
    suggest_screenshot: bool = False


class WriteBuildInPublicTweet(dspy.Signature):
    """
You are a developer tweeting about your build-in-public journey. Write a single
tweet (max 280 characters) about the given coding activity.

Guidelines:
- Sound like a real developer, not a marketing bot
- Be specific about technical details (tools, languages, what you built)
- Keep it casual but informative
- Use 0-2 hashtags max, only if they add value
- No excessive emojis (0-1 is fine)
- Vary your openings; do not start every tweet the same way
- Show genuine excitement or frustration when appropriate
- If there is a visual aspect (UI change, architecture diagram, terminal output), suggest a screenshot
    """

    topic: str = dspy.InputField(description="What the tweet should be about")
    activity_details: str = dspy.InputField(
        description="Summary of the activity plus commit and assistant details"
    )
    recent_tweets: str = dspy.InputField(
        description="Recently published tweets (avoid similar style and content)"
    )
    text: str = dspy.OutputField(description="The tweet text, at most 280 characters")
    suggest_screenshot: bool = dspy.OutputField(
        description="True if a screenshot of the current screen would improve the tweet"
    )


def truncate_tweet(text: str, limit: int = MAX_TWEET_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def build_activity_details(snapshot: ContextSnapshot) -> str:
    sections: List[str] = [snapshot.summary]

    if snapshot.git_activity:
        lines = [
            f"- {g.commit_message} ({g.repo}, +{g.additions}/-{g.deletions})"
            for g in snapshot.git_activity
        ]
        sections.append("Git commits:\n" + "\n".join(lines))

    if snapshot.claude_activity:
        lines = []
        for c in snapshot.claude_activity:
            line = f"- {c.user_message or 'interaction'}"
            if c.files_modified:
                line += f" (modified: {', '.join(c.files_modified)})"
            lines.append(line)
        sections.append("Claude interactions:\n" + "\n".join(lines))

    return "\n\n".join(sections)


def format_recent_texts(records: Sequence[TweetRecord]) -> str:
    if not records:
        return "No recent tweets."
    return "\n".join(f"- {r.text}" for r in records)


class TweetGenerator(dspy.Module):
    """
    Generation oracle: writes the post for a topic the decider picked.
    Output longer than 280 characters is cut with an ellipsis.
    """

    def __init__(self, *, lm: Optional[dspy.LM] = None) -> None:
        super().__init__()
        self.write = dspy.Predict(WriteBuildInPublicTweet)
        if lm is not None:
            self.set_lm(lm)

    def forward(self, *, topic: str, activity_details: str, recent_tweets: str) -> GeneratedTweet:
        res = self.write(topic=topic, activity_details=activity_details, recent_tweets=recent_tweets)
        return self._to_tweet(res)

    async def aforward(
        self, *, topic: str, activity_details: str, recent_tweets: str
    ) -> GeneratedTweet:
        res = await self.write.acall(
            topic=topic, activity_details=activity_details, recent_tweets=recent_tweets
        )
        return self._to_tweet(res)

    async def generate(
        self,
        snapshot: ContextSnapshot,
        topic: str,
        recent_tweets: Sequence[TweetRecord],
    ) -> GeneratedTweet:
        logger.info("tweet_generator: generating tweet for topic %r", topic)
        tweet = await self.aforward(
            topic=topic,
            activity_details=build_activity_details(snapshot),
            recent_tweets=format_recent_texts(recent_tweets),
        )
        logger.info(
            "tweet_generator: generated length=%d suggest_screenshot=%s",
            len(tweet.text),
            tweet.suggest_screenshot,
        )
        return tweet

    @staticmethod
    def _to_tweet(res) -> GeneratedTweet:
        text = str(getattr(res, "text", "") or "").strip()
        if len(text) > MAX_TWEET_CHARS:
            logger.warning(
                "tweet_generator: tweet exceeds %d chars (%d), truncating",
                MAX_TWEET_CHARS,
                len(text),
            )
            text = truncate_tweet(text)
        return GeneratedTweet(
            text=text,
            suggest_screenshot=bool(getattr(res, "suggest_screenshot", False)),
        )


__all__ = [
    "GeneratedTweet",
    "MAX_TWEET_CHARS",
    "TweetGenerator",
    "WriteBuildInPublicTweet",
    "build_activity_details",
    "truncate_tweet",
]
