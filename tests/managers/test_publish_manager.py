# tests/managers/test_publish_manager.py
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional

from livebuild.components.tweet_decider import TweetDecision
from livebuild.components.tweet_generator import GeneratedTweet
from livebuild.managers.base import PublishedPost
from livebuild.managers.publish_manager import PipelineStage, PublishManager
from livebuild.managers.rate_limiter import RateLimiter
from livebuild.publisher.twitter import DryRunPublisher
from livebuild.state.history import TweetHistory, TweetRecord
from livebuild.state.store import StateStore


class FakeDecider:
    def __init__(self, decision: Optional[TweetDecision] = None, exc: Optional[Exception] = None):
        self.decision = decision or TweetDecision(should_tweet=True, reason="shipped", topic="login flow")
        self.exc = exc
        self.calls: List[dict] = []

    async def decide(self, snapshot, recent_tweets):
        self.calls.append({"snapshot": snapshot, "recent_tweets": list(recent_tweets)})
        if self.exc is not None:
            raise self.exc
        return self.decision


class FakeGenerator:
    def __init__(self, tweet: Optional[GeneratedTweet] = None, exc: Optional[Exception] = None):
        self.tweet = tweet or GeneratedTweet(text="Shipped the login flow today", suggest_screenshot=False)
        self.exc = exc
        self.calls: List[dict] = []

    async def generate(self, snapshot, topic, recent_tweets):
        self.calls.append({"topic": topic, "recent_tweets": list(recent_tweets)})
        if self.exc is not None:
            raise self.exc
        return self.tweet


class FakePublisher:
    def __init__(self, exc: Optional[Exception] = None):
        self.exc = exc
        self.calls: List[dict] = []

    async def publish(self, text, *, reply_to=None, media_path=None):
        self.calls.append({"text": text, "reply_to": reply_to, "media_path": media_path})
        if self.exc is not None:
            raise self.exc
        return PublishedPost(id=f"tw-{len(self.calls)}", text=text)


class BlockingDecider(FakeDecider):
    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def decide(self, snapshot, recent_tweets):
        await self.release.wait()
        return await super().decide(snapshot, recent_tweets)


def _manager(*, decider=None, generator=None, publisher=None, store=None, history=None, **kwargs):
    store = store or StateStore.in_memory()
    history = history or TweetHistory.in_memory()
    limiter = RateLimiter(store=store)
    manager = PublishManager(
        rate_limiter=limiter,
        decider=decider or FakeDecider(),
        generator=generator or FakeGenerator(),
        publisher=publisher or FakePublisher(),
        history=history,
        state_store=store,
        **kwargs,
    )
    return manager, store, history


def test_happy_path_publishes_and_records(snapshot):
    publisher = FakePublisher()
    manager, store, history = _manager(publisher=publisher)

    outcome = asyncio.run(manager.run(snapshot))

    assert outcome.stage is PipelineStage.DONE
    assert outcome.published
    assert outcome.topic == "login flow"
    assert publisher.calls == [{"text": "Shipped the login flow today", "reply_to": None, "media_path": None}]

    state = store.load()
    assert state.tweets_this_hour == 1
    assert state.tweets_today == 1
    assert state.current_thread_id == "tw-1"

    records = history.load()
    assert len(records) == 1
    assert records[0].id == "tw-1"
    assert records[0].topic == "login flow"
    assert records[0].thread_id is None


def test_second_post_replies_to_first(snapshot):
    publisher = FakePublisher()
    manager, store, history = _manager(publisher=publisher)
    asyncio.run(manager.run(snapshot))

    # let the min interval pass
    state = store.load()
    state.last_tweet_timestamp = "2000-01-01T00:00:00+00:00"
    store.save(state)
    asyncio.run(manager.run(snapshot))

    assert publisher.calls[1]["reply_to"] == "tw-1"
    assert store.load().current_thread_id == "tw-2"
    assert history.load()[1].thread_id == "tw-1"


def test_thread_mode_off_never_replies(snapshot):
    publisher = FakePublisher()
    manager, store, _ = _manager(publisher=publisher, as_thread=False)
    asyncio.run(manager.run(snapshot))
    assert publisher.calls[0]["reply_to"] is None
    assert store.load().current_thread_id is None


def test_rate_limited_stops_before_decider(snapshot):
    decider = FakeDecider()
    store = StateStore.in_memory()
    state = store.load()
    state.last_tweet_timestamp = datetime.now().astimezone().isoformat()
    store.save(state)
    manager, _, _ = _manager(decider=decider, store=store)

    outcome = asyncio.run(manager.run(snapshot))

    assert outcome.stage is PipelineStage.RATE_CHECK
    assert not outcome.published
    assert decider.calls == []


def test_not_worthy_stops_before_generator(snapshot):
    generator = FakeGenerator()
    decider = FakeDecider(TweetDecision(should_tweet=False, reason="routine edits"))
    manager, store, history = _manager(decider=decider, generator=generator)

    outcome = asyncio.run(manager.run(snapshot))

    assert outcome.stage is PipelineStage.DECIDE
    assert outcome.reason == "routine edits"
    assert generator.calls == []
    assert history.load() == []
    assert store.load().tweets_today == 0


def test_empty_tweet_is_not_published(snapshot):
    publisher = FakePublisher()
    manager, _, _ = _manager(generator=FakeGenerator(GeneratedTweet(text="")), publisher=publisher)
    outcome = asyncio.run(manager.run(snapshot))
    assert outcome.stage is PipelineStage.GENERATE
    assert publisher.calls == []


def test_decider_failure_is_contained(snapshot):
    manager, store, history = _manager(decider=FakeDecider(exc=RuntimeError("lm down")))
    outcome = asyncio.run(manager.run(snapshot))
    assert outcome.stage is PipelineStage.DECIDE
    assert outcome.error == "lm down"
    assert history.load() == []


def test_publish_failure_records_nothing(snapshot):
    manager, store, history = _manager(publisher=FakePublisher(exc=RuntimeError("403")))
    outcome = asyncio.run(manager.run(snapshot))
    assert outcome.stage is PipelineStage.PUBLISH
    assert outcome.error == "403"
    assert history.load() == []
    assert store.load().tweets_today == 0
    assert store.load().current_thread_id is None


def test_recent_history_is_passed_to_oracles(snapshot):
    history = TweetHistory.in_memory()
    history.append(TweetRecord(id="old", text="earlier post", timestamp="t", topic="x"))
    decider, generator = FakeDecider(), FakeGenerator()
    manager, _, _ = _manager(decider=decider, generator=generator, history=history)

    asyncio.run(manager.run(snapshot))

    assert [r.id for r in decider.calls[0]["recent_tweets"]] == ["old"]
    assert [r.id for r in generator.calls[0]["recent_tweets"]] == ["old"]
    assert generator.calls[0]["topic"] == "login flow"


def test_dry_run_scenario(snapshot):
    manager, store, history = _manager(publisher=DryRunPublisher())

    outcome = asyncio.run(manager.run(snapshot))

    assert outcome.stage is PipelineStage.DONE
    assert outcome.post.dry_run
    assert outcome.post.id.startswith("dry-run-")
    records = history.load()
    assert len(records) == 1
    assert records[0].id == outcome.post.id
    state = store.load()
    assert state.tweets_this_hour == 1
    assert state.tweets_today == 1
    assert state.current_thread_id is None


def test_screenshot_attached_when_suggested(snapshot, tmp_path):
    shot = tmp_path / "shot.png"
    publisher = FakePublisher()
    manager, _, history = _manager(
        generator=FakeGenerator(GeneratedTweet(text="look at this", suggest_screenshot=True)),
        publisher=publisher,
        screenshot_provider=lambda: shot,
    )
    asyncio.run(manager.run(snapshot))
    assert publisher.calls[0]["media_path"] == str(shot)
    assert history.load()[0].media_url == str(shot)


def test_screenshot_failure_posts_without_media(snapshot):
    def broken():
        raise OSError("no display")

    publisher = FakePublisher()
    manager, _, _ = _manager(
        generator=FakeGenerator(GeneratedTweet(text="look", suggest_screenshot=True)),
        publisher=publisher,
        screenshot_provider=broken,
    )
    outcome = asyncio.run(manager.run(snapshot))
    assert outcome.published
    assert publisher.calls[0]["media_path"] is None


def test_overlapping_snapshot_is_skipped(snapshot):
    decider = BlockingDecider()
    manager, _, _ = _manager(decider=decider)

    async def scenario():
        first = manager.submit(snapshot)
        await asyncio.sleep(0)
        second = await manager.run(snapshot)
        decider.release.set()
        await manager.drain()
        return first.result(), second

    first, second = asyncio.run(scenario())
    assert second.stage is PipelineStage.BUSY
    assert first.stage is PipelineStage.DONE
    assert len(decider.calls) == 1
