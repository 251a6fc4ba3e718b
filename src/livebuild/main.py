# src/livebuild/main.py
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from functools import partial
from pathlib import Path
from typing import List, Optional

import dspy

from livebuild.components.tweet_decider import TweetDecider
from livebuild.components.tweet_generator import TweetGenerator
from livebuild.config.loader import ConfigError, Settings, load_settings
from livebuild.context.accumulator import ContextAccumulator
from livebuild.context.bus import EventBus
from livebuild.context.utils import save_screenshot
from livebuild.managers.publish_manager import PublishManager
from livebuild.managers.rate_limiter import RateLimiter
from livebuild.observers.claude_watcher import ClaudeCodeWatcher
from livebuild.observers.git_watcher import GitWatcher
from livebuild.observers.screenpipe_poller import ScreenpipePoller
from livebuild.publisher.twitter import DryRunPublisher, TwitterPublisher
from livebuild.state.history import TweetHistory
from livebuild.state.store import StateStore, get_data_dir

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Watch coding activity and post build-in-public updates."
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log posts instead of publishing them (overrides TWEET_DRY_RUN).",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print rate-limit status and recent posts, then exit.",
    )
    return parser.parse_args(argv)


def _resolve_data_dir(settings: Settings) -> Path:
    if settings.data_dir:
        path = Path(settings.data_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path
    return get_data_dir()


def _build_rate_limiter(settings: Settings, state_store: StateStore) -> RateLimiter:
    return RateLimiter(
        store=state_store,
        max_per_hour=settings.tweet_max_per_hour,
        max_per_day=settings.tweet_max_per_day,
        min_interval_minutes=settings.tweet_min_interval_minutes,
    )


def print_status(settings: Settings, *, count: int = 5) -> dict:
    data_dir = _resolve_data_dir(settings)
    state_store = StateStore.at(data_dir)
    limiter = _build_rate_limiter(settings, state_store)
    report = {
        "data_dir": str(data_dir),
        "dry_run": settings.tweet_dry_run,
        "rate_limit": limiter.get_status().as_dict(),
        "current_thread_id": state_store.load().current_thread_id,
        "recent_posts": [r.to_dict() for r in TweetHistory.at(data_dir).recent(count)],
    }
    print(json.dumps(report, indent=2))
    return report


def _build_publisher(settings: Settings):
    if settings.tweet_dry_run or settings.twitter is None:
        logger.warning("dry run enabled: posts are logged, not published")
        return DryRunPublisher()
    creds = settings.twitter
    return TwitterPublisher(
        api_key=creds.api_key,
        api_secret=creds.api_secret,
        access_token=creds.access_token,
        access_secret=creds.access_secret,
    )


async def run_agent(settings: Settings) -> None:
    # configure DSPy LMs: a cheap one to decide, a stronger one to write
    decider_lm = dspy.LM(settings.decider_lm, api_key=settings.anthropic_api_key)
    generator_lm = dspy.LM(settings.generator_lm, api_key=settings.anthropic_api_key)
    dspy.configure(lm=decider_lm)
    logger.info("configured dspy LMs: decider=%s generator=%s", settings.decider_lm, settings.generator_lm)

    data_dir = _resolve_data_dir(settings)
    logger.info("data dir: %s", data_dir)
    state_store = StateStore.at(data_dir)
    history = TweetHistory.at(data_dir)
    bus = EventBus()

    screenshot_provider = None
    if settings.tweet_attach_screenshots:
        screenshot_provider = partial(save_screenshot, data_dir / "screenshots")

    manager = PublishManager(
        rate_limiter=_build_rate_limiter(settings, state_store),
        decider=TweetDecider(window_minutes=settings.context_window_minutes, lm=decider_lm),
        generator=TweetGenerator(lm=generator_lm),
        publisher=_build_publisher(settings),
        history=history,
        state_store=state_store,
        as_thread=settings.tweet_as_thread,
        screenshot_provider=screenshot_provider,
    )
    accumulator = ContextAccumulator(
        bus=bus,
        on_snapshot=manager.submit,
        window_minutes=settings.context_window_minutes,
        snapshot_interval_seconds=settings.snapshot_interval_seconds,
        prune_interval_seconds=settings.prune_interval_seconds,
    )
    git_watcher = GitWatcher(bus=bus, state_store=state_store, repos=settings.watched_repos)
    claude_watcher = ClaudeCodeWatcher(
        bus=bus,
        state_store=state_store,
        history_path=settings.claude_history_path,
    )
    poller = ScreenpipePoller(
        bus=bus,
        state_store=state_store,
        base_url=settings.screenpipe_api_url,
        poll_interval_seconds=settings.poll_interval_seconds,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    accumulator.start()
    git_watcher.start()
    await claude_watcher.start()
    poller.start()
    logger.info("livebuild running (dry_run=%s)", settings.tweet_dry_run)

    try:
        await stop_event.wait()
    finally:
        logger.info("shutting down")
        await poller.stop()
        await claude_watcher.stop()
        await git_watcher.stop()
        await accumulator.stop()
        await manager.drain()
        logger.info("shutdown complete")


async def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(
            dry_run=True if args.dry_run else None,
            require_credentials=not args.status,
        )
    except ConfigError as exc:
        for problem in exc.problems:
            logger.error("config: %s", problem)
        return 1

    if args.status:
        print_status(settings)
        return 0

    await run_agent(settings)
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
