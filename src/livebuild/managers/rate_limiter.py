# src/livebuild/managers/rate_limiter.py
"""
RateLimiter: decides whether a post is allowed *right now*, independent of
what the post says.

Three limits, checked in this order:
  1. posts this hour  < max_per_hour
  2. posts today      < max_per_day
  3. now              >= last post + min_interval

Every call re-reads the state, rolls the hourly/daily counters forward if a
boundary has passed, and writes the state back before answering. Boundaries
use local wall-clock time: the hour rolls at the top of the next hour, the
day at the next local midnight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from livebuild.state.store import AppState, StateStore, parse_timestamp

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    return datetime.now().astimezone()


def next_hour_boundary(now: datetime) -> datetime:
    # one real hour after the floor, also across a DST change
    floor = now.replace(minute=0, second=0, microsecond=0)
    return (floor.astimezone(timezone.utc) + timedelta(hours=1)).astimezone(now.tzinfo)


def next_day_boundary(now: datetime) -> datetime:
    """
    Next local midnight. A named zone on `now` (ZoneInfo) is used as is;
    otherwise midnight is built as naive local time and astimezone() picks
    the offset in effect on that date.
    """
    if isinstance(now.tzinfo, ZoneInfo):
        return datetime.combine(now.date() + timedelta(days=1), time(), tzinfo=now.tzinfo)
    local = now.astimezone()
    midnight = datetime.combine(local.date() + timedelta(days=1), time())
    return midnight.astimezone()


@dataclass(frozen=True)
class RateLimitStatus:
    tweets_this_hour: int
    tweets_today: int
    next_allowed_at: Optional[datetime]

    def as_dict(self) -> dict:
        return {
            "tweets_this_hour": self.tweets_this_hour,
            "tweets_today": self.tweets_today,
            "next_allowed_at": self.next_allowed_at.isoformat() if self.next_allowed_at else None,
        }


class RateLimiter:
    def __init__(
        self,
        *,
        store: StateStore,
        max_per_hour: int = 3,
        max_per_day: int = 30,
        min_interval_minutes: float = 10,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.store = store
        self.max_per_hour = max_per_hour
        self.max_per_day = max_per_day
        self.min_interval = timedelta(minutes=min_interval_minutes)
        self._clock = clock

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def can_publish(self) -> bool:
        now = self._clock()
        state = self._load_current(now)
        self.store.save(state)

        if state.tweets_this_hour >= self.max_per_hour:
            logger.info(
                "rate_limiter: hourly limit reached (%d/%d)",
                state.tweets_this_hour,
                self.max_per_hour,
            )
            return False

        if state.tweets_today >= self.max_per_day:
            logger.info(
                "rate_limiter: daily limit reached (%d/%d)",
                state.tweets_today,
                self.max_per_day,
            )
            return False

        interval_end = self._interval_end(state)
        if interval_end is not None and now < interval_end:
            logger.info(
                "rate_limiter: min interval not elapsed, next allowed at %s",
                interval_end.isoformat(),
            )
            return False

        return True

    def record_publish(self) -> None:
        now = self._clock()
        state = self._load_current(now)
        state.tweets_this_hour += 1
        state.tweets_today += 1
        state.last_tweet_timestamp = now.isoformat()
        self.store.save(state)
        logger.info(
            "rate_limiter: publish recorded (this hour=%d, today=%d)",
            state.tweets_this_hour,
            state.tweets_today,
        )

    def get_status(self) -> RateLimitStatus:
        now = self._clock()
        state = self._load_current(now)
        self.store.save(state)
        return RateLimitStatus(
            tweets_this_hour=state.tweets_this_hour,
            tweets_today=state.tweets_today,
            next_allowed_at=self._next_allowed_at(state, now),
        )

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _load_current(self, now: datetime) -> AppState:
        state = self.store.load()
        self._reset_counters_if_needed(state, now)
        return state

    def _reset_counters_if_needed(self, state: AppState, now: datetime) -> None:
        hour_reset_at = parse_timestamp(state.hour_reset_at)
        if hour_reset_at is None or now >= hour_reset_at:
            state.tweets_this_hour = 0
            state.hour_reset_at = next_hour_boundary(now).isoformat()
            logger.debug("rate_limiter: hourly counter reset, next at %s", state.hour_reset_at)

        day_reset_at = parse_timestamp(state.day_reset_at)
        if day_reset_at is None or now >= day_reset_at:
            state.tweets_today = 0
            state.day_reset_at = next_day_boundary(now).isoformat()
            logger.debug("rate_limiter: daily counter reset, next at %s", state.day_reset_at)

    def _interval_end(self, state: AppState) -> Optional[datetime]:
        last = parse_timestamp(state.last_tweet_timestamp)
        if last is None:
            return None
        return last + self.min_interval

    def _next_allowed_at(self, state: AppState, now: datetime) -> Optional[datetime]:
        """
        Earliest instant at which every limit would pass, or None if they pass now.
        """
        blockers = []
        if state.tweets_this_hour >= self.max_per_hour:
            blockers.append(parse_timestamp(state.hour_reset_at))
        if state.tweets_today >= self.max_per_day:
            blockers.append(parse_timestamp(state.day_reset_at))
        interval_end = self._interval_end(state)
        if interval_end is not None and now < interval_end:
            blockers.append(interval_end)
        blockers = [b for b in blockers if b is not None]
        return max(blockers) if blockers else None


__all__ = [
    "RateLimitStatus",
    "RateLimiter",
    "local_now",
    "next_day_boundary",
    "next_hour_boundary",
]
