# tests/conftest.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from livebuild.context.accumulator import ContextSnapshot, build_summary, partition_events
from livebuild.context.events import AssistantActivity, RepositoryActivity

T0 = datetime(2026, 6, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that tests move by hand."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


def _make_snapshot(events: Optional[List] = None, *, at: datetime = T0) -> ContextSnapshot:
    if events is None:
        events = [
            AssistantActivity(
                timestamp=at,
                session_id="s1",
                user_message="add login",
                files_modified=["a.ts"],
            ),
            RepositoryActivity(
                timestamp=at, repo="repo-x", commit_hash="1" * 40, commit_message="fix bug"
            ),
        ]
    screen, voice, claude, git = partition_events(events)
    return ContextSnapshot(
        timestamp=at,
        screen_activity=tuple(screen),
        voice_activity=tuple(voice),
        claude_activity=tuple(claude),
        git_activity=tuple(git),
        summary=build_summary(screen, voice, claude, git),
    )


@pytest.fixture
def make_snapshot():
    return _make_snapshot


@pytest.fixture
def snapshot() -> ContextSnapshot:
    return _make_snapshot()
