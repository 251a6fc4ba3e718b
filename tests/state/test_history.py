# tests/state/test_history.py
from __future__ import annotations

import json

from livebuild.state.history import TweetHistory, TweetRecord
from livebuild.state.store import HISTORY_FILENAME


def _record(i: int, **kwargs) -> TweetRecord:
    return TweetRecord(id=str(i), text=f"post {i}", timestamp=f"2026-06-10T12:{i:02d}:00", topic="t", **kwargs)


def test_append_and_recent(tmp_path):
    history = TweetHistory.at(tmp_path)
    for i in range(12):
        history.append(_record(i))

    recent = history.recent()
    assert len(recent) == 10
    assert [r.id for r in recent] == [str(i) for i in range(2, 12)]
    assert [r.id for r in history.recent(3)] == ["9", "10", "11"]
    assert history.recent(0) == []


def test_optional_fields_round_trip_and_are_omitted(tmp_path):
    history = TweetHistory.at(tmp_path)
    history.append(_record(1))
    history.append(_record(2, thread_id="1", media_url="/tmp/s.png"))

    raw = json.loads((tmp_path / HISTORY_FILENAME).read_text())
    assert "thread_id" not in raw[0]
    assert raw[1]["thread_id"] == "1"

    loaded = history.load()
    assert loaded[1].media_url == "/tmp/s.png"
    assert loaded[0].thread_id is None


def test_malformed_entries_are_skipped(tmp_path):
    (tmp_path / HISTORY_FILENAME).write_text(
        json.dumps([{"id": "1", "text": "ok", "timestamp": "t", "topic": "x"}, "garbage", {"id": "2"}])
    )
    loaded = TweetHistory.at(tmp_path).load()
    assert [r.id for r in loaded] == ["1"]


def test_in_memory_history():
    history = TweetHistory.in_memory()
    assert history.recent() == []
    history.append(_record(1))
    assert [r.id for r in history.recent()] == ["1"]


def test_append_after_truncated_file_keeps_the_old_records(tmp_path):
    truncated = '[{"id": "1", "text": "first", "timestamp": "t", "topic": "x"}, '
    (tmp_path / HISTORY_FILENAME).write_text(truncated)
    history = TweetHistory.at(tmp_path)

    history.append(_record(2))

    moved = list(tmp_path.glob(f"{HISTORY_FILENAME}.corrupt-*"))
    assert len(moved) == 1
    assert moved[0].read_text() == truncated
    assert [r.id for r in history.load()] == ["2"]
