# tests/observers/test_fs_events.py
from __future__ import annotations

import asyncio

from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from livebuild.observers.fs_events import CREATED, MODIFIED, LoopForwardingHandler


def test_events_are_forwarded_to_the_loop():
    async def scenario():
        seen = []
        handler = LoopForwardingHandler(
            asyncio.get_running_loop(),
            lambda kind, path: seen.append((kind, path.name)),
            lambda path: path.suffix == ".jsonl",
        )
        handler.dispatch(FileCreatedEvent("/x/a.jsonl"))
        handler.dispatch(FileModifiedEvent("/x/a.jsonl"))
        handler.dispatch(FileModifiedEvent("/x/notes.txt"))
        handler.dispatch(DirModifiedEvent("/x"))
        handler.dispatch(FileMovedEvent("/x/.tmp", "/x/b.jsonl"))
        await asyncio.sleep(0)
        return seen

    assert asyncio.run(scenario()) == [
        (CREATED, "a.jsonl"),
        (MODIFIED, "a.jsonl"),
        (MODIFIED, "b.jsonl"),
    ]
