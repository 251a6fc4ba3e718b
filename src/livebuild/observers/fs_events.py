# src/livebuild/observers/fs_events.py
"""
watchdog glue for the file-based observers.

watchdog delivers events on its own observer thread; everything downstream
(state store, event bus) lives on the asyncio loop. `LoopForwardingHandler`
hops each accepted event over with `loop.call_soon_threadsafe`.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler

logger = logging.getLogger(__name__)

CREATED = "created"
MODIFIED = "modified"

# (kind, path) on the loop thread
FileCallback = Callable[[str, Path], None]


class LoopForwardingHandler(FileSystemEventHandler):
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        callback: FileCallback,
        accept: Callable[[Path], bool],
    ) -> None:
        super().__init__()
        self._loop = loop
        self._callback = callback
        self._accept = accept

    def _forward(self, kind: str, raw_path) -> None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode()
        path = Path(raw_path)
        if not self._accept(path):
            return
        try:
            self._loop.call_soon_threadsafe(self._callback, kind, path)
        except RuntimeError:
            # loop already closed during shutdown
            logger.debug("fs events: dropped %s for %s, loop closed", kind, path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(CREATED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(MODIFIED, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # a rename into place counts as a modification
        if not event.is_directory:
            self._forward(MODIFIED, event.dest_path)


__all__ = ["CREATED", "FileCallback", "LoopForwardingHandler", "MODIFIED"]
