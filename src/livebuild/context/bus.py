# src/livebuild/context/bus.py
"""
EventBus: synchronous, in-process publish/subscribe for activity events.

Observers publish, the ContextAccumulator subscribes. One instance is built
in `livebuild.main` and handed to everyone who needs it.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from typing import Callable, DefaultDict, List, Union

from livebuild.context.events import ALL_ACTIVITY, ActivityEvent

logger = logging.getLogger(__name__)

Handler = Callable[[ActivityEvent], None]
Channel = Union[str, Enum]


def _key(channel: Channel) -> str:
    return channel.value if isinstance(channel, Enum) else channel


class EventBus:
    """
    Fan-out is synchronous and in call order: every handler registered at
    publish time runs before `publish` returns. A handler that raises is logged
    and skipped; the remaining handlers still receive the event.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, channel: Channel, handler: Handler) -> None:
        self._handlers[_key(channel)].append(handler)

    def unsubscribe(self, channel: Channel, handler: Handler) -> None:
        handlers = self._handlers.get(_key(channel))
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            pass

    def publish(self, event: ActivityEvent) -> None:
        channel = _key(event.type)
        # snapshot the lists so (un)subscribing inside a handler is safe
        targets = list(self._handlers.get(channel, ())) + list(
            self._handlers.get(ALL_ACTIVITY, ())
        )
        for handler in targets:
            try:
                handler(event)
            except Exception:
                logger.exception("event bus: handler %r failed on %s", handler, channel)

    def subscriber_count(self, channel: Channel) -> int:
        return len(self._handlers.get(_key(channel), ()))


__all__ = ["EventBus", "Handler"]
