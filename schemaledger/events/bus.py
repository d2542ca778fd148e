"""Migration events — lifecycle notifications from the executor.

The executor publishes one event per step of a run (see ``MigrationTopic``).
The hosting service subscribes to gate readiness or to notify operators.
Patterns use fnmatch, so "migration.*" receives every topic.

Handlers run one after another in subscription order, after the ledger
row for the event has been committed. A failing handler is logged and
skipped; it never reaches the executor.
"""

from __future__ import annotations

import fnmatch
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog
from pydantic import BaseModel, Field

from schemaledger.identifiers import new_id

logger = structlog.get_logger(__name__)


class MigrationTopic(str, Enum):
    RUN_STARTED = "migration.run_started"
    APPLIED = "migration.applied"
    FAILED = "migration.failed"
    ABORTED = "migration.aborted"
    RUN_COMPLETED = "migration.run_completed"


class Event(BaseModel):
    id: str = Field(default_factory=new_id)
    topic: str
    data: dict[str, Any] = Field(default_factory=dict)
    source: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def run_id(self) -> str | None:
        return self.data.get("run_id")


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Delivers executor events to subscribers and keeps a bounded history."""

    def __init__(self, history_limit: int = 500) -> None:
        self._subscriptions: list[tuple[str, EventHandler]] = []
        self._history: deque[Event] = deque(maxlen=history_limit)

    def subscribe(self, pattern: str | MigrationTopic, handler: EventHandler) -> None:
        self._subscriptions.append((_topic(pattern), handler))

    def unsubscribe(self, pattern: str | MigrationTopic, handler: EventHandler) -> None:
        entry = (_topic(pattern), handler)
        if entry in self._subscriptions:
            self._subscriptions.remove(entry)

    async def emit(
        self,
        topic: str | MigrationTopic,
        data: dict | None = None,
        source: str = "",
    ) -> Event:
        event = Event(topic=_topic(topic), data=data or {}, source=source)
        self._history.append(event)

        for pattern, handler in list(self._subscriptions):
            if not fnmatch.fnmatchcase(event.topic, pattern):
                continue
            try:
                await handler(event)
            except Exception as e:
                logger.warning(
                    "event.handler_failed",
                    topic=event.topic,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=repr(e),
                )
        return event

    def history(self, topic_filter: str | MigrationTopic = "*", limit: int = 50) -> list[Event]:
        """Recent events, newest first."""
        pattern = _topic(topic_filter)
        matched = [e for e in reversed(self._history) if fnmatch.fnmatchcase(e.topic, pattern)]
        return matched[:limit]

    def last(self, topic: str | MigrationTopic) -> Event | None:
        found = self.history(topic, limit=1)
        return found[0] if found else None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


def _topic(value: str | MigrationTopic) -> str:
    return value.value if isinstance(value, MigrationTopic) else value
