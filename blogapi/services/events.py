# blogapi/services/events.py
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Mapping

from blogapi.core.metrics import change_event_failures

logger = logging.getLogger(__name__)


class EntityType(str, enum.Enum):
    POST = "post"
    COMMENT = "comment"
    ROLE = "role"
    ROLE_ASSIGNMENT = "role_assignment"
    USER = "user"


class Operation(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ASSIGN = "assign"
    REMOVE = "remove"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed mutation.

    ``affected_relations`` names other entities whose derived views embed
    this one, e.g. ``{"post": (7,)}`` for a comment on post 7.
    """

    entity_type: EntityType
    entity_id: int
    operation: Operation
    affected_relations: Mapping[str, tuple[int, ...]] = field(default_factory=dict)


Subscriber = Callable[[ChangeEvent], Awaitable[None]]


class EventBus:
    """In-process, synchronous delivery of change events.

    ``publish`` awaits every subscriber in registration order. A failing
    subscriber is logged and counted but never propagates: the mutation that
    produced the event has already committed.
    """

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    async def publish(self, event: ChangeEvent) -> bool:
        delivered = True
        for subscriber in self._subscribers:
            try:
                await subscriber(event)
            except Exception:
                delivered = False
                change_event_failures.labels(
                    entity=event.entity_type.value, operation=event.operation.value
                ).inc()
                logger.exception(
                    "failed to deliver %s %s #%s to %r; derived caches may be stale until TTL",
                    event.entity_type.value,
                    event.operation.value,
                    event.entity_id,
                    subscriber,
                )
        return delivered
