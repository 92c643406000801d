# blogapi/cache/coordinator.py
"""Maps committed changes to the cache keys they make stale.

Each (entity, operation) pair lists the keys evicted immediately, which all
have a bounded, known identity, and the key families left to expire by TTL
because their parameter space is unbounded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from blogapi.cache.keys import KeyFamily, post_key, roles_meta_key, stats_key
from blogapi.cache.store import ReadCache
from blogapi.services.events import ChangeEvent, EntityType, Operation

logger = logging.getLogger(__name__)

KeySource = Callable[[ChangeEvent], Iterable[str]]


def _changed_post(event: ChangeEvent) -> Iterable[str]:
    yield post_key(event.entity_id)


def _parent_post(event: ChangeEvent) -> Iterable[str]:
    for post_id in event.affected_relations.get("post", ()):
        yield post_key(post_id)


def _related_posts(event: ChangeEvent) -> Iterable[str]:
    for post_id in event.affected_relations.get("posts", ()):
        yield post_key(post_id)


def _roles_meta(event: ChangeEvent) -> Iterable[str]:
    yield roles_meta_key()


def _stats(*names: str) -> KeySource:
    def source(event: ChangeEvent) -> Iterable[str]:
        return [stats_key(name) for name in names]

    source.__name__ = f"stats({', '.join(names)})"
    return source


@dataclass(frozen=True)
class InvalidationRule:
    evict: tuple[KeySource, ...]
    expire: tuple[KeyFamily, ...] = ()


_POST_CHANGED = InvalidationRule(
    evict=(_changed_post, _stats("posts", "users")),
    expire=(KeyFamily.POST_LIST, KeyFamily.STATS_DATE_RANGE),
)
_COMMENT_CHANGED = InvalidationRule(
    evict=(_parent_post, _stats("comments", "posts", "users")),
    expire=(KeyFamily.STATS_DATE_RANGE,),
)
_ROLE_CHANGED = InvalidationRule(evict=(_roles_meta,))
_MEMBERSHIP_CHANGED = InvalidationRule(evict=(_stats("users"),))

INVALIDATION_TABLE: dict[tuple[EntityType, Operation], InvalidationRule] = {
    (EntityType.POST, Operation.CREATE): InvalidationRule(
        evict=(_stats("posts", "users"),),
        expire=(KeyFamily.POST_LIST, KeyFamily.STATS_DATE_RANGE),
    ),
    (EntityType.POST, Operation.UPDATE): _POST_CHANGED,
    (EntityType.POST, Operation.DELETE): _POST_CHANGED,
    (EntityType.COMMENT, Operation.CREATE): _COMMENT_CHANGED,
    (EntityType.COMMENT, Operation.UPDATE): _COMMENT_CHANGED,
    (EntityType.COMMENT, Operation.DELETE): _COMMENT_CHANGED,
    (EntityType.ROLE, Operation.CREATE): _ROLE_CHANGED,
    (EntityType.ROLE, Operation.UPDATE): _ROLE_CHANGED,
    (EntityType.ROLE, Operation.DELETE): _ROLE_CHANGED,
    (EntityType.ROLE_ASSIGNMENT, Operation.ASSIGN): _MEMBERSHIP_CHANGED,
    (EntityType.ROLE_ASSIGNMENT, Operation.REMOVE): _MEMBERSHIP_CHANGED,
    (EntityType.USER, Operation.UPDATE): InvalidationRule(
        evict=(_stats("users"),),
        expire=(KeyFamily.STATS_DATE_RANGE,),
    ),
    # cascades remove the user's posts and comments
    (EntityType.USER, Operation.DELETE): InvalidationRule(
        evict=(_related_posts, _stats("users", "posts", "comments")),
        expire=(KeyFamily.POST_LIST, KeyFamily.STATS_DATE_RANGE),
    ),
}


class CacheCoherenceCoordinator:
    def __init__(self, cache: ReadCache, table: dict | None = None):
        self.cache = cache
        self.table = table if table is not None else INVALIDATION_TABLE

    def keys_for(self, event: ChangeEvent) -> list[str]:
        try:
            rule = self.table[(event.entity_type, event.operation)]
        except KeyError:
            raise LookupError(
                f"no invalidation rule for {event.entity_type.value} {event.operation.value}"
            ) from None
        keys: list[str] = []
        for source in rule.evict:
            keys.extend(source(event))
        return list(dict.fromkeys(keys))

    async def on_change(self, event: ChangeEvent) -> None:
        keys = self.keys_for(event)
        await self.cache.forget_many(keys)
        logger.debug(
            "%s %s #%s evicted %s",
            event.entity_type.value,
            event.operation.value,
            event.entity_id,
            keys,
        )
