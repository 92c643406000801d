# blogapi/cache/keys.py
"""Cache key construction.

Keys are ``<prefix>:<namespace>[:<id>...][:<canonical params>]``. Parameter
tuples are canonicalised by sorting on name and normalising values, so two
requests that differ only in parameter order share a key.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any, Mapping

from blogapi.core.config import get_settings


class KeyFamily(str, enum.Enum):
    """Groups of keys that share a namespace and a TTL policy."""

    POST = "post"
    POST_LIST = "posts"
    STATS = "stats"
    STATS_DATE_RANGE = "stats-range"
    ROLES_META = "meta"


def _prefix() -> str:
    return get_settings().CACHE_PREFIX


def _normalise(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        value = value.value
    return str(value).strip().lower()


def canonical_params(params: Mapping[str, Any]) -> str:
    return ":".join(f"{name}={_normalise(params[name])}" for name in sorted(params))


def make_key(namespace: str, *parts: Any, params: Mapping[str, Any] | None = None) -> str:
    segments = [_prefix(), namespace, *(_normalise(part) for part in parts)]
    if params:
        segments.append(canonical_params(params))
    return ":".join(segments)


def post_key(post_id: int) -> str:
    return make_key("post", post_id)


def post_list_key(params: Mapping[str, Any]) -> str:
    return make_key("posts", "list", params=params)


def post_search_key(params: Mapping[str, Any]) -> str:
    return make_key("posts", "search", params=params)


def stats_key(name: str, date_from: Any = None, date_to: Any = None) -> str:
    # the un-ranged aggregate has a bounded identity and is evicted directly
    if date_from is None and date_to is None:
        return make_key("stats", name)
    return make_key("stats", name, date_from, date_to)


def roles_meta_key() -> str:
    return make_key("meta", "roles")


def family_ttl(family: KeyFamily) -> int:
    settings = get_settings()
    return {
        KeyFamily.POST: settings.POST_TTL,
        KeyFamily.POST_LIST: settings.POST_LIST_TTL,
        KeyFamily.STATS: settings.STATS_TTL,
        KeyFamily.STATS_DATE_RANGE: settings.STATS_TTL,
        KeyFamily.ROLES_META: settings.ROLES_META_TTL,
    }[family]
