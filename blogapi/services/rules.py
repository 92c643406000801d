# blogapi/services/rules.py
"""Publication rules for posts.

Pure: given the current state (``None`` on create), the requested changes
and the clock reading, return the changes to persist.
"""

from datetime import datetime
from typing import Any, Mapping, Optional

from blogapi.models.post import STATUS_DRAFT, STATUS_PUBLISHED


def prepare_post_changes(
    current: Optional[Any], payload: Mapping[str, Any], now: datetime
) -> dict[str, Any]:
    # explicit nulls clear nothing but the publication date
    changes = {k: v for k, v in payload.items() if v is not None or k == "published_at"}
    status = changes.get("status")

    if current is None and status is None:
        status = changes["status"] = STATUS_DRAFT

    if status == STATUS_PUBLISHED:
        already_published = current is not None and current.status == STATUS_PUBLISHED
        if changes.get("published_at") is None and not already_published:
            changes["published_at"] = now
        elif changes.get("published_at") is None:
            changes.pop("published_at", None)
    elif status == STATUS_DRAFT:
        changes["published_at"] = None

    return changes
