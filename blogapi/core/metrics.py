# blogapi/core/metrics.py
from prometheus_client import Counter

change_event_failures = Counter(
    "blogapi_change_event_failures",
    "Change events that could not be delivered after a committed mutation",
    ["entity", "operation"],
)

cache_backend_failures = Counter(
    "blogapi_cache_backend_failures",
    "Cache backend failures bypassed by direct computation",
    ["operation"],
)

authz_decisions = Counter(
    "blogapi_authz_decisions",
    "Authorization decisions",
    ["action", "resource_type", "outcome"],
)
