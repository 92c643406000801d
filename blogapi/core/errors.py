# blogapi/core/errors.py
"""Service error taxonomy and its HTTP translation."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class BlogError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Internal error"

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class AuthenticationRequired(BlogError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Authentication required."


class AuthorizationDenied(BlogError):
    status_code = status.HTTP_403_FORBIDDEN

    # messages never name roles
    MESSAGES = {
        "not_owner": "You do not own this resource.",
        "self_deletion": "You cannot delete your own account.",
    }
    DEFAULT_MESSAGE = "You lack permission to perform this action."

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(self.MESSAGES.get(reason, self.DEFAULT_MESSAGE))


class ValidationFailed(BlogError):
    status_code = 422
    detail = "Validation failed."


class NotFound(BlogError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Resource not found."


class ConflictingState(BlogError):
    status_code = status.HTTP_409_CONFLICT
    detail = "The request conflicts with the current state of the resource."


class StorageUnavailable(BlogError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "The data store is temporarily unavailable."
    retry_after = 5


class CacheComputeFailed(BlogError):
    """Cache infrastructure failure; recovered by computing directly."""

    detail = "Cache backend failure."


def _headers(exc: BlogError) -> dict[str, str] | None:
    if isinstance(exc, AuthenticationRequired):
        return {"WWW-Authenticate": "Bearer"}
    if isinstance(exc, StorageUnavailable):
        return {"Retry-After": str(exc.retry_after)}
    return None


async def blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
    body = {"detail": exc.detail}
    if isinstance(exc, AuthorizationDenied):
        body["reason"] = exc.reason
    return JSONResponse(status_code=exc.status_code, content=body, headers=_headers(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BlogError, blog_error_handler)
