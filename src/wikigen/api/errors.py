"""Translation of domain errors to HTTP responses."""

import math

from fastapi import HTTPException, status

from wikigen.errors import ErrorCode, RateLimitedError, WikiGenerationError

PAGE_NOT_FOUND = "PAGE_NOT_FOUND"

STATUS_FOR_CODE = {
    ErrorCode.INVALID_QUERY: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NO_SOURCES_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.GENERATION_FAILED: status.HTTP_502_BAD_GATEWAY,
}


def generation_http_error(
    error: WikiGenerationError, headers: dict[str, str] | None = None
) -> HTTPException:
    """Build the HTTPException for a generation failure.

    Rate-limited and cooldown errors carry a ``Retry-After`` header in
    whole seconds.
    """
    response_headers = dict(headers or {})
    retry_after = getattr(error, "retry_after", None)
    if error.code == ErrorCode.RATE_LIMITED and retry_after is not None:
        response_headers["Retry-After"] = str(max(1, math.ceil(retry_after)))
    if isinstance(error, RateLimitedError):
        response_headers.setdefault("X-RateLimit-Limit", str(error.limit))
    return HTTPException(
        status_code=STATUS_FOR_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=error.to_dict(),
        headers=response_headers or None,
    )


def page_not_found(slug: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"code": PAGE_NOT_FOUND, "message": f"Page '{slug}' not found"},
    )
