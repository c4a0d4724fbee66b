"""Domain errors raised by the generation pipeline."""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable failure codes surfaced to API clients."""

    INVALID_QUERY = "INVALID_QUERY"
    NO_SOURCES_FOUND = "NO_SOURCES_FOUND"
    GENERATION_FAILED = "GENERATION_FAILED"
    RATE_LIMITED = "RATE_LIMITED"


class WikiGenerationError(Exception):
    """A page could not be produced.

    Attributes:
        code: Failure category.
        message: Human-readable description.
    """

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code.value, "message": self.message}


class RateLimitedError(WikiGenerationError):
    """The caller exceeded its generation rate limit."""

    def __init__(self, retry_after: float, limit: int, window_seconds: float):
        super().__init__(
            ErrorCode.RATE_LIMITED,
            f"Rate limit of {limit} generations per {window_seconds:g}s exceeded",
        )
        self.retry_after = retry_after
        self.limit = limit


class CooldownActiveError(WikiGenerationError):
    """The slug was generated too recently to regenerate."""

    def __init__(self, slug: str, remaining: float):
        super().__init__(
            ErrorCode.RATE_LIMITED,
            f"Page '{slug}' was generated recently; retry in {remaining:.1f}s",
        )
        self.slug = slug
        self.remaining = remaining

    @property
    def retry_after(self) -> float:
        return self.remaining


class PageNotFoundError(LookupError):
    """No cached page exists for the slug."""

    def __init__(self, slug: str):
        super().__init__(f"Page '{slug}' not found")
        self.slug = slug
