"""Custom exception hierarchy for NovelLens.

Business-logic exceptions that map cleanly to HTTP status codes.
Routes and workers raise these; the FastAPI handler in main.py renders them.

Hierarchy:
    NovelLensError (base)
    +-- NotFoundError            -> 404
    +-- ValidationError          -> 422
    |   +-- NoAnalyzedChaptersError
    +-- ConflictError            -> 409
    +-- BudgetExceededError      -> 413
    +-- ResponseParseError       -> 502
    +-- LLMTransportError        -> 502
    +-- ServiceUnavailableError  -> 503
"""

from __future__ import annotations

EXCERPT_LENGTH = 200


class NovelLensError(Exception):
    """Base exception for all NovelLens business-logic errors."""

    status_code: int = 500
    detail: str = "Internal server error"

    def __init__(self, detail: str | None = None, *, context: dict[str, object] | None = None):
        self.detail = detail or self.__class__.detail
        self.context = context or {}
        super().__init__(self.detail)


class NotFoundError(NovelLensError):
    """Resource not found (404)."""

    status_code = 404
    detail = "Resource not found"


class ValidationError(NovelLensError):
    """Input validation failed (422)."""

    status_code = 422
    detail = "Validation error"


class NoAnalyzedChaptersError(ValidationError):
    """A summary was requested for a novel with no analyzed chapters."""

    detail = "No analyzed chapters available for summary"


class ConflictError(NovelLensError):
    """Operation conflicts with current state (409)."""

    status_code = 409
    detail = "Resource conflict"


class BudgetExceededError(NovelLensError):
    """Prompt does not fit the model context window (413)."""

    status_code = 413
    detail = "Prompt exceeds model context"


class ResponseParseError(NovelLensError):
    """Model response is not valid JSON after cleanup (502).

    The first ``EXCERPT_LENGTH`` characters of the cleaned text are kept
    in ``excerpt`` for diagnosis.
    """

    status_code = 502
    detail = "Model response could not be parsed"

    def __init__(
        self,
        detail: str | None = None,
        *,
        excerpt: str = "",
        context: dict[str, object] | None = None,
    ):
        self.excerpt = excerpt[:EXCERPT_LENGTH]
        super().__init__(detail, context={**(context or {}), "excerpt": self.excerpt})


class LLMTransportError(NovelLensError):
    """Model API call failed or returned nothing usable (502)."""

    status_code = 502
    detail = "Model API call failed"


class ServiceUnavailableError(NovelLensError):
    """External service unavailable (503)."""

    status_code = 503
    detail = "Service unavailable"
