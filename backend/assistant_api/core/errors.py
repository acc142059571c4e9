"""
Service error taxonomy.

Every error that reaches the HTTP layer carries a machine-stable category.
The exception handler in main.py renders them; `detail` is only exposed in
development.
"""
from typing import Optional


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    category = "internal_error"
    status_code = 500
    public_message = "Something went wrong"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.public_message)
        self.detail = detail


class InputInvalid(ServiceError):
    category = "input_invalid"
    status_code = 400
    public_message = "Message is required"


class Unauthorized(ServiceError):
    """Missing or invalid session token while gating is enforced."""

    category = "unauthorized"
    status_code = 401
    public_message = "A valid session token is required"

    def __init__(self, detail: Optional[str] = None, token_supplied: bool = False):
        super().__init__(detail)
        self.token_supplied = token_supplied


class QuotaExceeded(ServiceError):
    category = "quota_exceeded"
    status_code = 429
    public_message = "Daily request limit reached. Please try again tomorrow."

    def __init__(self, retry_after: int, count: int, limit: int):
        super().__init__(f"{count} requests today, limit is {limit}")
        self.retry_after = retry_after
        self.count = count
        self.limit = limit


class UpstreamUnavailable(ServiceError):
    """
    An external dependency (AI, scraper, verification provider) failed.

    `reason` is for operators: auth, quota, rate_limit, timeout,
    circuit_open, not_configured, generic.
    """

    category = "upstream_unavailable"
    status_code = 502
    public_message = "Sorry, I encountered an error while processing your request."

    REASON_MESSAGES = {
        "auth": "AI service authentication failed.",
        "quota": "AI service quota exceeded. Please try again later.",
        "rate_limit": "AI service rate limit exceeded. Please try again later.",
        "not_configured": "AI service not configured.",
    }

    def __init__(self, upstream: str, reason: str = "generic", detail: Optional[str] = None):
        super().__init__(
            detail
            or self.REASON_MESSAGES.get(reason)
            or f"{upstream} unavailable ({reason})"
        )
        self.upstream = upstream
        self.reason = reason
        if reason == "not_configured":
            self.status_code = 503


class LedgerUnavailable(Exception):
    """The quota store could not be reached. Never surfaced to callers."""


StoreUnavailable = LedgerUnavailable
