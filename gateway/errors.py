"""
Error taxonomy for the gateway.

Every error carries the HTTP status and machine-readable code the API
layer responds with.
"""
from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for errors surfaced to API clients."""
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "Internal error", context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message}


class UpstreamUnavailable(GatewayError):
    """Network failure, timeout or 5xx from the upstream provider."""
    status_code = 502
    code = "UPSTREAM_UNAVAILABLE"


class UpstreamRateLimited(GatewayError):
    """Upstream refused the call for rate reasons. Never retried immediately."""
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.retry_after = retry_after


class ValidationFailure(GatewayError):
    """Malformed or incomplete entity data. Never cached, never stored durably."""
    status_code = 502
    code = "VALIDATION_FAILURE"


class NotFound(GatewayError):
    """Upstream confirms the entity does not exist."""
    status_code = 404
    code = "NOT_FOUND"


class BadRequest(GatewayError):
    """Client supplied invalid parameters."""
    status_code = 400
    code = "BAD_REQUEST"


class IncompletePayload(ValidationFailure):
    """Well-formed final data whose substructure is not yet populated upstream."""
