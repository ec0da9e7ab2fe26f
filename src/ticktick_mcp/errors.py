"""Error taxonomy shared by the request engine, validators and tools."""

from typing import Any, Dict, Optional


class TickTickError(Exception):
    """Base class for every failure surfaced by the TickTick client."""

    kind = "error"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        retryable: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        if retryable is not None:
            self.retryable = retryable
        self.details = details
        self.hint = hint

    @property
    def error_code(self) -> Optional[str]:
        """Backend error code (e.g. ``unknown_exception``) when one was sent."""
        if self.details:
            return self.details.get("errorCode")
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.status is not None:
            data["status"] = self.status
        if self.hint:
            data["hint"] = self.hint
        if self.details:
            data["details"] = self.details
        return data

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} ({self.hint})"
        return self.message


class ValidationError(TickTickError):
    """A request was rejected locally, before any network call."""

    kind = "validation"

    def __init__(self, message: str, field: str, value: Any = None):
        super().__init__(message, details={"field": field, "value": value})
        self.field = field
        self.value = value


class UnauthorizedError(TickTickError):
    kind = "unauthorized"


class ForbiddenError(TickTickError):
    kind = "forbidden"


class NotFoundError(TickTickError):
    kind = "not_found"


class RateLimitedError(TickTickError):
    kind = "rate_limited"
    retryable = True


class ServerError(TickTickError):
    kind = "server_error"
    retryable = True


class NetworkError(TickTickError):
    kind = "network"
    retryable = True


class RequestTimeoutError(TickTickError):
    kind = "timeout"
    retryable = True


class ResponseParseError(TickTickError):
    """A successful response carried a body that is not valid JSON."""

    kind = "response_parse"
