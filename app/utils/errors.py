"""Utility helpers for standardized error responses and domain errors."""
from typing import Any


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class AppError(Exception):
    """Base class for errors rendered as ``error_response`` payloads."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_response(self) -> dict[str, Any]:
        return error_response(self.code, self.message, self.details)


class ValidationError(AppError):
    """Malformed, user-correctable input."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    """Referenced entity does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class AuthorizationError(AppError):
    """Missing or invalid credentials."""

    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(AuthorizationError):
    """Valid credentials without the required privilege."""

    status_code = 403
    code = "FORBIDDEN"


class UpstreamGatewayError(AppError):
    """The payment gateway is unreachable or answered unexpectedly."""

    status_code = 502
    code = "UPSTREAM_GATEWAY_ERROR"


class GatewayNotConfiguredError(UpstreamGatewayError):
    status_code = 503
    code = "GATEWAY_NOT_CONFIGURED"


class DeliveryFailure(Exception):
    """A single webhook delivery attempt failed; never leaves the dispatcher."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "error_response",
    "AppError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "ForbiddenError",
    "UpstreamGatewayError",
    "GatewayNotConfiguredError",
    "DeliveryFailure",
]
