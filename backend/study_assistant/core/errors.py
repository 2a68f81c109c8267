"""
Application error taxonomy.

Route handlers and services raise AppError subclasses; a single exception
handler in main.py renders them into the ErrorResponse envelope. The public
message is always a fixed, client-safe string. Anything more specific
(upstream error text, stack traces) goes to the server log only.

  AppError
  ├── ValidationFailed   400  VALIDATION_FAILED
  ├── Unauthorized       401  UNAUTHORIZED
  ├── Forbidden          403  FORBIDDEN
  ├── NotFound           404  NOT_FOUND
  ├── Conflict           409  CONFLICT
  ├── PayloadTooLarge    413  PAYLOAD_TOO_LARGE
  ├── RateLimited        429  RATE_LIMITED
  ├── UpstreamFailure    502  UPSTREAM_FAILURE
  └── ConfigurationError 500  CONFIGURATION_ERROR
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code:  str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred."

    def __init__(
        self,
        message: str | None = None,
        *,
        field: str | None = None,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.field   = field
        self.extra   = extra or {}
        self.headers = headers or {}
        super().__init__(self.message)


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code  = "VALIDATION_FAILED"
    default_message = "The request is invalid."


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code  = "UNAUTHORIZED"
    default_message = "Authentication required."


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code  = "FORBIDDEN"
    default_message = "You do not have access to this resource."


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code  = "NOT_FOUND"
    default_message = "Resource not found."


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    error_code  = "CONFLICT"
    default_message = "The resource already exists."


class PayloadTooLarge(AppError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    error_code  = "PAYLOAD_TOO_LARGE"
    default_message = "The uploaded file is too large."


class RateLimited(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code  = "RATE_LIMITED"
    default_message = "Too many requests. Please try again later."


class UpstreamFailure(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code  = "UPSTREAM_FAILURE"
    default_message = "An upstream service failed. Please retry."


class ConfigurationError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code  = "CONFIGURATION_ERROR"
    default_message = "This feature is not configured on the server."
