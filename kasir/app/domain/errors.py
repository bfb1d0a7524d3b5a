"""Domain exceptions raised by repositories and services.

Routes do not catch these; the handlers registered in ``main`` translate
them into the standard error envelope with the matching HTTP status.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base class carrying a machine readable code and optional details."""

    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationFailed(DomainError):
    """Malformed input or a request the current state cannot satisfy."""

    status_code = 422
    code = "VALIDATION_FAILED"


class InsufficientStock(ValidationFailed):
    """Raised when a deduction batch cannot be covered by current stock."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, insufficient: list[dict[str, Any]]) -> None:
        super().__init__(
            "insufficient stock", {"insufficient_stock": insufficient}
        )
        self.insufficient = insufficient


class Conflict(DomainError):
    """The resource changed or is in a state that forbids the operation."""

    status_code = 409
    code = "CONFLICT"


class NotFound(DomainError):
    status_code = 404
    code = "NOT_FOUND"


__all__ = [
    "DomainError",
    "ValidationFailed",
    "InsufficientStock",
    "Conflict",
    "NotFound",
]
