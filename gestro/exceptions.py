"""
Domain Exceptions

Typed errors raised by the service layer and translated into HTTP
responses by the handlers registered in gestro.main.
"""

from typing import Optional


class GestroError(Exception):
    """Base class for all domain errors."""

    status_code = 400

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(GestroError):
    """A referenced row does not exist."""

    status_code = 404


class InvalidStatusTransitionError(GestroError):
    """An order status change is not allowed by the workflow."""

    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move order from '{current}' to '{target}'",
            detail="Use force=true to override as an administrator",
        )
        self.current = current
        self.target = target


class PaymentProcessingError(GestroError):
    """The payment flow could not be completed."""

    status_code = 402


class ConflictError(GestroError):
    """The request clashes with the current state of a row."""

    status_code = 409
