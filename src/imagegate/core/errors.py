"""Error taxonomy for the ImageGate gateway.

Every failure that can cross the HTTP boundary is an instance of
:class:`GatewayError`.  Each subclass carries a stable ``code`` string and
the HTTP ``status_code`` the API layer renders it with, so route handlers
never have to map exceptions to statuses by hand.

Taxonomy
--------
======================  ========================  ======
Class                   Code                      Status
======================  ========================  ======
InvalidRequestError     ``INVALID_REQUEST``       400
UnauthorizedError       ``UNAUTHORIZED``          401
InternalServerError     ``INTERNAL_SERVER_ERROR`` 500
ExternalAPIError        ``EXTERNAL_API_ERROR``    502
GatewayTimeoutError     ``TIMEOUT``               504
======================  ========================  ======

:class:`ValidationError`, :class:`UnknownModelError` and
:class:`DuplicateModelError` are specialised :class:`InvalidRequestError`
subclasses so callers can catch them precisely while the API still renders
them as 400.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for all gateway errors.

    Attributes:
        message: Human-readable message safe to return to the caller.
        cause: Optional underlying exception.  Logged server-side, never
            rendered into the response envelope.
    """

    code: str = "INTERNAL_SERVER_ERROR"
    status_code: int = 500

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_envelope(self) -> dict:
        """Render the uniform JSON error envelope."""
        return {"status": "error", "message": self.message, "code": self.code}


class InvalidRequestError(GatewayError):
    """The request is malformed or violates a model constraint."""

    code = "INVALID_REQUEST"
    status_code = 400


class ValidationError(InvalidRequestError):
    """One or more field-level validation rules failed.

    Attributes:
        reasons: Every violated rule, in evaluation order.
    """

    def __init__(self, reasons: list[str]) -> None:
        self.reasons = list(reasons)
        super().__init__(f"Validation failed: {'; '.join(self.reasons)}")

    def to_envelope(self) -> dict:
        envelope = super().to_envelope()
        envelope["errors"] = list(self.reasons)
        return envelope


class UnknownModelError(InvalidRequestError):
    """The requested model id is not registered."""

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(f"Model with ID {model_id} not found")


class DuplicateModelError(InvalidRequestError):
    """A model with the same id is already registered."""

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(f"Model with ID {model_id} already registered")


class UnauthorizedError(GatewayError):
    """The remote API rejected our credentials."""

    code = "UNAUTHORIZED"
    status_code = 401


class InternalServerError(GatewayError):
    """A local failure unrelated to the remote call."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500


class ExternalAPIError(GatewayError):
    """The remote call failed or returned an unusable response."""

    code = "EXTERNAL_API_ERROR"
    status_code = 502


class GatewayTimeoutError(GatewayError):
    """Polling exceeded its budget or the caller went away."""

    code = "TIMEOUT"
    status_code = 504


__all__ = [
    "GatewayError",
    "InvalidRequestError",
    "ValidationError",
    "UnknownModelError",
    "DuplicateModelError",
    "UnauthorizedError",
    "InternalServerError",
    "ExternalAPIError",
    "GatewayTimeoutError",
]
