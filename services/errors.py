"""
Errors raised by the booking, payment and review services.

Each error carries the HTTP status the API answers with, so routes can let
them propagate to the handler registered in ``create_app``.
"""


class DomainError(Exception):
    status_code = 400
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(DomainError):
    status_code = 404
    kind = "not_found"


class Unauthorized(DomainError):
    # authenticated, but not a party to / owner of the resource
    status_code = 403
    kind = "unauthorized"


class InvalidTransition(DomainError):
    status_code = 400
    kind = "invalid_transition"


class ValidationError(DomainError):
    status_code = 400
    kind = "validation_error"


class ProviderFailure(DomainError):
    """Payment or video provider failed or timed out. Safe for the caller to retry."""

    status_code = 502
    kind = "provider_failure"
