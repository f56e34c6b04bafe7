"""
Error taxonomy for billing reconciliation.

Every error carries the HTTP status the boundary should answer with, so the
Flask error handlers and the webhook routes never have to guess.
"""


class BillingError(Exception):
    status_code = 500
    code = "BILLING_ERROR"

    def __init__(self, message=None, *, code=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        if code:
            self.code = code

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class AuthenticationError(BillingError):
    """Bad or missing webhook signature. Never retried on our side."""

    status_code = 400
    code = "SIGNATURE_INVALID"


class ValidationError(BillingError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(BillingError):
    status_code = 404
    code = "NOT_FOUND"


class ConfigurationError(BillingError):
    """Missing plan/price mapping or secret. Operator-fixable."""

    status_code = 500
    code = "CONFIGURATION_ERROR"


class ProviderError(BillingError):
    status_code = 502
    code = "PROVIDER_ERROR"


class TransientStoreError(BillingError):
    """Store unavailable or contended. Safe for the provider to retry."""

    status_code = 503
    code = "TRANSIENT_STORE_ERROR"


class DeadlineExceeded(TransientStoreError):
    code = "DEADLINE_EXCEEDED"


class InvalidStateTransition(BillingError):
    status_code = 409
    code = "INVALID_TRANSITION"


class ForbiddenError(BillingError):
    """Authenticated caller acting on another user's billing."""

    status_code = 403
    code = "FORBIDDEN"
