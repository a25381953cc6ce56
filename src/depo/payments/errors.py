"""Billing request errors.

Every error raised while serving a billing action ends up in the same
``{"error": message}`` envelope; the classes only exist so callers and
tests can tell the failure kinds apart.
"""


class PaymentsError(Exception):
    """Base billing error."""


class AuthenticationError(PaymentsError):
    """Caller identity could not be resolved from the bearer credential."""


class AuthorizationError(PaymentsError):
    """Caller is not allowed to act on the requested billing identity."""


class InvalidActionError(PaymentsError):
    """Request ``action`` is not one the endpoint serves."""

    def __init__(self, action: object = None):
        super().__init__("Invalid action")
        self.action = action


class InvalidRequestError(PaymentsError):
    """Request body is malformed or misses a required field."""
