"""Custom exceptions for the ZiroX core.

Storage and domain layers raise these; the public operations in
``zirox.claims.gate`` and ``zirox.pricing.oracle`` catch them at their
boundary and turn them into structured results.
"""


class ZiroxError(Exception):
    """Base exception for all ZiroX errors."""


class AuthenticationError(ZiroxError):
    """Raised when no authenticated account is attached to the request."""


class NotFoundError(ZiroxError):
    """Raised when an account, trade or singleton row does not exist."""


class ValidationError(ZiroxError):
    """Raised for a malformed amount, identifier or parameter."""


class CooldownActiveError(ZiroxError):
    """Raised when an account claims before its cooldown has elapsed."""

    def __init__(self, remaining_ms: int) -> None:
        super().__init__(f"Cooldown active, {remaining_ms} ms remaining")
        self.remaining_ms = remaining_ms


class SupplyExhaustedError(ZiroxError):
    """Raised when a claim would push total claimed above max supply."""


class UnauthorizedError(ZiroxError):
    """Raised when the actor is not a party to the resource it acts on."""


class ExternalOperationError(ZiroxError):
    """Raised when the atomic claim or a persistence call fails.

    ``reason`` is a short machine-readable tag ("timeout", "storage", ...).
    """

    def __init__(self, message: str, reason: str = "storage") -> None:
        super().__init__(message)
        self.reason = reason
