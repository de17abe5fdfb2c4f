"""Custom exceptions for signal propagation."""

from accounts.directory import UserNotFound
from common.validation import ValidationError, InvalidLocation, InvalidDistance


class AuthorizationError(Exception):
    """Raised when a caller may not perform an operation."""
    pass


class NotAuthorized(AuthorizationError):
    """Raised when responding to a signal the responder never received."""
    pass


class CooldownActive(Exception):
    """Raised when the sender already has an active signal inside the cooldown window."""

    def __init__(self, remaining_seconds: int):
        self.remaining_seconds = remaining_seconds
        super().__init__(f"Signal cooldown active, retry in {remaining_seconds}s")


class UserOffline(Exception):
    """Raised when an offline user tries to send a signal."""
    pass


class SignalNotFound(Exception):
    """Raised when a signal id does not exist."""
    pass


class DeliveryError(Exception):
    """Raised by push or WebSocket delivery; logged, never surfaced to the sender."""
    pass


__all__ = [
    "ValidationError",
    "InvalidLocation",
    "InvalidDistance",
    "AuthorizationError",
    "NotAuthorized",
    "CooldownActive",
    "UserNotFound",
    "UserOffline",
    "SignalNotFound",
    "DeliveryError",
]
