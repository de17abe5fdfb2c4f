"""
Read-only user lookups consulted by the signal engine and the push notifier.

User registration and settings updates happen elsewhere; this module only
answers "does the user exist", "is the user offline" and "which distance unit
does the user prefer".
"""

from typing import Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError

from common.utils import MILE

User = get_user_model()


def get_user(user_id) -> Optional[User]:
    """Return the user or None (also None for malformed ids)."""
    try:
        return User.objects.filter(id=user_id).first()
    except (ValueError, TypeError, ValidationError):
        return None


def _resolve(user_or_id) -> Optional[User]:
    if isinstance(user_or_id, User):
        return user_or_id
    return get_user(user_or_id)


def is_offline(user_or_id) -> bool:
    """Unknown users are treated as offline. Accepts a user or an id."""
    user = _resolve(user_or_id)
    return True if user is None else user.is_offline


def distance_unit_preference(user_or_id) -> str:
    user = _resolve(user_or_id)
    return user.distance_unit if user is not None else MILE


class UserNotFound(Exception):
    """Raised when an operation references an unknown user."""
    pass


def require_user(user_id) -> User:
    user = get_user(user_id)
    if user is None:
        raise UserNotFound(f"User not found: {user_id}")
    return user
