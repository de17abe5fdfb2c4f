"""
Signal propagation service - timed ring delivery of proximity signals.

This module handles:
    - Sending and responding to signals (cooldown, offline checks)
    - Ring-by-ring propagation through a DelayedScheduler
    - Signal expiry and stale-signal reconciliation
"""

from .engine import (
    SignalPropagationEngine,
    PropagationRun,
    expire_stale_signals,
)
from .scheduler import (
    DelayedScheduler,
    ThreadingScheduler,
    ManualScheduler,
)
from .exceptions import (
    AuthorizationError,
    NotAuthorized,
    CooldownActive,
    UserNotFound,
    UserOffline,
    SignalNotFound,
    DeliveryError,
)

__all__ = [
    # Engine
    "SignalPropagationEngine",
    "PropagationRun",
    "expire_stale_signals",
    # Scheduling
    "DelayedScheduler",
    "ThreadingScheduler",
    "ManualScheduler",
    # Exceptions
    "AuthorizationError",
    "NotAuthorized",
    "CooldownActive",
    "UserNotFound",
    "UserOffline",
    "SignalNotFound",
    "DeliveryError",
]
