"""
Core Module
Shared primitives for the alert engine.

Exports:
    Clock: Clock, SystemClock, FixedClock, ensure_utc
    IDs: IdGenerator, uuid_ids, sequential_ids
    Errors: AlertEngineError, ProviderError, ProviderTimeout,
            StoreError, InvariantViolation, InvalidRequest
"""

from .clock import (
    Clock,
    SystemClock,
    FixedClock,
    IdGenerator,
    ensure_utc,
    uuid_ids,
    sequential_ids,
)

from .errors import (
    AlertEngineError,
    ProviderError,
    ProviderTimeout,
    StoreError,
    InvariantViolation,
    InvalidRequest,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "FixedClock",
    "IdGenerator",
    "ensure_utc",
    "uuid_ids",
    "sequential_ids",
    # Errors
    "AlertEngineError",
    "ProviderError",
    "ProviderTimeout",
    "StoreError",
    "InvariantViolation",
    "InvalidRequest",
]
