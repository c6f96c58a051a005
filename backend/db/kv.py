"""
KV Store Contract
Everything the engine persists is expressed through this interface.

Values are JSON documents (dict / list / str / number / bool / None).
Backends store serialized copies: mutating a value after set() or get()
never changes what is stored.
"""

from typing import Any, List, Optional, Protocol, Tuple

import config


class KVStore(Protocol):
    backend: str

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ...

    def set_if_absent(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Atomic insert; expired entries count as absent. True if written."""
        ...

    def delete(self, key: str) -> bool:
        ...

    def exists(self, key: str) -> bool:
        ...

    def increment_counter(self, key: str, ttl_seconds: Optional[int] = None) -> int:
        ...

    def list_by_prefix(self, prefix: str) -> List[Tuple[str, Any]]:
        ...


# =============================================================================
# Key Schema
# =============================================================================

class keys:
    """Key builders. All keys share the versioned prefix."""

    @staticmethod
    def alert_def(alert_id: str) -> str:
        return f"{config.KV_PREFIX}alerts:def:{alert_id}"

    @staticmethod
    def alert_index() -> str:
        return f"{config.KV_PREFIX}alerts:index"

    @staticmethod
    def emit_dedupe(alert_id: str, stage: str, window_id: str) -> str:
        return f"{config.KV_PREFIX}alerts:emit_dedupe:{alert_id}:{stage}:{window_id}"

    @staticmethod
    def alert_event(event_id: str) -> str:
        return f"{config.KV_PREFIX}events:alert:{event_id}"

    @staticmethod
    def alert_events_index() -> str:
        return f"{config.KV_PREFIX}events:alert:index"

    @staticmethod
    def sweep_counter() -> str:
        return f"{config.KV_PREFIX}evaluator:sweeps"
