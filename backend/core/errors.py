"""
Error Taxonomy

    ProviderError       → market data unavailable; alert skipped this cycle
    ProviderTimeout     → provider call exceeded its time budget
    StoreError          → persistence failed; fatal for that alert only
    InvariantViolation  → malformed stored record; alert skipped and flagged
    InvalidRequest      → caller error; surfaced to the transport layer
"""

from typing import Dict, List, Optional


class AlertEngineError(Exception):
    """Base class for all engine errors"""


class ProviderError(AlertEngineError):
    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderTimeout(ProviderError):
    def __init__(self, provider: str, timeout: float):
        super().__init__(provider, f"timed out after {timeout:.1f}s")
        self.timeout = timeout


class StoreError(AlertEngineError):
    pass


class InvariantViolation(AlertEngineError):
    def __init__(self, alert_id: str, message: str):
        super().__init__(f"alert {alert_id}: {message}")
        self.alert_id = alert_id


class InvalidRequest(AlertEngineError):
    def __init__(self, message: str, details: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.details = details or {}
