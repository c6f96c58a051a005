"""
Provider Interfaces
Market data the engine consumes but does not own.

Implementations must be async and may raise ProviderError on failure.
The evaluator wraps every call in its own timeout.
"""

from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel


class TokenMetrics(BaseModel):
    """On-chain activity snapshot for one token"""
    volume: float
    trades: float
    holder_delta_6h: float
    holder_delta_30m: float


class IndicatorReading(BaseModel):
    """Result of evaluating one technical indicator"""
    triggered: bool
    value: Optional[str] = None


class PriceFeed(Protocol):
    async def get_last_price(self, symbol_or_address: str, timeframe: str) -> float:
        ...


class TokenMetricsProvider(Protocol):
    async def get_metrics(self, symbol_or_address: str) -> TokenMetrics:
        ...


class IndicatorProvider(Protocol):
    async def evaluate_indicators(
        self,
        symbol_or_address: str,
        timeframe: str,
        indicator_ids: List[str],
    ) -> Dict[str, IndicatorReading]:
        ...
