"""
Deterministic Stand-in Providers
Seeded market data for development, demos and tests when no live feed is wired.

Every value is a pure function of (seed, symbol, [timeframe], [indicator], minute),
so two sweeps inside the same minute see identical inputs.
"""

import hashlib
from typing import Dict, List, Optional, Tuple

import numpy as np

from core import Clock, SystemClock

from .providers import IndicatorReading, TokenMetrics


class _Seeded:
    """Shared seeding: sha256 of the key parts plus the current minute bucket"""

    def __init__(self, seed: str, clock: Optional[Clock] = None):
        self.seed = seed
        self._clock = clock or SystemClock()

    def _rng(self, *parts: str) -> np.random.Generator:
        bucket = int(self._clock.now().timestamp() // 60)
        key = ":".join([self.seed, *parts, str(bucket)])
        digest = hashlib.sha256(key.encode("utf-8")).digest()
        return np.random.default_rng(int.from_bytes(digest[:8], "big"))


class DeterministicPriceFeed(_Seeded):
    async def get_last_price(self, symbol_or_address: str, timeframe: str) -> float:
        rng = self._rng(symbol_or_address, timeframe)
        # 0.10 .. 1000.09
        return round(0.1 + int(rng.integers(0, 100000)) / 100, 2)


class DeterministicTokenMetrics(_Seeded):
    async def get_metrics(self, symbol_or_address: str) -> TokenMetrics:
        rng = self._rng(symbol_or_address)
        return TokenMetrics(
            volume=float(rng.integers(0, 1000)),
            trades=float(rng.integers(0, 100)),
            holder_delta_6h=float(rng.integers(-10, 10)),
            holder_delta_30m=float(rng.integers(-5, 5)),
        )


class DeterministicIndicators(_Seeded):
    async def evaluate_indicators(
        self,
        symbol_or_address: str,
        timeframe: str,
        indicator_ids: List[str],
    ) -> Dict[str, IndicatorReading]:
        readings = {}
        for indicator_id in indicator_ids:
            rng = self._rng(symbol_or_address, timeframe, indicator_id)
            readings[indicator_id] = IndicatorReading(
                triggered=bool(rng.random() < 0.5),
                value=str(int(rng.integers(0, 100))),
            )
        return readings


def deterministic_providers(
    seed: str = "test-seed-v1",
    clock: Optional[Clock] = None,
) -> Tuple[DeterministicPriceFeed, DeterministicTokenMetrics, DeterministicIndicators]:
    """(price_feed, token_metrics, indicators) sharing one seed and clock"""
    clock = clock or SystemClock()
    return (
        DeterministicPriceFeed(seed, clock),
        DeterministicTokenMetrics(seed, clock),
        DeterministicIndicators(seed, clock),
    )
