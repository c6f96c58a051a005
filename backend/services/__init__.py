"""
Market Data Services
Provider interfaces consumed by the alert evaluator, plus seeded stand-ins.

Structure:
    services/
    ├── providers.py  → PriceFeed, TokenMetricsProvider, IndicatorProvider
    └── standins.py   → Deterministic* implementations

Usage:
    from services import deterministic_providers

    price_feed, token_metrics, indicators = deterministic_providers("test-seed-v1")
    price = await price_feed.get_last_price("BTC", "1h")
"""

from .providers import (
    IndicatorProvider,
    IndicatorReading,
    PriceFeed,
    TokenMetrics,
    TokenMetricsProvider,
)

from .standins import (
    DeterministicIndicators,
    DeterministicPriceFeed,
    DeterministicTokenMetrics,
    deterministic_providers,
)

__all__ = [
    # Interfaces
    "PriceFeed",
    "TokenMetricsProvider",
    "IndicatorProvider",
    "TokenMetrics",
    "IndicatorReading",
    # Stand-ins
    "DeterministicPriceFeed",
    "DeterministicTokenMetrics",
    "DeterministicIndicators",
    "deterministic_providers",
]
