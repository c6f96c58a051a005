"""
Alert Evaluator
Sweeps alerts, fetches fresh provider inputs, and drives each alert's machine.

Per-alert unit:
    eligibility → provider call(s) under timeout → synchronous machine step

A failing alert never aborts the sweep:
    ProviderError / timeout  → skipped this cycle, no state change
    InvariantViolation       → skipped and flagged
    anything else            → logged with traceback, reported as failed
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

import config
from core import (
    Clock,
    IdGenerator,
    InvariantViolation,
    ProviderError,
    ProviderTimeout,
    SystemClock,
    ensure_utc,
    uuid_ids,
)
from db import KVStore, get_store, keys
from services import deterministic_providers
from services.providers import (
    IndicatorProvider,
    IndicatorReading,
    PriceFeed,
    TokenMetrics,
    TokenMetricsProvider,
)

from .dormant import DormantMachine, session_expired
from .events import EventStore
from .machine import StateMachine, TransitionResult
from .models import Alert, AlertEmitted, AlertStage, AlertType, DormantStage
from .repo import AlertStore
from .threshold import ThresholdMachine
from .two_stage import TwoStageMachine

logger = logging.getLogger(__name__)


@dataclass
class EvaluationContext:
    """The instant of the sweep plus the providers to read from"""
    now: datetime
    price_feed: PriceFeed
    token_metrics: TokenMetricsProvider
    indicators: IndicatorProvider


class EvaluationResult(BaseModel):
    evaluated_count: int = 0
    events: List[AlertEmitted] = Field(default_factory=list)
    recommended_next_poll_seconds: int = config.POLL_IDLE_SECONDS
    failed_ids: List[str] = Field(default_factory=list)
    flagged_ids: List[str] = Field(default_factory=list)


# Per-alert outcome tags
_OK = "ok"
_SKIPPED = "skipped"
_FLAGGED = "flagged"
_FAILED = "failed"


def _needs_metrics(alert: Alert, now: datetime) -> bool:
    """Session close, timeout and re-arm steps run without a metrics read"""
    if alert.dormant_stage in (DormantStage.SECOND_SURGE, DormantStage.SESSION_ENDED):
        return False
    return not session_expired(alert, now)


class AlertEvaluator:
    def __init__(
        self,
        store: KVStore,
        alerts: AlertStore,
        events: EventStore,
        price_feed: PriceFeed,
        token_metrics: TokenMetricsProvider,
        indicators: IndicatorProvider,
        clock: Optional[Clock] = None,
        new_id: Optional[IdGenerator] = None,
        max_workers: int = config.EVALUATOR_MAX_WORKERS,
        provider_timeout: float = config.PROVIDER_TIMEOUT_SECONDS,
    ):
        self._store = store
        self.alerts = alerts
        self.events = events
        self.price_feed = price_feed
        self.token_metrics = token_metrics
        self.indicators = indicators
        self._clock = clock or SystemClock()
        self.max_workers = max(1, max_workers)
        self.provider_timeout = provider_timeout

        new_id = new_id or uuid_ids
        self._machines: Dict[AlertType, StateMachine] = {
            AlertType.SIMPLE: ThresholdMachine(alerts, events, new_id),
            AlertType.TWO_STAGE: TwoStageMachine(alerts, events, new_id),
            AlertType.DORMANT_AWAKENING: DormantMachine(alerts, events, new_id),
        }

        self._stats = {
            "sweeps": 0,
            "evaluated": 0,
            "transitions": 0,
            "events_emitted": 0,
            "duplicates_suppressed": 0,
            "provider_errors": 0,
            "failures": 0,
            "flagged": 0,
            "last_sweep_at": None,
            "last_sweep_ms": None,
            "start_time": time.time(),
        }

    def context(self, now: Optional[datetime] = None) -> EvaluationContext:
        return EvaluationContext(
            now=ensure_utc(now) if now else self._clock.now(),
            price_feed=self.price_feed,
            token_metrics=self.token_metrics,
            indicators=self.indicators,
        )

    def machine_for(self, alert: Alert) -> StateMachine:
        return self._machines[AlertType(alert.type)]

    # =========================================================================
    # Entry Points
    # =========================================================================

    async def evaluate_all(self, ctx: Optional[EvaluationContext] = None) -> EvaluationResult:
        """Sweep every active alert (and dormant alerts waiting to re-arm)"""
        ctx = ctx or self.context()
        alerts, malformed = self.alerts.load_active()
        return await self._sweep(alerts, malformed, ctx)

    async def evaluate_by_ids(
        self,
        alert_ids: List[str],
        ctx: Optional[EvaluationContext] = None,
    ) -> EvaluationResult:
        """Targeted re-check; missing or disabled ids are skipped"""
        ctx = ctx or self.context()
        alerts: List[Alert] = []
        malformed: List[str] = []
        seen = set()

        for alert_id in alert_ids:
            if alert_id in seen:
                continue
            seen.add(alert_id)
            try:
                alert = self.alerts.get_by_id(alert_id)
            except InvariantViolation as e:
                logger.warning("Skipping %s", e)
                malformed.append(alert_id)
                continue
            if alert is None or not alert.enabled:
                continue
            alerts.append(alert)

        return await self._sweep(alerts, malformed, ctx)

    # =========================================================================
    # Sweep
    # =========================================================================

    async def _sweep(self, alerts: List[Alert], malformed: List[str], ctx: EvaluationContext) -> EvaluationResult:
        started = time.perf_counter()
        sweep_no = self._store.increment_counter(keys.sweep_counter())
        logger.info("Sweep #%d: evaluating %d alert(s) at %s", sweep_no, len(alerts), ctx.now.isoformat())

        semaphore = asyncio.Semaphore(self.max_workers)
        outcomes = await asyncio.gather(
            *(self._evaluate_isolated(alert, ctx, semaphore) for alert in alerts)
        )

        result = EvaluationResult(evaluated_count=len(alerts), flagged_ids=list(malformed))
        for alert, (outcome, transition) in zip(alerts, outcomes):
            if outcome == _FLAGGED:
                result.flagged_ids.append(alert.id)
            elif outcome == _FAILED:
                result.failed_ids.append(alert.id)
            elif outcome == _SKIPPED:
                self._stats["provider_errors"] += 1
            elif transition is not None:
                if transition.transitioned:
                    self._stats["transitions"] += 1
                if transition.emitted:
                    result.events.append(transition.event)
                elif transition.event is not None:
                    self._stats["duplicates_suppressed"] += 1

        watching = any(a.enabled and a.stage == AlertStage.WATCHING for a in alerts)
        result.recommended_next_poll_seconds = (
            config.POLL_ACTIVE_SECONDS if watching else config.POLL_IDLE_SECONDS
        )

        elapsed_ms = (time.perf_counter() - started) * 1000
        self._stats["sweeps"] += 1
        self._stats["evaluated"] += result.evaluated_count
        self._stats["events_emitted"] += len(result.events)
        self._stats["failures"] += len(result.failed_ids)
        self._stats["flagged"] += len(result.flagged_ids)
        self._stats["last_sweep_at"] = ctx.now.isoformat()
        self._stats["last_sweep_ms"] = round(elapsed_ms, 2)

        logger.info(
            "Sweep #%d done in %.1fms: %d event(s), %d failed, %d flagged, next poll %ds",
            sweep_no, elapsed_ms, len(result.events), len(result.failed_ids),
            len(result.flagged_ids), result.recommended_next_poll_seconds,
        )
        return result

    async def _evaluate_isolated(
        self,
        alert: Alert,
        ctx: EvaluationContext,
        semaphore: asyncio.Semaphore,
    ) -> Tuple[str, Optional[TransitionResult]]:
        try:
            return _OK, await self._evaluate_one(alert, ctx, semaphore)
        except ProviderError as e:
            logger.warning("Skipping alert %s this cycle: %s", alert.id, e)
            return _SKIPPED, None
        except InvariantViolation as e:
            logger.warning("Flagged %s", e)
            return _FLAGGED, None
        except Exception:
            logger.exception("Failed to evaluate alert %s", alert.id)
            return _FAILED, None

    async def _evaluate_one(
        self,
        alert: Alert,
        ctx: EvaluationContext,
        semaphore: asyncio.Semaphore,
    ) -> TransitionResult:
        machine = self.machine_for(alert)
        if not machine.is_eligible(alert):
            return TransitionResult(alert=alert)

        async with semaphore:
            if alert.type == AlertType.SIMPLE:
                inputs = await self._fetch_price(alert, ctx)
            elif alert.type == AlertType.TWO_STAGE:
                inputs = await self._fetch_readings(alert, ctx)
            elif _needs_metrics(alert, ctx.now):
                inputs = await self._fetch_metrics(alert, ctx)
            else:
                inputs = None

        # No awaits past this point: the step mutates, saves and emits in one go
        return machine.evaluate(alert, inputs, ctx.now)

    # =========================================================================
    # Provider Calls
    # =========================================================================

    async def _call(self, provider: str, call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.provider_timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(provider, self.provider_timeout) from e
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(provider, f"{type(e).__name__}: {e}") from e

    async def _fetch_price(self, alert: Alert, ctx: EvaluationContext) -> float:
        raw = await self._call(
            "price_feed",
            ctx.price_feed.get_last_price(alert.symbol_or_address, alert.timeframe),
        )
        try:
            price = float(raw)
        except (TypeError, ValueError) as e:
            raise ProviderError("price_feed", f"malformed price {raw!r}") from e
        if not math.isfinite(price) or price <= 0:
            raise ProviderError("price_feed", f"malformed price {raw!r}")
        return price

    async def _fetch_readings(self, alert: Alert, ctx: EvaluationContext) -> Dict[str, IndicatorReading]:
        raw = await self._call(
            "indicators",
            ctx.indicators.evaluate_indicators(
                alert.symbol_or_address,
                alert.timeframe,
                [i.id for i in alert.indicators],
            ),
        )
        try:
            return {
                str(k): v if isinstance(v, IndicatorReading) else IndicatorReading.model_validate(v)
                for k, v in dict(raw).items()
            }
        except (TypeError, ValueError, ValidationError) as e:
            raise ProviderError("indicators", f"malformed readings: {e}") from e

    async def _fetch_metrics(self, alert: Alert, ctx: EvaluationContext) -> TokenMetrics:
        raw = await self._call(
            "token_metrics",
            ctx.token_metrics.get_metrics(alert.symbol_or_address),
        )
        if isinstance(raw, TokenMetrics):
            return raw
        try:
            return TokenMetrics.model_validate(raw)
        except ValidationError as e:
            raise ProviderError("token_metrics", f"malformed metrics: {e.error_count()} error(s)") from e

    # =========================================================================
    # Stats
    # =========================================================================

    def stats(self) -> Dict[str, Any]:
        uptime = time.time() - self._stats["start_time"]
        stats = {k: v for k, v in self._stats.items() if k != "start_time"}
        return {
            **stats,
            "uptime_seconds": round(uptime, 2),
            "alerts_indexed": len(self.alerts.ids()),
            "max_workers": self.max_workers,
            "provider_timeout_seconds": self.provider_timeout,
        }


# =============================================================================
# Singletons
# =============================================================================

_alert_store: Optional[AlertStore] = None
_event_store: Optional[EventStore] = None
_evaluator: Optional[AlertEvaluator] = None


def get_alert_store() -> AlertStore:
    global _alert_store
    if _alert_store is None:
        _alert_store = AlertStore(get_store())
    return _alert_store


def get_event_store() -> EventStore:
    global _event_store
    if _event_store is None:
        _event_store = EventStore(get_store())
    return _event_store


def get_evaluator() -> AlertEvaluator:
    """Evaluator wired to the deterministic stand-in providers"""
    global _evaluator
    if _evaluator is None:
        clock = SystemClock()
        price_feed, token_metrics, indicators = deterministic_providers(config.PROVIDER_SEED, clock)
        _evaluator = AlertEvaluator(
            get_store(),
            get_alert_store(),
            get_event_store(),
            price_feed,
            token_metrics,
            indicators,
            clock=clock,
        )
    return _evaluator


def reset_alert_engine() -> None:
    """Drop cached singletons (tests, backend switch)"""
    global _alert_store, _event_store, _evaluator
    _alert_store = None
    _event_store = None
    _evaluator = None
