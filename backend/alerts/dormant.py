"""
Dormant-Asset Awakening Machine

Stages:
    INITIAL → AWAKENING → SUSTAINED → SECOND_SURGE → SESSION_ENDED
    SESSION_ENDED → INITIAL once the cooldown has passed

Rules:
- A session starts only on a "dead" token that passes the awakening test
- A live session ends within SESSION_MAX_HOURS of session_start, whatever the stage
- Stage events are one-shot per session (window = session_start)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from services.providers import TokenMetrics

from .machine import StateMachine, TransitionResult
from .models import (
    AlertStage,
    AlertStatus,
    DormantAlert,
    DormantDetail,
    DormantParams,
    DormantStage,
    EventType,
    SessionEndReason,
    window_id,
)

logger = logging.getLogger(__name__)

SESSION_MAX_HOURS = 12

LIVE_SESSION_STAGES = (DormantStage.AWAKENING, DormantStage.SUSTAINED, DormantStage.SECOND_SURGE)


# =============================================================================
# Metric Tests
# =============================================================================

def is_token_dead(metrics: TokenMetrics, params: DormantParams) -> bool:
    return (
        metrics.volume <= params.dead_vol
        and metrics.trades <= params.dead_trades
        and metrics.holder_delta_6h <= params.dead_holder_delta_6h
    )


def _two_of_three(*checks: bool) -> bool:
    return sum(1 for c in checks if c) >= 2


def check_awakening(metrics: TokenMetrics, params: DormantParams) -> bool:
    """2-of-3 against the dead baseline scaled by the awake multipliers"""
    return _two_of_three(
        metrics.volume >= params.dead_vol * params.awake_vol_mult,
        metrics.trades >= params.dead_trades * params.awake_trades_mult,
        metrics.holder_delta_30m >= params.awake_holder_delta_30m,
    )


def check_second_surge(metrics: TokenMetrics, params: DormantParams) -> bool:
    return _two_of_three(
        metrics.volume >= params.dead_vol * params.stage3_vol_mult,
        metrics.trades >= params.dead_trades * params.stage3_trades_mult,
        metrics.holder_delta_30m >= params.stage3_holder_delta,
    )


def session_expired(alert: DormantAlert, now: datetime) -> bool:
    if alert.dormant_stage not in LIVE_SESSION_STAGES:
        return False
    if alert.session_ends_at is not None and now >= alert.session_ends_at:
        return True
    if alert.session_start is not None:
        return now >= alert.session_start + timedelta(hours=SESSION_MAX_HOURS)
    return False


def _window_passed(alert: DormantAlert, now: datetime) -> bool:
    return alert.window_ends_at is not None and alert.window_ends_at <= now


# =============================================================================
# Machine
# =============================================================================

class DormantMachine(StateMachine):
    def is_eligible(self, alert: DormantAlert) -> bool:
        return alert.enabled

    def evaluate(self, alert: DormantAlert, metrics: Optional[TokenMetrics], now: datetime) -> TransitionResult:
        """metrics may be None for SECOND_SURGE, SESSION_ENDED and timed-out sessions"""
        if not self.is_eligible(alert):
            return TransitionResult(alert=alert)

        if session_expired(alert, now):
            return self._end_session(alert, now, SessionEndReason.TIMEOUT)

        stage = alert.dormant_stage
        if stage == DormantStage.INITIAL:
            return self._evaluate_initial(alert, metrics, now)
        elif stage == DormantStage.AWAKENING:
            return self._evaluate_awakening(alert, metrics, now)
        elif stage == DormantStage.SUSTAINED:
            return self._evaluate_sustained(alert, metrics, now)
        elif stage == DormantStage.SECOND_SURGE:
            return self._end_session(alert, now, SessionEndReason.COMPLETED)
        elif stage == DormantStage.SESSION_ENDED:
            return self._evaluate_ended(alert, now)
        return TransitionResult(alert=alert)

    def _evaluate_initial(self, alert: DormantAlert, metrics: TokenMetrics, now: datetime) -> TransitionResult:
        params = alert.params
        if not is_token_dead(metrics, params) or not check_awakening(metrics, params):
            return TransitionResult(alert=alert)

        alert.dormant_stage = DormantStage.AWAKENING
        alert.session_start = now
        alert.session_ends_at = now + timedelta(hours=SESSION_MAX_HOURS)
        alert.window_ends_at = now + timedelta(minutes=params.stage2_window_min)
        self.alerts.save(alert)

        logger.info("Dormant alert %s awakening, session until %s", alert.id, alert.session_ends_at)
        return self._stage_event(alert, now)

    def _evaluate_awakening(self, alert: DormantAlert, metrics: TokenMetrics, now: datetime) -> TransitionResult:
        if _window_passed(alert, now):
            return self._end_session(alert, now, SessionEndReason.WINDOW_EXPIRED)

        if not check_awakening(metrics, alert.params):
            return TransitionResult(alert=alert)

        alert.dormant_stage = DormantStage.SUSTAINED
        alert.window_ends_at = now + timedelta(hours=alert.params.stage3_window_h)
        self.alerts.save(alert)

        logger.info("Dormant alert %s sustained", alert.id)
        return self._stage_event(alert, now)

    def _evaluate_sustained(self, alert: DormantAlert, metrics: TokenMetrics, now: datetime) -> TransitionResult:
        if _window_passed(alert, now):
            return self._end_session(alert, now, SessionEndReason.WINDOW_EXPIRED)

        if not check_second_surge(metrics, alert.params):
            return TransitionResult(alert=alert)

        alert.dormant_stage = DormantStage.SECOND_SURGE
        alert.stage = AlertStage.CONFIRMED
        alert.status = AlertStatus.TRIGGERED
        alert.trigger_count += 1
        alert.last_triggered_at = now
        alert.window_ends_at = None
        self.alerts.save(alert)

        logger.info("Dormant alert %s second surge", alert.id)
        return self._stage_event(alert, now)

    def _evaluate_ended(self, alert: DormantAlert, now: datetime) -> TransitionResult:
        if alert.cooldown_ends_at is not None and alert.cooldown_ends_at > now:
            return TransitionResult(alert=alert)

        alert.dormant_stage = DormantStage.INITIAL
        alert.stage = AlertStage.WATCHING
        alert.status = AlertStatus.ACTIVE
        alert.enabled = True
        alert.session_start = None
        alert.session_ends_at = None
        alert.window_ends_at = None
        alert.cooldown_ends_at = None
        self.alerts.save(alert)

        logger.info("Dormant alert %s re-armed after cooldown", alert.id)
        return TransitionResult(alert=alert, transitioned=True)

    def _end_session(self, alert: DormantAlert, now: datetime, reason: SessionEndReason) -> TransitionResult:
        completed = reason == SessionEndReason.COMPLETED

        alert.dormant_stage = DormantStage.SESSION_ENDED
        alert.stage = AlertStage.CONFIRMED if completed else AlertStage.EXPIRED
        alert.status = AlertStatus.TRIGGERED if completed else AlertStatus.PAUSED
        alert.enabled = completed
        alert.cooldown_ends_at = now + timedelta(minutes=alert.params.cooldown_min)
        alert.window_ends_at = None
        self.alerts.save(alert)

        logger.info("Dormant alert %s session ended (%s)", alert.id, reason.value)
        detail = DormantDetail(
            dormant_stage=DormantStage.SESSION_ENDED,
            session_start=alert.session_start,
            session_ends_at=alert.session_ends_at,
            reason=reason,
        )
        return self._emit(alert, EventType.DORMANT_SESSION_ENDED, detail, self._session_window(alert, now), now)

    def _stage_event(self, alert: DormantAlert, now: datetime) -> TransitionResult:
        detail = DormantDetail(
            dormant_stage=alert.dormant_stage,
            session_start=alert.session_start,
            session_ends_at=alert.session_ends_at,
            window_ends_at=alert.window_ends_at,
        )
        return self._emit(alert, EventType.DORMANT_STAGE, detail, self._session_window(alert, now), now)

    @staticmethod
    def _session_window(alert: DormantAlert, now: datetime) -> str:
        return window_id(alert.session_start or now)
