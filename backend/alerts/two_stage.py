"""
Two-Stage Confirmation Machine
WATCHING → CONFIRMED when 2 of the template's 3 indicators trigger,
WATCHING → EXPIRED when expires_at passes first.

Progress (count changed, still < 2) is saved and reported at most once
per minute bucket; it is not a stage transition.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict

from services.providers import IndicatorReading

from .machine import StateMachine, TransitionResult
from .models import (
    AlertStage,
    AlertStatus,
    EventType,
    TwoStageAlert,
    TwoStageDetail,
    minute_bucket,
    window_id,
)

logger = logging.getLogger(__name__)

CONFIRM_THRESHOLD = 2


def _detail(alert: TwoStageAlert) -> TwoStageDetail:
    return TwoStageDetail(
        template=alert.template,
        triggered_count=alert.triggered_count,
        indicators=[i.model_copy() for i in alert.indicators],
        expires_at=alert.expires_at,
    )


class TwoStageMachine(StateMachine):
    def is_eligible(self, alert: TwoStageAlert) -> bool:
        return alert.enabled and alert.stage == AlertStage.WATCHING

    def evaluate(
        self,
        alert: TwoStageAlert,
        readings: Dict[str, IndicatorReading],
        now: datetime,
    ) -> TransitionResult:
        if not self.is_eligible(alert):
            return TransitionResult(alert=alert)

        if alert.expires_at is not None and alert.expires_at <= now:
            return self._expire(alert, now)

        previous = alert.triggered_count
        for indicator in alert.indicators:
            reading = readings.get(indicator.id)
            if reading is None:
                continue
            indicator.triggered = reading.triggered
            indicator.last_value = reading.value
        alert.triggered_count = sum(1 for i in alert.indicators if i.triggered)

        if alert.triggered_count >= CONFIRM_THRESHOLD:
            return self._confirm(alert, now)

        if alert.triggered_count != previous:
            return self._progress(alert, now)

        return TransitionResult(alert=alert)

    def _expire(self, alert: TwoStageAlert, now: datetime) -> TransitionResult:
        alert.stage = AlertStage.EXPIRED
        alert.status = AlertStatus.PAUSED
        alert.enabled = False
        self.alerts.save(alert)

        logger.info("Two-stage alert %s expired", alert.id)
        return self._emit(alert, EventType.TWO_STAGE_EXPIRED, _detail(alert), window_id(alert.created_at), now)

    def _confirm(self, alert: TwoStageAlert, now: datetime) -> TransitionResult:
        alert.stage = AlertStage.CONFIRMED
        alert.status = AlertStatus.TRIGGERED
        alert.trigger_count += 1
        alert.last_triggered_at = now
        self.alerts.save(alert)

        logger.info(
            "Two-stage alert %s confirmed (%d/3 indicators)",
            alert.id, alert.triggered_count,
        )
        return self._emit(alert, EventType.TWO_STAGE_CONFIRMED, _detail(alert), window_id(alert.created_at), now)

    def _progress(self, alert: TwoStageAlert, now: datetime) -> TransitionResult:
        if alert.triggered_count > 0:
            alert.last_triggered_at = now
        self.alerts.save(alert)

        result = self._emit(alert, EventType.TWO_STAGE_PROGRESS, _detail(alert), minute_bucket(now), now)
        result.transitioned = False
        return result

    @staticmethod
    def is_in_cooldown(alert: TwoStageAlert, now: datetime) -> bool:
        if alert.stage != AlertStage.CONFIRMED or alert.last_triggered_at is None:
            return False
        return now < alert.last_triggered_at + timedelta(minutes=alert.cooldown_minutes)
