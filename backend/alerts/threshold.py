"""
Threshold Machine
WATCHING → CONFIRMED (one-shot) when the last price meets the target.
"""

import logging
from datetime import datetime

from .machine import StateMachine, TransitionResult
from .models import (
    AlertStage,
    AlertStatus,
    EventType,
    ThresholdAlert,
    ThresholdCondition,
    ThresholdDetail,
    window_id,
)

logger = logging.getLogger(__name__)

CROSS_TOLERANCE = 0.001


def check_condition(condition: ThresholdCondition, last_price: float, target_price: float) -> bool:
    if condition == ThresholdCondition.ABOVE:
        return last_price >= target_price
    elif condition == ThresholdCondition.BELOW:
        return last_price <= target_price
    elif condition == ThresholdCondition.CROSS:
        # Proximity only: a jump straight over the target is missed
        return abs(last_price - target_price) / target_price < CROSS_TOLERANCE
    return False


class ThresholdMachine(StateMachine):
    def is_eligible(self, alert: ThresholdAlert) -> bool:
        return alert.enabled and alert.stage == AlertStage.WATCHING

    def evaluate(self, alert: ThresholdAlert, last_price: float, now: datetime) -> TransitionResult:
        if not self.is_eligible(alert):
            return TransitionResult(alert=alert)

        if not check_condition(alert.condition, last_price, alert.target_price):
            return TransitionResult(alert=alert)

        alert.stage = AlertStage.CONFIRMED
        alert.status = AlertStatus.TRIGGERED
        alert.triggered_at = now
        alert.last_triggered_at = now
        alert.trigger_count += 1
        self.alerts.save(alert)

        logger.info(
            "Threshold alert %s confirmed: %s %s %s (last %s)",
            alert.id, alert.symbol_or_address, alert.condition.value,
            alert.target_price, last_price,
        )

        detail = ThresholdDetail(
            condition=alert.condition,
            target_price=alert.target_price,
            last_price=last_price,
        )
        return self._emit(alert, EventType.SIMPLE_TRIGGERED, detail, window_id(alert.created_at), now)
