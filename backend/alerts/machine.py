"""
State Machine Contract
What every per-alert machine shares: eligibility, one synchronous step,
persist-then-emit.

A step never awaits. Inputs are fetched by the evaluator first, so an
interrupted sweep can only abandon an alert before it is mutated.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from core import IdGenerator, uuid_ids

from .events import EventStore
from .models import (
    Alert,
    AlertEmitted,
    DormantDetail,
    EventType,
    ThresholdDetail,
    TwoStageDetail,
)
from .repo import AlertStore


@dataclass
class TransitionResult:
    """
    Outcome of one machine step.

    transitioned → the alert moved along its transition graph
    emitted      → `event` was newly appended (False for suppressed duplicates)
    """
    alert: Alert
    event: Optional[AlertEmitted] = None
    transitioned: bool = False
    emitted: bool = False


class StateMachine:
    def __init__(
        self,
        alerts: AlertStore,
        events: EventStore,
        new_id: Optional[IdGenerator] = None,
    ):
        self.alerts = alerts
        self.events = events
        self.new_id = new_id or uuid_ids

    def is_eligible(self, alert: Alert) -> bool:
        raise NotImplementedError

    def _emit(
        self,
        alert: Alert,
        event_type: EventType,
        detail: Union[ThresholdDetail, TwoStageDetail, DormantDetail],
        window: str,
        now: datetime,
    ) -> TransitionResult:
        """Build a fresh event from the saved alert and pass it through the ledger"""
        event = AlertEmitted.from_alert(alert, self.new_id(), event_type, now, detail)
        emitted = self.events.create_deduped(event, window)
        return TransitionResult(alert=alert, event=event, transitioned=True, emitted=emitted)
