"""
Alert System
Per-alert state machines swept by an evaluator, with exactly-once notifications.

Structure:
    alerts/
    ├── models.py     → Alert variants, requests, AlertEmitted
    ├── repo.py       → AlertStore (CRUD + index)
    ├── events.py     → EventStore (event log + dedup ledger)
    ├── machine.py    → StateMachine contract, TransitionResult
    ├── threshold.py  → ThresholdMachine
    ├── two_stage.py  → TwoStageMachine
    ├── dormant.py    → DormantMachine
    └── engine.py     → AlertEvaluator (sweeps, providers, stats)

Usage:
    from alerts import get_alert_store, get_evaluator

    store = get_alert_store()
    alert = store.create({
        "type": "SIMPLE",
        "symbol_or_address": "btc",
        "timeframe": "1h",
        "condition": "ABOVE",
        "target_price": 100000,
    })

    # Called by an external scheduler
    result = await get_evaluator().evaluate_all()
    print(result.events, result.recommended_next_poll_seconds)
"""

from .models import (
    Alert,
    AlertEmitted,
    AlertStage,
    AlertStatus,
    AlertType,
    DormantAlert,
    DormantParams,
    DormantStage,
    EventType,
    SessionEndReason,
    ThresholdAlert,
    ThresholdCondition,
    TwoStageAlert,
    TwoStageTemplate,
    UpdateAlertRequest,
)

from .repo import AlertStore, normalize_symbol_or_address
from .events import EventStore
from .machine import StateMachine, TransitionResult
from .threshold import ThresholdMachine
from .two_stage import TwoStageMachine
from .dormant import DormantMachine, is_token_dead

from .engine import (
    AlertEvaluator,
    EvaluationContext,
    EvaluationResult,
    get_alert_store,
    get_event_store,
    get_evaluator,
    reset_alert_engine,
)

__all__ = [
    # Models
    "Alert",
    "AlertEmitted",
    "AlertStage",
    "AlertStatus",
    "AlertType",
    "DormantAlert",
    "DormantParams",
    "DormantStage",
    "EventType",
    "SessionEndReason",
    "ThresholdAlert",
    "ThresholdCondition",
    "TwoStageAlert",
    "TwoStageTemplate",
    "UpdateAlertRequest",
    # Stores
    "AlertStore",
    "EventStore",
    "normalize_symbol_or_address",
    # Machines
    "StateMachine",
    "TransitionResult",
    "ThresholdMachine",
    "TwoStageMachine",
    "DormantMachine",
    "is_token_dead",
    # Engine
    "AlertEvaluator",
    "EvaluationContext",
    "EvaluationResult",
    "get_alert_store",
    "get_event_store",
    "get_evaluator",
    "reset_alert_engine",
]
