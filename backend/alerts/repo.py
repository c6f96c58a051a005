"""
Alert Store
KV-backed storage for alert definitions and state.

Layout:
    alerts:def:{id}   → full alert document
    alerts:index      → list of alert ids (creation order, no duplicates)
"""

import logging
import re
import uuid
from datetime import timedelta
from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError

from core import Clock, InvalidRequest, InvariantViolation, SystemClock
from db import KVStore, keys

from .models import (
    ALERT_ADAPTER,
    CREATE_REQUEST_ADAPTER,
    TERMINAL_STAGES,
    Alert,
    AlertStage,
    AlertStatus,
    AlertType,
    CreateDormantRequest,
    CreateThresholdRequest,
    CreateTwoStageRequest,
    DormantAlert,
    DormantStage,
    ThresholdAlert,
    TwoStageAlert,
    UpdateAlertRequest,
    indicators_for,
)

logger = logging.getLogger(__name__)

TICKER_RE = re.compile(r"^[A-Z0-9._-]{1,15}$")
STATUS_FILTERS = ("all", "active", "paused", "triggered")


def normalize_symbol_or_address(value: str) -> str:
    """Tickers are upper-cased; anything else (addresses) passes through"""
    upper = value.upper()
    if TICKER_RE.match(upper):
        return upper
    return value


def _validation_details(error: ValidationError) -> dict:
    details: dict = {}
    for issue in error.errors():
        path = ".".join(str(p) for p in issue["loc"]) or "_root"
        details.setdefault(path, []).append(issue["msg"])
    return details


class AlertStore:
    def __init__(self, store: KVStore, clock: Optional[Clock] = None):
        self._store = store
        self._clock = clock or SystemClock()

    # =========================================================================
    # Index
    # =========================================================================

    def _index(self) -> List[str]:
        return self._store.get(keys.alert_index()) or []

    def _add_to_index(self, alert_id: str) -> None:
        index = self._index()
        if alert_id not in index:
            index.append(alert_id)
            self._store.set(keys.alert_index(), index)

    def _remove_from_index(self, alert_id: str) -> None:
        index = self._index()
        filtered = [i for i in index if i != alert_id]
        if len(filtered) != len(index):
            self._store.set(keys.alert_index(), filtered)

    # =========================================================================
    # CRUD
    # =========================================================================

    def _new_id(self) -> str:
        ms = int(self._clock.now().timestamp() * 1000)
        return f"alert_{ms}_{uuid.uuid4().hex[:8]}"

    def create(self, request: Union[BaseModel, Mapping[str, Any]]) -> Alert:
        """Build and persist a new alert from a typed create request"""
        if not isinstance(request, BaseModel):
            try:
                request = CREATE_REQUEST_ADAPTER.validate_python(request)
            except ValidationError as e:
                raise InvalidRequest("Validation failed", _validation_details(e)) from e

        now = self._clock.now()
        common = dict(
            id=self._new_id(),
            symbol_or_address=normalize_symbol_or_address(request.symbol_or_address),
            timeframe=request.timeframe,
            enabled=True,
            status=AlertStatus.ACTIVE,
            stage=AlertStage.WATCHING,
            created_at=now,
            note=request.note,
            trigger_count=0,
        )

        if isinstance(request, CreateThresholdRequest):
            alert = ThresholdAlert(
                **common,
                condition=request.condition,
                target_price=request.target_price,
            )
        elif isinstance(request, CreateTwoStageRequest):
            alert = TwoStageAlert(
                **common,
                template=request.template,
                indicators=indicators_for(request.template),
                triggered_count=0,
                expiry_minutes=request.expiry_minutes,
                cooldown_minutes=request.cooldown_minutes,
                expires_at=now + timedelta(minutes=request.expiry_minutes),
                window_minutes=request.window_minutes,
                window_candles=request.window_candles,
            )
        elif isinstance(request, CreateDormantRequest):
            alert = DormantAlert(**common, params=request.params)
        else:
            raise InvalidRequest(f"Unsupported create request: {type(request).__name__}")

        self.save(alert)
        self._add_to_index(alert.id)
        logger.info("Created %s alert %s for %s", alert.type, alert.id, alert.symbol_or_address)
        return alert

    def _load(self, alert_id: str, raw: Any) -> Alert:
        try:
            return ALERT_ADAPTER.validate_python(raw)
        except ValidationError as e:
            raise InvariantViolation(alert_id, f"malformed record: {e.error_count()} error(s)") from e

    def get_by_id(self, alert_id: str) -> Optional[Alert]:
        """Raises InvariantViolation if the stored record is malformed"""
        raw = self._store.get(keys.alert_def(alert_id))
        if raw is None:
            return None
        return self._load(alert_id, raw)

    def _scan(self) -> Tuple[List[Alert], List[str]]:
        alerts: List[Alert] = []
        malformed: List[str] = []
        for alert_id in self._index():
            raw = self._store.get(keys.alert_def(alert_id))
            if raw is None:
                continue
            try:
                alerts.append(self._load(alert_id, raw))
            except InvariantViolation as e:
                logger.warning("Skipping %s", e)
                malformed.append(alert_id)
        return alerts, malformed

    def list(self, filter: str = "all", symbol_filter: Optional[str] = None) -> List[Alert]:
        """Alerts matching status filter and symbol, newest first"""
        if filter not in STATUS_FILTERS:
            raise InvalidRequest(f"Invalid filter: {filter}. Use: {', '.join(STATUS_FILTERS)}")

        normalized = normalize_symbol_or_address(symbol_filter) if symbol_filter else None
        alerts, _ = self._scan()

        result = [
            a for a in alerts
            if (filter == "all" or a.status.value == filter)
            and (normalized is None or a.symbol_or_address == normalized)
        ]
        result.sort(key=lambda a: a.created_at, reverse=True)
        return result

    def load_active(self) -> Tuple[List[Alert], List[str]]:
        """
        Alerts due for a sweep, plus ids of malformed records.

        Includes enabled dormant alerts in SECOND_SURGE or SESSION_ENDED.
        They are status=triggered but still need sweeps: SECOND_SURGE to
        close the session, SESSION_ENDED to re-arm after cooldown.
        """
        alerts, malformed = self._scan()
        due = [a for a in alerts if a.status == AlertStatus.ACTIVE or _dormant_due(a)]
        return due, malformed

    def update(self, alert_id: str, updates: Union[UpdateAlertRequest, Mapping[str, Any]]) -> Optional[Alert]:
        if not isinstance(updates, UpdateAlertRequest):
            try:
                updates = UpdateAlertRequest.model_validate(updates)
            except ValidationError as e:
                raise InvalidRequest("Validation failed", _validation_details(e)) from e

        alert = self.get_by_id(alert_id)
        if alert is None:
            return None

        if updates.note is not None:
            alert.note = updates.note

        if updates.enabled is not None:
            alert.enabled = updates.enabled
            if not updates.enabled:
                alert.status = AlertStatus.PAUSED
            elif alert.stage not in TERMINAL_STAGES:
                alert.status = AlertStatus.ACTIVE

        if isinstance(alert, ThresholdAlert):
            if updates.condition is not None:
                alert.condition = updates.condition
            if updates.target_price is not None:
                alert.target_price = updates.target_price

        self.save(alert)
        return alert

    def cancel_watch(self, alert_id: str) -> Optional[Alert]:
        alert = self.get_by_id(alert_id)
        if alert is None:
            return None

        alert.stage = AlertStage.CANCELLED
        alert.enabled = False
        alert.status = AlertStatus.PAUSED

        self.save(alert)
        logger.info("Cancelled watch on alert %s", alert_id)
        return alert

    def delete(self, alert_id: str) -> bool:
        if not self._store.exists(keys.alert_def(alert_id)):
            return False

        self._store.delete(keys.alert_def(alert_id))
        self._remove_from_index(alert_id)
        logger.info("Deleted alert %s", alert_id)
        return True

    # =========================================================================
    # State Updates (state machines)
    # =========================================================================

    def save(self, alert: Alert) -> None:
        """Idempotent full overwrite"""
        self._store.set(keys.alert_def(alert.id), alert.to_dict())

    def ids(self) -> List[str]:
        return list(self._index())


def _dormant_due(alert: Alert) -> bool:
    return (
        alert.type == AlertType.DORMANT_AWAKENING
        and alert.enabled
        and alert.dormant_stage in (DormantStage.SECOND_SURGE, DormantStage.SESSION_ENDED)
    )
