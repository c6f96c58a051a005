"""
Alert Models
Data structures for alert definitions, state, requests, and emitted events.

Alerts are a tagged union discriminated by `type`:
    SIMPLE             → ThresholdAlert
    TWO_STAGE          → TwoStageAlert
    DORMANT_AWAKENING  → DormantAlert
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from core import ensure_utc


class AlertType(str, Enum):
    """Alert kinds"""
    SIMPLE = "SIMPLE"
    TWO_STAGE = "TWO_STAGE"
    DORMANT_AWAKENING = "DORMANT_AWAKENING"


class AlertStage(str, Enum):
    """Outer lifecycle position"""
    INITIAL = "INITIAL"
    WATCHING = "WATCHING"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


TERMINAL_STAGES = (AlertStage.CONFIRMED, AlertStage.EXPIRED, AlertStage.CANCELLED)


class AlertStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    TRIGGERED = "triggered"


class ThresholdCondition(str, Enum):
    ABOVE = "ABOVE"
    BELOW = "BELOW"
    CROSS = "CROSS"  # within 0.1% of target, not a true sign change


class TwoStageTemplate(str, Enum):
    TREND_MOMENTUM_STRUCTURE = "TREND_MOMENTUM_STRUCTURE"
    MACD_RSI_VOLUME = "MACD_RSI_VOLUME"
    BREAKOUT_RETEST_VOLUME = "BREAKOUT_RETEST_VOLUME"


class DormantStage(str, Enum):
    """Inner session lifecycle of a dormant-asset alert"""
    INITIAL = "INITIAL"
    AWAKENING = "AWAKENING"
    SUSTAINED = "SUSTAINED"
    SECOND_SURGE = "SECOND_SURGE"
    SESSION_ENDED = "SESSION_ENDED"


class SessionEndReason(str, Enum):
    TIMEOUT = "timeout"
    WINDOW_EXPIRED = "window_expired"
    COMPLETED = "completed"


class EventType(str, Enum):
    SIMPLE_TRIGGERED = "SIMPLE_TRIGGERED"
    TWO_STAGE_PROGRESS = "TWO_STAGE_PROGRESS"
    TWO_STAGE_CONFIRMED = "TWO_STAGE_CONFIRMED"
    TWO_STAGE_EXPIRED = "TWO_STAGE_EXPIRED"
    DORMANT_STAGE = "DORMANT_STAGE"
    DORMANT_SESSION_ENDED = "DORMANT_SESSION_ENDED"


IndicatorCategory = Literal["Trend", "Momentum", "Structure", "Volume"]


# =============================================================================
# Shared Field Types
# =============================================================================

class IndicatorState(BaseModel):
    """One of the three indicators watched by a two-stage alert"""
    id: str
    label: str
    category: IndicatorCategory
    params: str
    triggered: bool = False
    last_value: Optional[str] = None


class DormantParams(BaseModel):
    """
    Thresholds for the dormant-asset awakening machine.

    dead_*           → ceiling that defines a "dead" token
    awake_*          → awakening test (multipliers apply to dead_vol / dead_trades)
    stage3_*         → stricter second-surge test
    *_window_*       → stage window lengths
    cooldown_min     → pause after a session ends
    """
    dead_vol: float = Field(default=100, ge=0)
    dead_trades: float = Field(default=5, ge=0)
    dead_holder_delta_6h: float = 0
    awake_vol_mult: float = Field(default=3, gt=0)
    awake_trades_mult: float = Field(default=2, gt=0)
    awake_holder_delta_30m: float = 5
    stage2_window_min: float = Field(default=30, gt=0)
    cooldown_min: float = Field(default=15, gt=0)
    stage3_window_h: float = Field(default=6, gt=0)
    stage3_vol_mult: float = Field(default=2, gt=0)
    stage3_trades_mult: float = Field(default=1.5, gt=0)
    stage3_holder_delta: float = 10


DEFAULT_DORMANT_PARAMS = DormantParams()


TEMPLATE_INDICATORS: Dict[TwoStageTemplate, List[Dict[str, str]]] = {
    TwoStageTemplate.TREND_MOMENTUM_STRUCTURE: [
        {"id": "ema_cross", "label": "EMA 9/21 Cross", "category": "Trend", "params": "EMA(9) > EMA(21)"},
        {"id": "rsi_momentum", "label": "RSI Momentum", "category": "Momentum", "params": "RSI(14) > 50"},
        {"id": "structure_hh", "label": "Higher High", "category": "Structure", "params": "New swing high"},
    ],
    TwoStageTemplate.MACD_RSI_VOLUME: [
        {"id": "macd_signal", "label": "MACD Signal", "category": "Trend", "params": "MACD > Signal"},
        {"id": "rsi_threshold", "label": "RSI Above 55", "category": "Momentum", "params": "RSI(14) > 55"},
        {"id": "volume_spike", "label": "Volume Spike", "category": "Volume", "params": "Vol > 1.5x avg"},
    ],
    TwoStageTemplate.BREAKOUT_RETEST_VOLUME: [
        {"id": "breakout", "label": "Resistance Break", "category": "Structure", "params": "Close > R1"},
        {"id": "retest", "label": "Successful Retest", "category": "Structure", "params": "Retest support"},
        {"id": "breakout_vol", "label": "Breakout Volume", "category": "Volume", "params": "Vol > 2x avg"},
    ],
}


def indicators_for(template: TwoStageTemplate) -> List[IndicatorState]:
    return [IndicatorState(**spec) for spec in TEMPLATE_INDICATORS[template]]


# =============================================================================
# Alerts
# =============================================================================

class AlertBase(BaseModel):
    """Fields shared by every alert kind"""
    id: str
    symbol_or_address: str
    timeframe: str
    enabled: bool = True
    status: AlertStatus = AlertStatus.ACTIVE
    stage: AlertStage = AlertStage.WATCHING
    created_at: datetime
    note: Optional[str] = None
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = Field(default=0, ge=0)

    @field_validator("*", mode="after")
    @classmethod
    def utc_datetimes(cls, v):
        """Every instant is stored as aware UTC"""
        return ensure_utc(v) if isinstance(v, datetime) else v

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class ThresholdAlert(AlertBase):
    type: Literal["SIMPLE"] = "SIMPLE"
    condition: ThresholdCondition
    target_price: float = Field(..., gt=0)
    triggered_at: Optional[datetime] = None


class TwoStageAlert(AlertBase):
    type: Literal["TWO_STAGE"] = "TWO_STAGE"
    template: TwoStageTemplate
    indicators: List[IndicatorState] = Field(..., min_length=3, max_length=3)
    triggered_count: int = Field(default=0, ge=0, le=3)
    expiry_minutes: int = Field(..., gt=0)
    cooldown_minutes: int = Field(..., gt=0)
    expires_at: Optional[datetime] = None
    window_minutes: Optional[int] = None
    window_candles: Optional[int] = None


class DormantAlert(AlertBase):
    type: Literal["DORMANT_AWAKENING"] = "DORMANT_AWAKENING"
    params: DormantParams = Field(default_factory=DormantParams)
    dormant_stage: DormantStage = DormantStage.INITIAL
    session_start: Optional[datetime] = None
    session_ends_at: Optional[datetime] = None
    window_ends_at: Optional[datetime] = None
    cooldown_ends_at: Optional[datetime] = None


Alert = Annotated[
    Union[ThresholdAlert, TwoStageAlert, DormantAlert],
    Field(discriminator="type"),
]

ALERT_ADAPTER: TypeAdapter = TypeAdapter(Alert)


# =============================================================================
# Requests
# =============================================================================

class CreateThresholdRequest(BaseModel):
    type: Literal["SIMPLE"]
    symbol_or_address: str = Field(..., min_length=1)
    timeframe: str = Field(..., min_length=1)
    condition: ThresholdCondition
    target_price: float = Field(..., gt=0)
    note: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "SIMPLE",
                "symbol_or_address": "btc",
                "timeframe": "1h",
                "condition": "ABOVE",
                "target_price": 100000,
            }
        }
    }


class CreateTwoStageRequest(BaseModel):
    type: Literal["TWO_STAGE"]
    symbol_or_address: str = Field(..., min_length=1)
    timeframe: str = Field(..., min_length=1)
    template: TwoStageTemplate
    window_candles: Optional[int] = Field(default=None, gt=0)
    window_minutes: Optional[int] = Field(default=None, gt=0)
    expiry_minutes: int = Field(..., gt=0)
    cooldown_minutes: int = Field(..., gt=0)
    note: Optional[str] = None


class CreateDormantRequest(BaseModel):
    type: Literal["DORMANT_AWAKENING"]
    symbol_or_address: str = Field(..., min_length=1)
    timeframe: str = Field(..., min_length=1)
    params: DormantParams = Field(default_factory=DormantParams)
    note: Optional[str] = None


CreateAlertRequest = Annotated[
    Union[CreateThresholdRequest, CreateTwoStageRequest, CreateDormantRequest],
    Field(discriminator="type"),
]

CREATE_REQUEST_ADAPTER: TypeAdapter = TypeAdapter(CreateAlertRequest)


class UpdateAlertRequest(BaseModel):
    """Partial update; threshold-only fields are ignored for other kinds"""
    enabled: Optional[bool] = None
    note: Optional[str] = None
    condition: Optional[ThresholdCondition] = None
    target_price: Optional[float] = Field(default=None, gt=0)


# =============================================================================
# Emitted Events
# =============================================================================

class ThresholdDetail(BaseModel):
    kind: Literal["threshold"] = "threshold"
    condition: ThresholdCondition
    target_price: float
    last_price: float


class TwoStageDetail(BaseModel):
    kind: Literal["two_stage"] = "two_stage"
    template: TwoStageTemplate
    triggered_count: int
    indicators: List[IndicatorState]
    window_ends_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class DormantDetail(BaseModel):
    kind: Literal["dormant"] = "dormant"
    dormant_stage: DormantStage
    session_start: Optional[datetime] = None
    session_ends_at: Optional[datetime] = None
    window_ends_at: Optional[datetime] = None
    reason: Optional[SessionEndReason] = None


EventDetail = Annotated[
    Union[ThresholdDetail, TwoStageDetail, DormantDetail],
    Field(discriminator="kind"),
]


class AlertEmitted(BaseModel):
    """
    A notification-worthy transition.

    event_id is fresh per construction; dedup works on content
    (alert, logical stage, window), never on event_id.
    """
    event_id: str
    type: EventType
    occurred_at: datetime
    alert_id: str
    alert_type: AlertType
    symbol_or_address: str
    timeframe: str
    stage: AlertStage
    status: AlertStatus
    detail: EventDetail

    @field_validator("occurred_at", mode="after")
    @classmethod
    def utc_occurred_at(cls, v):
        return ensure_utc(v)

    @property
    def logical_stage(self) -> str:
        """Dedup stage: the dormant sub-stage for dormant events, else the event type"""
        if isinstance(self.detail, DormantDetail):
            return self.detail.dormant_stage.value
        return self.type.value

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_alert(
        cls,
        alert: AlertBase,
        event_id: str,
        event_type: EventType,
        occurred_at: datetime,
        detail: Union[ThresholdDetail, TwoStageDetail, DormantDetail],
    ) -> "AlertEmitted":
        """Snapshot the alert's current stage/status into an event"""
        return cls(
            event_id=event_id,
            type=event_type,
            occurred_at=occurred_at,
            alert_id=alert.id,
            alert_type=alert.type,
            symbol_or_address=alert.symbol_or_address,
            timeframe=alert.timeframe,
            stage=alert.stage,
            status=alert.status,
            detail=detail,
        )


def window_id(value: datetime) -> str:
    """Canonical dedup window token for an instant"""
    return ensure_utc(value).isoformat()


def minute_bucket(value: datetime) -> str:
    return str(int(ensure_utc(value).timestamp() // 60))
