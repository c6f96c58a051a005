from datetime import timedelta

import pytest

from alerts import AlertStage, AlertStatus, AlertType, DormantStage, normalize_symbol_or_address
from alerts.models import CreateThresholdRequest, DEFAULT_DORMANT_PARAMS
from core import InvalidRequest, InvariantViolation
from db import keys


def _threshold(**overrides):
    body = {
        "type": "SIMPLE",
        "symbol_or_address": "btc",
        "timeframe": "1h",
        "condition": "ABOVE",
        "target_price": 100000,
    }
    body.update(overrides)
    return body


def test_create_threshold_normalizes_symbol(alert_store):
    alert = alert_store.create(_threshold())

    stored = alert_store.get_by_id(alert.id)
    assert stored.symbol_or_address == "BTC"
    assert stored.stage == AlertStage.WATCHING
    assert stored.status == AlertStatus.ACTIVE
    assert stored.trigger_count == 0
    assert stored.enabled is True
    assert alert.id.startswith("alert_")


def test_create_accepts_typed_request(alert_store):
    request = CreateThresholdRequest(
        type="SIMPLE", symbol_or_address="eth", timeframe="4h",
        condition="BELOW", target_price=2000,
    )
    alert = alert_store.create(request)
    assert alert.symbol_or_address == "ETH"


def test_addresses_pass_through_unchanged():
    address = "0xAbCdEf0123456789abcdef0123456789ABCDEF01"
    assert normalize_symbol_or_address(address) == address
    assert normalize_symbol_or_address("sol-usd") == "SOL-USD"


def test_create_two_stage_uses_template_and_expiry(alert_store, clock):
    alert = alert_store.create({
        "type": "TWO_STAGE",
        "symbol_or_address": "btc",
        "timeframe": "15m",
        "template": "MACD_RSI_VOLUME",
        "expiry_minutes": 120,
        "cooldown_minutes": 30,
    })

    assert [i.id for i in alert.indicators] == ["macd_signal", "rsi_threshold", "volume_spike"]
    assert alert.triggered_count == 0
    assert alert.expires_at == clock.now() + timedelta(minutes=120)


def test_create_dormant_defaults(alert_store):
    alert = alert_store.create({
        "type": "DORMANT_AWAKENING",
        "symbol_or_address": "pepe",
        "timeframe": "5m",
    })
    assert alert.type == AlertType.DORMANT_AWAKENING
    assert alert.dormant_stage == DormantStage.INITIAL
    assert alert.params == DEFAULT_DORMANT_PARAMS
    assert alert.session_start is None


@pytest.mark.parametrize("body", [
    _threshold(target_price=0),
    _threshold(condition="SIDEWAYS"),
    {"type": "NOPE", "symbol_or_address": "btc", "timeframe": "1h"},
    {"type": "TWO_STAGE", "symbol_or_address": "btc", "timeframe": "1h", "template": "MACD_RSI_VOLUME"},
])
def test_create_rejects_invalid_requests(alert_store, body):
    with pytest.raises(InvalidRequest) as exc:
        alert_store.create(body)
    assert exc.value.details


def test_index_has_no_duplicates_and_delete_removes(alert_store, kv):
    a = alert_store.create(_threshold())
    b = alert_store.create(_threshold(symbol_or_address="eth"))
    alert_store.save(a)

    assert kv.get(keys.alert_index()) == [a.id, b.id]

    assert alert_store.delete(a.id) is True
    assert alert_store.delete(a.id) is False
    assert kv.get(keys.alert_index()) == [b.id]
    assert alert_store.get_by_id(a.id) is None


def test_list_sorted_newest_first_and_filtered(alert_store, clock):
    older = alert_store.create(_threshold())
    clock.advance(minutes=1)
    newer = alert_store.create(_threshold(symbol_or_address="eth"))
    alert_store.update(older.id, {"enabled": False})

    assert [a.id for a in alert_store.list()] == [newer.id, older.id]
    assert [a.id for a in alert_store.list("paused")] == [older.id]
    assert [a.id for a in alert_store.list("active")] == [newer.id]
    assert [a.id for a in alert_store.list(symbol_filter="Eth")] == [newer.id]


def test_list_rejects_unknown_filter(alert_store):
    with pytest.raises(InvalidRequest):
        alert_store.list("bogus")


def test_update_enabled_recomputes_status(alert_store):
    alert = alert_store.create(_threshold())

    paused = alert_store.update(alert.id, {"enabled": False})
    assert paused.status == AlertStatus.PAUSED

    resumed = alert_store.update(alert.id, {"enabled": True})
    assert resumed.status == AlertStatus.ACTIVE


def test_enabling_terminal_alert_leaves_status(alert_store):
    alert = alert_store.create(_threshold())
    alert.stage = AlertStage.CONFIRMED
    alert.status = AlertStatus.TRIGGERED
    alert.enabled = False
    alert_store.save(alert)

    updated = alert_store.update(alert.id, {"enabled": True})
    assert updated.enabled is True
    assert updated.status == AlertStatus.TRIGGERED


def test_update_threshold_fields_only_on_simple(alert_store):
    simple = alert_store.create(_threshold())
    updated = alert_store.update(simple.id, {"condition": "BELOW", "target_price": 5, "note": "dip"})
    assert updated.condition.value == "BELOW"
    assert updated.target_price == 5
    assert updated.note == "dip"

    dormant = alert_store.create({"type": "DORMANT_AWAKENING", "symbol_or_address": "x", "timeframe": "1m"})
    unchanged = alert_store.update(dormant.id, {"target_price": 5})
    assert not hasattr(unchanged, "target_price")


def test_update_missing_returns_none(alert_store):
    assert alert_store.update("missing", {"note": "x"}) is None
    assert alert_store.cancel_watch("missing") is None


def test_cancel_watch(alert_store):
    alert = alert_store.create(_threshold())
    cancelled = alert_store.cancel_watch(alert.id)

    assert cancelled.stage == AlertStage.CANCELLED
    assert cancelled.enabled is False
    assert cancelled.status == AlertStatus.PAUSED


def test_malformed_record_is_flagged(alert_store, kv):
    good = alert_store.create(_threshold())
    bad = alert_store.create(_threshold(symbol_or_address="eth"))
    kv.set(keys.alert_def(bad.id), {"id": bad.id, "type": "SIMPLE"})

    with pytest.raises(InvariantViolation):
        alert_store.get_by_id(bad.id)

    assert [a.id for a in alert_store.list()] == [good.id]
    active, malformed = alert_store.load_active()
    assert [a.id for a in active] == [good.id]
    assert malformed == [bad.id]


def test_load_active_includes_dormant_waiting_to_rearm(alert_store):
    dormant = alert_store.create({"type": "DORMANT_AWAKENING", "symbol_or_address": "x", "timeframe": "1m"})
    dormant.dormant_stage = DormantStage.SESSION_ENDED
    dormant.stage = AlertStage.CONFIRMED
    dormant.status = AlertStatus.TRIGGERED
    alert_store.save(dormant)

    active, _ = alert_store.load_active()
    assert [a.id for a in active] == [dormant.id]


def test_load_active_includes_dormant_in_second_surge(alert_store):
    dormant = alert_store.create({"type": "DORMANT_AWAKENING", "symbol_or_address": "x", "timeframe": "1m"})
    dormant.dormant_stage = DormantStage.SECOND_SURGE
    dormant.stage = AlertStage.CONFIRMED
    dormant.status = AlertStatus.TRIGGERED
    alert_store.save(dormant)

    active, _ = alert_store.load_active()
    assert [a.id for a in active] == [dormant.id]

    alert_store.update(dormant.id, {"enabled": False})
    active, _ = alert_store.load_active()
    assert active == []
