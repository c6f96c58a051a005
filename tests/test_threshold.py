from datetime import timedelta

import pytest

from alerts import AlertStage, AlertStatus, EventType, ThresholdCondition, ThresholdMachine
from alerts.threshold import check_condition


@pytest.fixture
def machine(alert_store, event_store, new_id):
    return ThresholdMachine(alert_store, event_store, new_id)


def _create(alert_store, condition="ABOVE", target=100.0):
    return alert_store.create({
        "type": "SIMPLE",
        "symbol_or_address": "btc",
        "timeframe": "1h",
        "condition": condition,
        "target_price": target,
    })


@pytest.mark.parametrize("condition,last,expected", [
    (ThresholdCondition.ABOVE, 100.0, True),
    (ThresholdCondition.ABOVE, 99.99, False),
    (ThresholdCondition.BELOW, 100.0, True),
    (ThresholdCondition.BELOW, 100.01, False),
    (ThresholdCondition.CROSS, 100.05, True),
    (ThresholdCondition.CROSS, 99.95, True),
    (ThresholdCondition.CROSS, 100.2, False),
])
def test_check_condition(condition, last, expected):
    assert check_condition(condition, last, 100.0) is expected


def test_trigger_confirms_and_emits(machine, alert_store, clock):
    alert = _create(alert_store)
    result = machine.evaluate(alert, 101.0, clock.now())

    assert result.transitioned and result.emitted
    assert result.event.type == EventType.SIMPLE_TRIGGERED
    assert result.event.detail.last_price == 101.0
    assert result.event.stage == AlertStage.CONFIRMED

    stored = alert_store.get_by_id(alert.id)
    assert stored.stage == AlertStage.CONFIRMED
    assert stored.status == AlertStatus.TRIGGERED
    assert stored.trigger_count == 1
    assert stored.triggered_at == clock.now()
    assert stored.last_triggered_at == clock.now()


def test_no_trigger_leaves_alert_untouched(machine, alert_store, clock):
    alert = _create(alert_store)
    result = machine.evaluate(alert, 50.0, clock.now())

    assert not result.transitioned
    assert result.event is None
    assert alert_store.get_by_id(alert.id).stage == AlertStage.WATCHING


def test_confirmed_alert_never_emits_again(machine, alert_store, event_store, clock):
    alert = _create(alert_store)
    machine.evaluate(alert, 150.0, clock.now())

    for _ in range(3):
        clock.advance(minutes=1)
        again = machine.evaluate(alert_store.get_by_id(alert.id), 150.0, clock.now())
        assert not again.transitioned

    events = event_store.query(since=clock.now() - timedelta(hours=1))
    assert [e.type for e in events] == [EventType.SIMPLE_TRIGGERED]


def test_racing_sweeps_emit_once(machine, alert_store, event_store, clock):
    alert = _create(alert_store)
    # Two sweeps loaded the same WATCHING snapshot
    copy_a = alert_store.get_by_id(alert.id)
    copy_b = alert_store.get_by_id(alert.id)

    first = machine.evaluate(copy_a, 120.0, clock.now())
    second = machine.evaluate(copy_b, 120.0, clock.now())

    assert first.emitted and not second.emitted
    assert second.transitioned
    assert len(event_store.query(since=clock.now() - timedelta(minutes=1))) == 1


def test_disabled_alert_is_ineligible(machine, alert_store, clock):
    alert = _create(alert_store)
    alert = alert_store.update(alert.id, {"enabled": False})

    assert not machine.is_eligible(alert)
    assert not machine.evaluate(alert, 500.0, clock.now()).transitioned
