import pytest

from db import MemoryKVStore, SQLiteKVStore, keys


@pytest.fixture(params=["memory", "sqlite"])
def store(request, clock, tmp_path):
    if request.param == "memory":
        return MemoryKVStore(clock=clock)
    return SQLiteKVStore(str(tmp_path / "kv.db"), clock=clock)


def test_get_missing_returns_none(store):
    assert store.get("nope") is None
    assert not store.exists("nope")


def test_set_get_roundtrips_json_documents(store):
    store.set("doc", {"a": 1, "b": [1, 2], "c": None})
    assert store.get("doc") == {"a": 1, "b": [1, 2], "c": None}
    assert store.exists("doc")


def test_stored_values_are_copies(store):
    value = {"items": [1]}
    store.set("doc", value)
    value["items"].append(2)

    fetched = store.get("doc")
    fetched["items"].append(3)

    assert store.get("doc") == {"items": [1]}


def test_ttl_expiry_follows_clock(store, clock):
    store.set("short", "x", ttl_seconds=60)
    clock.advance(seconds=59)
    assert store.get("short") == "x"
    clock.advance(seconds=1)
    assert store.get("short") is None
    assert not store.exists("short")


def test_delete(store):
    store.set("k", 1)
    assert store.delete("k") is True
    assert store.delete("k") is False
    assert store.get("k") is None


def test_set_if_absent_claims_once(store):
    assert store.set_if_absent("claim", {"by": "first"}) is True
    assert store.set_if_absent("claim", {"by": "second"}) is False
    assert store.get("claim") == {"by": "first"}


def test_set_if_absent_treats_expired_as_absent(store, clock):
    assert store.set_if_absent("claim", "a", ttl_seconds=10) is True
    clock.advance(seconds=11)
    assert store.set_if_absent("claim", "b", ttl_seconds=10) is True
    assert store.get("claim") == "b"


def test_increment_counter(store):
    assert store.increment_counter("c") == 1
    assert store.increment_counter("c") == 2
    assert store.increment_counter("c") == 3


def test_increment_counter_restarts_after_expiry(store, clock):
    store.increment_counter("c", ttl_seconds=5)
    store.increment_counter("c", ttl_seconds=5)
    clock.advance(seconds=6)
    assert store.increment_counter("c", ttl_seconds=5) == 1


def test_list_by_prefix_skips_other_and_expired_keys(store, clock):
    store.set("p:b", 2)
    store.set("p:a", 1)
    store.set("p:gone", 3, ttl_seconds=1)
    store.set("q:a", 9)
    clock.advance(seconds=2)

    assert store.list_by_prefix("p:") == [("p:a", 1), ("p:b", 2)]


def test_key_schema_is_versioned():
    assert keys.alert_def("a1") == "sf:v1:alerts:def:a1"
    assert keys.alert_index() == "sf:v1:alerts:index"
    assert keys.emit_dedupe("a1", "AWAKENING", "w") == "sf:v1:alerts:emit_dedupe:a1:AWAKENING:w"
    assert keys.alert_event("e1") == "sf:v1:events:alert:e1"
    assert keys.alert_events_index() == "sf:v1:events:alert:index"


def test_sqlite_persists_across_instances(tmp_path, clock):
    path = str(tmp_path / "persist.db")
    SQLiteKVStore(path, clock=clock).set("k", {"v": 1})
    assert SQLiteKVStore(path, clock=clock).get("k") == {"v": 1}


def test_sqlite_purge_expired(tmp_path, clock):
    store = SQLiteKVStore(str(tmp_path / "purge.db"), clock=clock)
    store.set("old", 1, ttl_seconds=1)
    store.set("keep", 2)
    clock.advance(seconds=5)

    assert store.purge_expired() == 1
    assert store.get_stats()["key_count"] == 1
