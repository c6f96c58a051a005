"""
Event Store & Dedup Ledger
Append-only log of emitted alert events plus the "already emitted" gate.

Layout:
    events:alert:{event_id}                          → event document (TTL 30d)
    events:alert:index                               → [{event_id, occurred_at, alert_id}]
    alerts:emit_dedupe:{alert_id}:{stage}:{window}   → {"emitted_at": iso} (TTL 24h)
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

import config
from core import Clock, SystemClock, ensure_utc
from db import KVStore, keys

from .models import AlertEmitted

logger = logging.getLogger(__name__)


def _parse(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


class EventStore:
    def __init__(self, store: KVStore, clock: Optional[Clock] = None):
        self._store = store
        self._clock = clock or SystemClock()

    def _index(self) -> List[dict]:
        return self._store.get(keys.alert_events_index()) or []

    def append(self, event: AlertEmitted) -> None:
        """Store the event and index it; index entries past retention are dropped"""
        self._store.set(
            keys.alert_event(event.event_id),
            event.to_dict(),
            ttl_seconds=config.EVENT_TTL_SECONDS,
        )

        cutoff = self._clock.now() - timedelta(days=config.EVENT_INDEX_RETENTION_DAYS)
        index = [e for e in self._index() if _parse(e["occurred_at"]) >= cutoff]
        index.append({
            "event_id": event.event_id,
            "occurred_at": event.occurred_at.isoformat(),
            "alert_id": event.alert_id,
        })
        self._store.set(keys.alert_events_index(), index)

    def query(self, since: Optional[datetime] = None, limit: int = 100) -> List[AlertEmitted]:
        """Events with occurred_at > since (default: last 24h), oldest first"""
        if since is None:
            since = self._clock.now() - timedelta(hours=config.EVENTS_DEFAULT_LOOKBACK_HOURS)
        since = ensure_utc(since)

        entries = [e for e in self._index() if _parse(e["occurred_at"]) > since]
        entries.sort(key=lambda e: _parse(e["occurred_at"]))

        events: List[AlertEmitted] = []
        for entry in entries:
            if len(events) >= limit:
                break
            raw = self._store.get(keys.alert_event(entry["event_id"]))
            if raw is None:
                continue
            events.append(AlertEmitted.model_validate(raw))
        return events

    def exists(self, event_id: str) -> bool:
        return self._store.exists(keys.alert_event(event_id))

    def create_deduped(self, event: AlertEmitted, window_id: str) -> bool:
        """
        Append the event unless (alert, logical stage, window) was already emitted.

        The ledger claim is a single set_if_absent, so concurrent sweeps
        cannot both win. If the append fails the claim is released so a
        later sweep can retry the notification.

        Returns:
            True if the event was appended, False if it was a duplicate
        """
        dedupe_key = keys.emit_dedupe(event.alert_id, event.logical_stage, window_id)
        claimed = self._store.set_if_absent(
            dedupe_key,
            {"emitted_at": self._clock.now().isoformat()},
            ttl_seconds=config.DEDUP_TTL_SECONDS,
        )
        if not claimed:
            logger.debug(
                "Suppressed duplicate %s for %s (window %s)",
                event.logical_stage, event.alert_id, window_id,
            )
            return False

        try:
            self.append(event)
        except Exception:
            self._store.delete(dedupe_key)
            raise

        logger.info("Emitted %s for alert %s", event.type.value, event.alert_id)
        return True
