from __future__ import annotations

import threading
from datetime import date
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from flask import current_app
from sqlalchemy import inspect

from utils.analytics import build_analytics_summary
from utils.store import COLLECTIONS, RecordStore, store as default_store
from utils.timezone_helpers import local_today


def snapshot_signature(snapshot: Dict[str, List[Any]]) -> Tuple[Hashable, ...]:
    """Column values of every row in the snapshot, in a comparable form."""
    signature = []
    for name in sorted(snapshot):
        rows = []
        for obj in snapshot[name]:
            attrs = inspect(obj).mapper.column_attrs
            rows.append(tuple(getattr(obj, attr.key) for attr in attrs))
        signature.append((name, tuple(sorted(rows, key=repr))))
    return tuple(signature)


class DashboardFeed:
    """Keeps the dashboard aggregate in step with the record store.

    Every ``current()`` call re-fetches a full snapshot. The aggregation is
    re-run from scratch unless the snapshot matches the one behind the cached
    summary, so writes made by other processes or outside the ORM are seen on
    the next read. A change notification on any collection marks the cached
    aggregate stale and forces the next call to recompute. Nothing is updated
    incrementally.
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        aggregate: Callable[..., Dict[str, Any]] = build_analytics_summary,
    ):
        self.store = store or default_store
        self.aggregate = aggregate
        self._lock = threading.Lock()
        self._stale = True
        self._summary: Optional[Dict[str, Any]] = None
        self._computed_for: Optional[date] = None
        self._signature: Optional[Tuple[Hashable, ...]] = None
        self.refreshes = 0

    def start(self) -> "DashboardFeed":
        for collection in COLLECTIONS:
            self.store.subscribe(collection, self._on_change)
        return self

    def stop(self) -> None:
        for collection in COLLECTIONS:
            self.store.unsubscribe(collection, self._on_change)

    @property
    def stale(self) -> bool:
        return self._stale

    def _on_change(self, collection: str, **_: Any) -> None:
        with self._lock:
            self._stale = True

    def invalidate(self) -> None:
        self._on_change("manual")

    def current(self, today: Optional[date] = None) -> Dict[str, Any]:
        day = today or local_today()
        snapshot = self.store.snapshot()
        signature = snapshot_signature(snapshot)
        with self._lock:
            if (
                not self._stale
                and self._summary is not None
                and self._computed_for == day
                and self._signature == signature
            ):
                return self._summary
            # cleared before aggregating so a change during the refresh is not lost
            self._stale = False
        try:
            summary = self.aggregate(snapshot, day)
        except Exception:
            with self._lock:
                self._stale = True
            raise
        with self._lock:
            self._summary = summary
            self._computed_for = day
            self._signature = signature
            self.refreshes += 1
        current_app.logger.debug("dashboard aggregate recomputed (%s)", self.refreshes)
        return summary
