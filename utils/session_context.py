from __future__ import annotations

import copy
import time
from typing import Any, Dict, List, Optional

MAX_SEARCH_HISTORY = 10

DEFAULT_PREFERENCES = {
    "theme": "light",
    "language": "en",
    "currency": "PKR",
    "date_format": "DD/MM/YYYY",
    "timezone": "Asia/Karachi",
}

DEFAULT_DASHBOARD_SETTINGS = {
    "refresh_interval": 30000,
    "auto_refresh": True,
    "show_notifications": True,
    "compact_view": False,
}


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionContext:
    """Per-user dashboard state carried in the Flask session.

    Handlers get it from ``flask.g.session_context``; nothing is kept at
    module level.
    """

    def __init__(
        self,
        preferences: Optional[Dict[str, Any]] = None,
        dashboard_settings: Optional[Dict[str, Any]] = None,
        last_activity: Optional[int] = None,
        search_history: Optional[List[str]] = None,
        current_page: str = "/",
        filters: Optional[Dict[str, Any]] = None,
        sort_preferences: Optional[Dict[str, Any]] = None,
    ):
        self.preferences = {**DEFAULT_PREFERENCES, **(preferences or {})}
        self.dashboard_settings = {**DEFAULT_DASHBOARD_SETTINGS, **(dashboard_settings or {})}
        self.last_activity = last_activity if last_activity is not None else now_ms()
        self.search_history = list(search_history or [])[:MAX_SEARCH_HISTORY]
        self.current_page = current_page
        self.filters = copy.deepcopy(filters or {})
        self.sort_preferences = copy.deepcopy(sort_preferences or {})

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SessionContext":
        data = data or {}
        return cls(
            preferences=data.get("preferences"),
            dashboard_settings=data.get("dashboard_settings"),
            last_activity=data.get("last_activity"),
            search_history=data.get("search_history"),
            current_page=data.get("current_page") or "/",
            filters=data.get("filters"),
            sort_preferences=data.get("sort_preferences"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preferences": dict(self.preferences),
            "dashboard_settings": dict(self.dashboard_settings),
            "last_activity": self.last_activity,
            "search_history": list(self.search_history),
            "current_page": self.current_page,
            "filters": copy.deepcopy(self.filters),
            "sort_preferences": copy.deepcopy(self.sort_preferences),
        }

    def is_expired(self, now: int, timeout_ms: int) -> bool:
        return now - self.last_activity > timeout_ms

    def touch(self, now: Optional[int] = None) -> None:
        self.last_activity = now if now is not None else now_ms()

    def add_search(self, term: str) -> None:
        term = (term or "").strip()
        if not term:
            return
        history = [t for t in self.search_history if t != term]
        self.search_history = [term] + history[: MAX_SEARCH_HISTORY - 1]

    def clear_search_history(self) -> None:
        self.search_history = []

    def update_preferences(self, **values: Any) -> None:
        unknown = set(values) - set(DEFAULT_PREFERENCES)
        if unknown:
            raise ValueError(f"Unknown preferences: {', '.join(sorted(unknown))}")
        self.preferences.update(values)

    def update_dashboard_settings(self, **values: Any) -> None:
        unknown = set(values) - set(DEFAULT_DASHBOARD_SETTINGS)
        if unknown:
            raise ValueError(f"Unknown dashboard settings: {', '.join(sorted(unknown))}")
        self.dashboard_settings.update(values)

    def save_filters(self, page: str, filters: Dict[str, Any]) -> None:
        self.filters[page] = copy.deepcopy(filters)

    def visit(self, page: str) -> None:
        self.current_page = page


def load_session_context(data: Optional[Dict[str, Any]], timeout_ms: int, now: Optional[int] = None) -> SessionContext:
    """Restore the context from stored data, starting fresh when it has expired.

    Preferences and dashboard settings survive expiry; only the transient
    session data (search history, filters, page) is dropped.
    """
    now = now if now is not None else now_ms()
    context = SessionContext.from_dict(data)
    if data and context.is_expired(now, timeout_ms):
        context = SessionContext(
            preferences=context.preferences,
            dashboard_settings=context.dashboard_settings,
            last_activity=now,
        )
    context.touch(now)
    return context
