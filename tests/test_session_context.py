import pytest

from utils.session_context import (
    DEFAULT_PREFERENCES,
    MAX_SEARCH_HISTORY,
    SessionContext,
    load_session_context,
)

TIMEOUT = 30 * 60 * 1000


def test_defaults():
    context = SessionContext(last_activity=0)
    assert context.preferences == DEFAULT_PREFERENCES
    assert context.search_history == []
    assert context.current_page == "/"


def test_search_history_is_most_recent_first_and_capped():
    context = SessionContext()
    for i in range(MAX_SEARCH_HISTORY + 3):
        context.add_search(f"term {i}")
    context.add_search("term 5")
    context.add_search("   ")

    assert len(context.search_history) == MAX_SEARCH_HISTORY
    assert context.search_history[0] == "term 5"
    assert context.search_history.count("term 5") == 1
    assert "term 0" not in context.search_history


def test_unknown_preference_rejected():
    context = SessionContext()
    with pytest.raises(ValueError):
        context.update_preferences(font="comic")
    context.update_preferences(theme="dark")
    assert context.preferences["theme"] == "dark"


def test_unknown_dashboard_setting_rejected():
    context = SessionContext()
    with pytest.raises(ValueError):
        context.update_dashboard_settings(refresh="fast")
    context.update_dashboard_settings(compact_view=True)
    assert context.dashboard_settings["compact_view"] is True


def test_round_trip_through_session_data():
    context = SessionContext(last_activity=1000)
    context.add_search("Ali")
    context.save_filters("students", {"class": "9th"})
    context.visit("/students")

    restored = SessionContext.from_dict(context.to_dict())

    assert restored.to_dict() == context.to_dict()


def test_active_session_is_restored_and_touched():
    data = SessionContext(last_activity=1000, search_history=["Ali"]).to_dict()
    context = load_session_context(data, TIMEOUT, now=1000 + TIMEOUT)
    assert context.search_history == ["Ali"]
    assert context.last_activity == 1000 + TIMEOUT


def test_expired_session_keeps_preferences_only():
    stored = SessionContext(last_activity=1000, search_history=["Ali"], filters={"students": {"class": "9th"}})
    stored.update_preferences(theme="dark")

    context = load_session_context(stored.to_dict(), TIMEOUT, now=1000 + TIMEOUT + 1)

    assert context.preferences["theme"] == "dark"
    assert context.search_history == []
    assert context.filters == {}
    assert context.last_activity == 1000 + TIMEOUT + 1


def test_missing_session_starts_fresh():
    context = load_session_context(None, TIMEOUT, now=5)
    assert context.last_activity == 5
    assert context.preferences == DEFAULT_PREFERENCES
