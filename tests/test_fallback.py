from utils.fallback import FetchResult, with_fallback
from utils.store import FeatureUnavailable


def _boom(message):
    def _raise():
        raise FeatureUnavailable(message)
    return _raise


def test_remote_result_wins(app):
    result = with_fallback(lambda: [1], lambda: [2])
    assert result.data == [1]
    assert result.source == "remote"
    assert result.ok


def test_local_used_when_remote_fails(app):
    result = with_fallback(_boom("no rpc"), lambda: [2], default=[])
    assert result.data == [2]
    assert result.source == "local"
    assert result.error is None


def test_default_and_error_when_both_fail(app):
    result = with_fallback(_boom("no rpc"), _boom("no table"), default=[])
    assert result.data == []
    assert not result.ok
    assert result.error == "no table"


def test_to_dict_carries_source_and_error():
    result = FetchResult({"a": 1}, source="local")
    assert result.to_dict("analytics") == {"analytics": {"a": 1}, "source": "local", "error": None}
