from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from flask import current_app


class FetchResult:
    """Outcome of a two-tier fetch.

    ``source`` tells whether the data came from the precomputed database path
    (``remote``) or from the local recomputation (``local``). ``error`` is set
    only when both paths failed, in which case ``data`` holds the caller's
    empty default.
    """

    def __init__(self, data: Any, error: Optional[str] = None, source: str = "remote"):
        self.data = data
        self.error = error
        self.source = source

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self, key: str = "data") -> Dict[str, Any]:
        return {key: self.data, "source": self.source, "error": self.error}

    def __repr__(self):
        return f"<FetchResult source={self.source} ok={self.ok}>"


def with_fallback(
    remote: Callable[[], Any],
    local: Callable[[], Any],
    default: Any = None,
    label: str = "query",
) -> FetchResult:
    try:
        return FetchResult(remote(), source="remote")
    except Exception as e:
        current_app.logger.warning("%s: precomputed path unavailable (%s); computing locally", label, e)

    try:
        return FetchResult(local(), source="local")
    except Exception as e:
        current_app.logger.error("%s: local computation failed: %s", label, e)
        return FetchResult(default, error=str(e) or e.__class__.__name__, source="local")
