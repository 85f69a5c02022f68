import hashlib
import secrets
import threading
from typing import Any, Iterable

DASHBOARD_VIEW = "/dashboard"


def deck_view(deck_id: int) -> str:
    return f"/dashboard/decks/{deck_id}"


def study_view(deck_id: int) -> str:
    return f"/dashboard/decks/{deck_id}/study"


class ViewInvalidator:
    """Version counters for rendered views.

    Mutations bump the keys of the views that embed the data they changed;
    pages turn the versions into an ETag so browsers re-fetch stale copies.
    The counters are per process, so pages also pass a fingerprint of the
    rows they render; a write made by another worker still changes the tag.
    """

    def __init__(self):
        # distinguishes counters of this process from a previous run
        self._nonce = secrets.token_hex(8)
        self._versions: dict[str, int] = {}
        self._lock = threading.Lock()

    def version(self, key: str) -> int:
        return self._versions.get(key, 0)

    def invalidate(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in dict.fromkeys(keys):
                self._versions[key] = self._versions.get(key, 0) + 1

    def forget(self, keys: Iterable[str]) -> None:
        """Drop the counters of views that no longer exist."""
        with self._lock:
            for key in keys:
                self._versions.pop(key, None)

    def etag(self, scope: str, keys: Iterable[str], fingerprint: Iterable[Any] = ()) -> str:
        versions = "|".join(f"{key}={self.version(key)}" for key in sorted(keys))
        rows = "|".join(repr(item) for item in fingerprint)
        raw = f"{self._nonce}|{scope}|{versions}|{rows}"
        return '"' + hashlib.sha1(raw.encode("utf-8")).hexdigest() + '"'


invalidator = ViewInvalidator()
