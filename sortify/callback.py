"""Reading and stripping OAuth callback parameters from a navigation URL."""

from __future__ import annotations

from typing import NamedTuple, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

CALLBACK_PARAMS = ("code", "state", "error")


class CallbackParams(NamedTuple):
    code: Optional[str]
    state: Optional[str]
    error: Optional[str]

    @property
    def present(self) -> bool:
        return bool(self.code or self.error)


def get_callback_params(url: str) -> CallbackParams:
    """Extract ``code``, ``state`` and ``error`` from the query string."""
    query = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    return CallbackParams(
        code=query.get("code") or None,
        state=query.get("state") or None,
        error=query.get("error") or None,
    )


def strip_callback_params(url: str) -> str:
    """Return *url* without the callback parameters; other parts are kept."""
    parts = urlsplit(url)
    kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in CALLBACK_PARAMS]
    return urlunsplit(parts._replace(query=urlencode(kept)))
