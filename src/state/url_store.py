from __future__ import annotations

import base64
import binascii
import json
import zlib
from dataclasses import dataclass, field
from typing import Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import ValidationError

from .models import AppState


DEFAULT_PARAM = "data"


class StateDecodeError(ValueError):
    """Raised when a persisted token cannot be turned back into an AppState."""


def _dump_state_json(state: AppState) -> bytes:
    # Compact and deterministic; key order is kept so the round-trip is exact
    return json.dumps(
        state.to_payload(), separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def _load_state_json(data: bytes) -> AppState:
    raw = json.loads(data.decode("utf-8"))
    if not isinstance(raw, dict):
        raise StateDecodeError("Persisted state is not an object")
    return AppState.model_validate(raw)


def encode_state(state: AppState) -> str:
    """Encode state as a URL-safe token: compact JSON, zlib, base64url without padding."""
    packed = zlib.compress(_dump_state_json(state), 9)
    return base64.urlsafe_b64encode(packed).rstrip(b"=").decode("ascii")


def decode_state(token: str) -> AppState:
    """Inverse of `encode_state`.

    Raises:
    - StateDecodeError for any malformed token (bad base64, bad zlib stream,
      invalid JSON or wrong shape).
    """
    if not token:
        raise StateDecodeError("Empty state token")
    padded = token + "=" * (-len(token) % 4)
    try:
        packed = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError) as ex:
        raise StateDecodeError("State token is not valid base64url") from ex

    try:
        data = zlib.decompress(packed)
    except zlib.error as ex:
        raise StateDecodeError("State token is not a valid zlib stream") from ex

    try:
        return _load_state_json(data)
    except StateDecodeError:
        raise
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as ex:
        raise StateDecodeError("Failed to parse persisted state JSON") from ex


@dataclass
class UrlLocation:
    """
    URL-backed location holding the persisted state token.

    Usage
    - `read()` returns the token stored under query parameter `param`, or None.
    - `write(token)` rewrites `href` with that parameter replaced, leaving other
      query parameters and the fragment untouched, then calls `on_navigate(href)`
      so the host can mirror the change (address bar, history entry). If the
      hook raises, `href` keeps its previous value.
    - `href` is the shareable link.
    """

    href: str
    param: str = DEFAULT_PARAM
    on_navigate: Optional[Callable[[str], None]] = field(default=None, repr=False)

    def read(self) -> Optional[str]:
        query = urlsplit(self.href).query
        for name, value in parse_qsl(query, keep_blank_values=True):
            if name == self.param:
                return value or None
        return None

    def write(self, token: str) -> str:
        parts = urlsplit(self.href)
        pairs = [(n, v) for n, v in parse_qsl(parts.query, keep_blank_values=True) if n != self.param]
        pairs.append((self.param, token))
        href = urlunsplit(parts._replace(query=urlencode(pairs)))
        # A failing hook leaves href unchanged
        if self.on_navigate is not None:
            self.on_navigate(href)
        self.href = href
        return href


# -------- Convenience top-level helpers --------
def load_state_from_url(href: str, *, param: str = DEFAULT_PARAM) -> Optional[AppState]:
    """Decode the state embedded in `href`; None when the URL carries no state."""
    token = UrlLocation(href=href, param=param).read()
    if token is None:
        return None
    return decode_state(token)


def state_to_url(state: AppState, base_href: str, *, param: str = DEFAULT_PARAM) -> str:
    return UrlLocation(href=base_href, param=param).write(encode_state(state))


__all__ = [
    "DEFAULT_PARAM",
    "StateDecodeError",
    "UrlLocation",
    "decode_state",
    "encode_state",
    "load_state_from_url",
    "state_to_url",
]
