from __future__ import annotations

import logging
from typing import Callable, List

from .models import AppState
from .url_store import StateDecodeError, UrlLocation, decode_state, encode_state


logger = logging.getLogger(__name__)

Listener = Callable[[AppState], None]


class StateStore:
    """
    Holder of the canonical AppState, persisted to a URL-backed location.

    Usage
    - `StateStore.open(location, default)` loads the state embedded in the URL,
      falling back to `default` when the URL has none or it cannot be decoded.
    - `get()` returns the current state.
    - `set(state)` writes the new token to the location, swaps the state and
      then notifies subscribers. If the write raises, nothing changes and the
      error propagates.
    - `subscribe(listener)` registers a callback and returns an unsubscribe
      function.

    The owners generation counts owners replacements. It advances whenever
    `set` installs an owners mapping that is a different object from the
    current one, including a value-equal one produced by a fresh decode.
    """

    def __init__(self, location: UrlLocation, initial: AppState) -> None:
        self._location = location
        self._state = initial
        self._owners_generation = 0
        self._listeners: List[Listener] = []

    # -------- Construction helpers --------
    @classmethod
    def open(cls, location: UrlLocation, default: AppState) -> "StateStore":
        token = location.read()
        if token is None:
            logger.debug("No persisted state in URL; using default dataset")
            return cls(location, default)
        try:
            initial = decode_state(token)
        except StateDecodeError as ex:
            # Corrupt link: not an error, fall back to the default dataset
            logger.info("Ignoring unreadable persisted state: %s", ex)
            initial = default
        return cls(location, initial)

    # -------- Core operations --------
    @property
    def location(self) -> UrlLocation:
        return self._location

    @property
    def owners_generation(self) -> int:
        return self._owners_generation

    def get(self) -> AppState:
        return self._state

    def set(self, new_state: AppState) -> None:
        if not isinstance(new_state, AppState):
            raise TypeError(f"StateStore.set expects AppState, got {type(new_state).__name__}")

        token = encode_state(new_state)
        owners_replaced = new_state.owners is not self._state.owners

        # Persist first: a failed write leaves state and generation untouched
        self._location.write(token)
        self._state = new_state
        if owners_replaced:
            self._owners_generation += 1
        logger.debug(
            "State replaced (tasks=%d owners=%d generation=%d)",
            len(new_state.tasks),
            len(new_state.owners),
            self._owners_generation,
        )
        self._notify(new_state)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    # -------- Internal --------
    def _notify(self, state: AppState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener %r failed", listener)


__all__ = ["Listener", "StateStore"]
