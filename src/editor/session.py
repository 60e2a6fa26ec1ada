from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from chart.gate import RenderGate, Renderer
from common.avatars import AvatarClient
from common.config import Settings, get_settings
from common.preload import AvatarFetcher, ImagePreloadCache
from state import codec
from state.models import AppState
from state.store import StateStore
from state.url_store import UrlLocation

from .defaults import default_state


logger = logging.getLogger(__name__)


class EditorSession:
    """
    Wires the store, text codec, avatar cache and render gate together.

    Usage
    - Construct (optionally with an injected fetcher), then call `start()`
      from inside a running event loop.
    - Feed editor changes to `on_tasks_change(text)` / `on_owners_change(text)`.
      Both return True when the text was accepted into the canonical state.
      Invalid JSON or a wrong shape is ignored and returns False.
    - Read `tasks_text` / `owners_text` for the editors, `share_url` for a link
      that reopens the same dataset.
    """

    def __init__(
        self,
        href: str,
        renderer: Renderer,
        *,
        default: Optional[AppState] = None,
        settings: Optional[Settings] = None,
        fetcher: Optional[AvatarFetcher] = None,
        on_navigate: Optional[Callable[[str], None]] = None,
        width: int = 0,
    ) -> None:
        self._settings = settings or get_settings()
        self._default = default if default is not None else default_state()

        location = UrlLocation(href=href, param=self._settings.url_param, on_navigate=on_navigate)
        self._store = StateStore.open(location, self._default)

        self._owned_client: Optional[AvatarClient] = None
        if fetcher is None:
            self._owned_client = AvatarClient(
                timeout=self._settings.avatar_timeout,
                max_retries=self._settings.avatar_retries,
            )
            fetcher = self._owned_client

        self._cache = ImagePreloadCache(
            fetcher,
            fetch_timeout=self._settings.avatar_timeout,
            max_concurrent=self._settings.max_concurrent_fetches,
        )
        self._gate = RenderGate(self._store, self._cache, renderer, default=self._default, width=width)
        self._cache.set_on_ready(self._gate.on_cache_ready)

        self._preloaded_generation: Optional[int] = None
        self._text_memo: Dict[str, Tuple[Any, str]] = {}
        self._unsubscribe: List[Callable[[], None]] = []

    # -------- Accessors --------
    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def cache(self) -> ImagePreloadCache:
        return self._cache

    @property
    def gate(self) -> RenderGate:
        return self._gate

    @property
    def default(self) -> AppState:
        return self._default

    @property
    def share_url(self) -> str:
        return self._store.location.href

    @property
    def tasks_text(self) -> str:
        return self._memo_text("tasks", self._store.get().tasks)

    @property
    def owners_text(self) -> str:
        return self._memo_text("owners", self._store.get().owners)

    def header_summary(self) -> str:
        state = self._store.get()
        return f"{len(state.tasks)} tasks, {len(state.owners)} owners"

    # -------- Lifecycle --------
    def start(self) -> None:
        """Subscribe to the store and preload avatars for the initial state."""
        if self._unsubscribe:
            return
        self._unsubscribe.append(self._store.subscribe(self._on_state_change))
        self._unsubscribe.append(self._store.subscribe(self._gate.on_state_change))
        self._sync_preload()
        self._gate.render()

    async def aclose(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()
        await self._cache.aclose()
        if self._owned_client is not None:
            await self._owned_client.aclose()

    async def __aenter__(self) -> "EditorSession":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # -------- Editor callbacks --------
    def on_tasks_change(self, text: str) -> bool:
        try:
            value = codec.decode(text)
        except codec.ParseError as ex:
            # Expected while typing
            logger.debug("Tasks text not parseable yet: %s", ex)
            return False
        if not codec.is_tasks_shape(value):
            logger.debug("Tasks text rejected: expected a list, got %s", type(value).__name__)
            return False
        self._store.set(self._store.get().model_copy(update={"tasks": value}))
        return True

    def on_owners_change(self, text: str) -> bool:
        try:
            value = codec.decode(text)
        except codec.ParseError as ex:
            logger.debug("Owners text not parseable yet: %s", ex)
            return False
        if not codec.is_owners_shape(value):
            logger.debug("Owners text rejected: expected an object, got %s", type(value).__name__)
            return False
        self._store.set(self._store.get().model_copy(update={"owners": value}))
        return True

    def reset(self) -> None:
        """Reset both datasets to the default; same action as the error display's button."""
        self._gate.recover()

    # -------- Internal --------
    def _on_state_change(self, _state: AppState) -> None:
        self._sync_preload()

    def _sync_preload(self) -> None:
        generation = self._store.owners_generation
        if generation == self._preloaded_generation:
            return
        self._cache.preload(self._store.get().owners, generation)
        # Only a started preload counts; a failed one is retried on the next change
        self._preloaded_generation = generation

    def _memo_text(self, name: str, value: Any) -> str:
        cached = self._text_memo.get(name)
        if cached is not None and cached[0] is value:
            return cached[1]
        text = codec.encode(value)
        self._text_memo[name] = (value, text)
        return text


__all__ = ["EditorSession"]
