from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, List, Mapping, Optional, Sequence

from common.avatars import ImageCacheEntry
from common.preload import ImagePreloadCache
from state.models import AppState
from state.store import StateStore


logger = logging.getLogger(__name__)


class ImageLookup:
    """Read-only view of the avatar cache handed to the renderer."""

    def __init__(self, cache: ImagePreloadCache) -> None:
        self._cache = cache

    def __call__(self, owner_key: str) -> Optional[ImageCacheEntry]:
        return self._cache.lookup(owner_key)

    def for_owner(self, owner: Any) -> Optional[ImageCacheEntry]:
        return self._cache.get(owner)


@dataclass(frozen=True)
class RenderInput:
    """
    Everything the external renderer receives.

    - tasks / owners: the canonical datasets (read-only).
    - images: avatar lookup by owner key; a miss means "no avatar yet".
    - preload_counter: bumped once per owners generation when its avatars are ready.
    - width: available drawing width in pixels.
    """

    tasks: Sequence[Any]
    owners: Mapping[str, Any]
    images: ImageLookup
    preload_counter: int
    width: int


@dataclass(frozen=True)
class ErrorDisplay:
    """Shown in place of the chart after a render fault."""

    message: str
    error_type: str
    recover: Callable[[], None] = field(repr=False, compare=False)

    header: str = "Something went wrong:"
    action_label: str = "Try again"


Renderer = Callable[[RenderInput], Any]
CacheReadyListener = Callable[[int, int], None]


class RenderGate:
    """
    Failure boundary around the external chart renderer.

    Notes
    - `render()` calls the renderer with the current state and avatar cache.
      Any exception it raises is caught; the gate then shows an ErrorDisplay
      and stops calling the renderer until `recover()`.
    - `recover()` resets the whole state (tasks and owners) to the default.
    - `on_cache_ready(generation)` is wired as the preload cache's ready
      callback; it bumps `preload_counter`, publishes a cache-ready event and
      re-renders so newly available avatars get drawn.
    """

    def __init__(
        self,
        store: StateStore,
        cache: ImagePreloadCache,
        renderer: Renderer,
        *,
        default: AppState,
        width: int = 0,
    ) -> None:
        self._store = store
        self._cache = cache
        self._renderer = renderer
        self._default = default
        self._width = width
        self._images = ImageLookup(cache)
        self._preload_counter = 0
        self._last_ready_generation: Optional[int] = None
        self._fault: Optional[ErrorDisplay] = None
        self._last_output: Any = None
        self._listeners: List[CacheReadyListener] = []

    @property
    def preload_counter(self) -> int:
        return self._preload_counter

    @property
    def fault(self) -> Optional[ErrorDisplay]:
        return self._fault

    @property
    def last_output(self) -> Any:
        return self._last_output

    @property
    def width(self) -> int:
        return self._width

    # --------------- Public API ---------------
    def render(self) -> Any:
        """Draw the chart; returns the renderer's output or the ErrorDisplay."""
        if self._fault is not None:
            return self._fault

        state = self._store.get()
        frame = RenderInput(
            tasks=tuple(state.tasks),
            owners=MappingProxyType(state.owners),
            images=self._images,
            preload_counter=self._preload_counter,
            width=self._width,
        )
        try:
            output = self._renderer(frame)
        except Exception as ex:
            logger.exception("Chart renderer failed")
            self._fault = ErrorDisplay(
                message=str(ex) or type(ex).__name__,
                error_type=type(ex).__name__,
                recover=self.recover,
            )
            self._last_output = self._fault
            return self._fault

        self._last_output = output
        return output

    def recover(self) -> None:
        logger.info("Resetting tasks and owners to the default dataset")
        self._fault = None
        # Subscribers (the gate included, when wired) re-render from the store
        self._store.set(self._default)

    def resize(self, width: int) -> Any:
        self._width = max(0, int(width))
        return self.render()

    def on_state_change(self, _state: AppState) -> None:
        self.render()

    def on_cache_ready(self, generation: int) -> None:
        # Generations only move forward; repeats and stragglers are ignored
        if self._last_ready_generation is not None and generation <= self._last_ready_generation:
            return
        self._last_ready_generation = generation
        self._preload_counter += 1
        for listener in list(self._listeners):
            try:
                listener(generation, self._preload_counter)
            except Exception:
                logger.exception("Cache-ready listener %r failed", listener)
        self.render()

    def subscribe_cache_ready(self, listener: CacheReadyListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe


__all__ = [
    "CacheReadyListener",
    "ErrorDisplay",
    "ImageLookup",
    "RenderGate",
    "RenderInput",
    "Renderer",
]
