from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Protocol, Set, Tuple

from .avatars import ImageCacheEntry


logger = logging.getLogger(__name__)

ReadyCallback = Callable[[int], None]


class AvatarFetcher(Protocol):
    def fetch(self, url: str) -> Awaitable[ImageCacheEntry]: ...


@dataclass
class _Generation:
    token: int
    owners: Mapping[str, Any]
    entries: Dict[str, ImageCacheEntry] = field(default_factory=dict)
    requested: int = 0
    failed: int = 0
    ready: bool = False
    join: Optional["asyncio.Task[None]"] = None


def avatar_requests(owners: Mapping[str, Any]) -> Iterator[Tuple[str, str]]:
    """Yield (owner_key, avatar_url) for every owner with a non-empty string avatar."""
    for key, owner in owners.items():
        avatar = owner.get("avatar") if isinstance(owner, dict) else None
        if isinstance(avatar, str) and avatar:
            yield key, avatar


class ImagePreloadCache:
    """
    Per-generation avatar cache with a fan-in readiness signal.

    - `preload(owners, generation)` starts a new generation with an empty
      container and fetches every avatar concurrently. The previous generation
      becomes unreachable and its join is cancelled, so its fetches give their
      slots back and never write into the new container.
    - `on_ready(generation)` fires exactly once per generation, after every
      fetch of that generation has settled. A generation without avatars is
      ready as soon as its join runs.
    - A fetch that fails or exceeds `fetch_timeout` settles without an entry;
      the renderer draws a placeholder for that owner.

    Must be driven from a running event loop.
    """

    def __init__(
        self,
        fetcher: AvatarFetcher,
        *,
        on_ready: Optional[ReadyCallback] = None,
        fetch_timeout: Optional[float] = 10.0,
        max_concurrent: int = 8,
    ) -> None:
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be > 0")
        self._fetcher = fetcher
        self._on_ready = on_ready
        self._fetch_timeout = fetch_timeout
        self._slots = asyncio.Semaphore(max_concurrent)
        self._current: Optional[_Generation] = None
        self._joins: Set["asyncio.Task[None]"] = set()

    @property
    def generation(self) -> Optional[int]:
        return self._current.token if self._current is not None else None

    @property
    def is_ready(self) -> bool:
        return self._current is not None and self._current.ready

    def set_on_ready(self, callback: Optional[ReadyCallback]) -> None:
        self._on_ready = callback

    # --------------- Public API ---------------
    def preload(self, owners: Mapping[str, Any], generation: int) -> "asyncio.Task[None]":
        loop = asyncio.get_running_loop()
        gen = _Generation(token=generation, owners=owners)
        requests = list(avatar_requests(owners))
        gen.requested = len(requests)
        previous = self._current
        self._current = gen
        if previous is not None and previous.join is not None and not previous.join.done():
            previous.join.cancel()

        join = loop.create_task(self._join(gen, requests), name=f"avatar-preload-{generation}")
        gen.join = join
        self._joins.add(join)
        join.add_done_callback(self._joins.discard)
        logger.debug("Preloading %d avatars for generation %d", gen.requested, generation)
        return join

    def lookup(self, owner_key: str) -> Optional[ImageCacheEntry]:
        """Entry for `owner_key` in the current generation, or None if not (yet) loaded."""
        gen = self._current
        if gen is None:
            return None
        return gen.entries.get(owner_key)

    def get(self, owner: Any) -> Optional[ImageCacheEntry]:
        """Entry for an owner record, matched by identity against the current owners mapping."""
        gen = self._current
        if gen is None:
            return None
        for key, candidate in gen.owners.items():
            if candidate is owner:
                return gen.entries.get(key)
        return None

    def snapshot(self) -> Dict[str, ImageCacheEntry]:
        gen = self._current
        return dict(gen.entries) if gen is not None else {}

    async def wait_ready(self) -> None:
        """Wait until the generation current at return time has finished its join."""
        while True:
            gen = self._current
            if gen is None or gen.join is None:
                return
            # asyncio.wait does not raise when a superseded join is cancelled
            await asyncio.wait({gen.join})
            if gen is self._current:
                return

    async def aclose(self) -> None:
        pending: List["asyncio.Task[None]"] = [t for t in self._joins if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._joins.clear()

    # --------------- Internal ---------------
    async def _join(self, gen: _Generation, requests: List[Tuple[str, str]]) -> None:
        await asyncio.gather(*(self._load(gen, key, url) for key, url in requests))

        if gen is not self._current:
            logger.debug("Generation %d superseded before it was ready", gen.token)
            return
        if gen.ready:
            return
        gen.ready = True
        logger.info(
            "Avatars ready for generation %d (%d loaded, %d failed)",
            gen.token,
            len(gen.entries),
            gen.failed,
        )
        if self._on_ready is not None:
            try:
                self._on_ready(gen.token)
            except Exception:
                logger.exception("Ready callback failed for generation %d", gen.token)

    async def _load(self, gen: _Generation, key: str, url: str) -> None:
        try:
            async with self._slots:
                if gen is not self._current:
                    return
                if self._fetch_timeout is None:
                    entry = await self._fetcher.fetch(url)
                else:
                    entry = await asyncio.wait_for(self._fetcher.fetch(url), self._fetch_timeout)
        except asyncio.TimeoutError:
            gen.failed += 1
            logger.warning("Avatar for %r timed out after %.1fs: %s", key, self._fetch_timeout, url)
            return
        except Exception as ex:
            gen.failed += 1
            logger.warning("Avatar for %r failed to load from %s: %s", key, url, ex)
            return

        # Stale generations never touch the current container
        if gen is not self._current:
            return
        gen.entries.setdefault(key, entry)


__all__ = ["AvatarFetcher", "ImagePreloadCache", "ReadyCallback", "avatar_requests"]
