from __future__ import annotations

import asyncio
from typing import Any, List

import pytest

from chart.gate import ErrorDisplay, RenderInput
from common.avatars import ImageCacheEntry
from common.config import Settings
from editor.defaults import default_state
from editor.session import EditorSession
from state.codec import decode, encode
from state.models import AppState
from state.url_store import encode_state, load_state_from_url


BASE = "https://chart.example/"


class _InstantFetcher:
    def __init__(self) -> None:
        self.urls: List[str] = []

    async def fetch(self, url: str) -> ImageCacheEntry:
        self.urls.append(url)
        await asyncio.sleep(0)
        return ImageCacheEntry(image=f"bitmap:{url}", width=16, height=16)


class _Renderer:
    """Raises when a task has no name, like a chart that cannot label a bar."""

    def __init__(self) -> None:
        self.frames: List[RenderInput] = []

    def __call__(self, frame: RenderInput) -> Any:
        self.frames.append(frame)
        labels = [t["name"] for t in frame.tasks]
        return {"labels": labels, "counter": frame.preload_counter}


def _session(href: str = BASE, renderer: Any = None, **kwargs) -> EditorSession:
    kwargs.setdefault("fetcher", _InstantFetcher())
    kwargs.setdefault("settings", Settings(avatar_timeout=1.0))
    return EditorSession(href, renderer or _Renderer(), **kwargs)


@pytest.mark.asyncio
async def test_starts_from_default_and_exposes_texts():
    async with _session() as session:
        default = default_state()
        assert session.store.get() == default
        assert decode(session.tasks_text) == default.tasks
        assert decode(session.owners_text) == default.owners
        assert session.owners_text is session.owners_text  # memoized while unchanged
        assert session.header_summary() == f"{len(default.tasks)} tasks, {len(default.owners)} owners"


@pytest.mark.asyncio
async def test_starts_from_shared_link():
    shared = AppState(tasks=[{"id": "t", "name": "Shared"}], owners={"s": {"name": "Sam"}})
    async with _session(BASE + "?data=" + encode_state(shared)) as session:
        assert session.store.get() == shared


@pytest.mark.asyncio
async def test_owner_edit_then_unterminated_text_keeps_last_value():
    async with _session() as session:
        assert session.on_owners_change('{"a":{"name":"A"}}') is True
        committed = session.store.get().owners
        assert committed == {"a": {"name": "A"}}

        assert session.on_owners_change('{"a":{"name":"A"') is False
        assert session.store.get().owners is committed


@pytest.mark.asyncio
async def test_shape_mismatches_are_rejected():
    async with _session() as session:
        before = session.store.get()

        assert session.on_tasks_change('{"x":1}') is False
        assert session.on_owners_change("[1,2,3]") is False
        assert session.on_owners_change("null") is False

        assert session.store.get() is before


@pytest.mark.asyncio
async def test_accepted_edit_updates_url_and_text():
    async with _session() as session:
        tasks_text = '[{"id": 7, "name": "Only task", "owner": "nobody", "color": "#f00"}]'
        assert session.on_tasks_change(tasks_text) is True

        state = session.store.get()
        assert state.tasks == [{"id": 7, "name": "Only task", "owner": "nobody", "color": "#f00"}]
        assert load_state_from_url(session.share_url) == state
        assert session.tasks_text == encode(state.tasks)


@pytest.mark.asyncio
async def test_tasks_edit_keeps_owner_generation():
    async with _session() as session:
        await session.cache.wait_ready()
        generation = session.store.owners_generation

        session.on_tasks_change("[]")
        assert session.store.owners_generation == generation
        assert session.cache.generation == generation


@pytest.mark.asyncio
async def test_failed_preload_start_is_retried_on_next_change(monkeypatch):
    async with _session() as session:
        await session.cache.wait_ready()
        real_preload = session.cache.preload
        attempts: List[int] = []

        def flaky_preload(owners, generation):
            attempts.append(generation)
            if len(attempts) == 1:
                raise RuntimeError("preload could not start")
            return real_preload(owners, generation)

        monkeypatch.setattr(session.cache, "preload", flaky_preload)
        before = session.cache.generation

        # The store logs the listener failure; the edit itself is accepted
        assert session.on_owners_change('{"n": {"name": "New"}}') is True
        assert session.cache.generation == before

        # A tasks-only edit keeps the owners generation but retries the preload
        session.on_tasks_change("[]")
        assert attempts == [session.store.owners_generation] * 2
        assert session.cache.generation == session.store.owners_generation
        await session.cache.wait_ready()
        assert session.cache.is_ready


@pytest.mark.asyncio
async def test_identical_owner_text_starts_new_generation():
    fetcher = _InstantFetcher()
    async with _session(fetcher=fetcher) as session:
        text = '{"a": {"name": "A", "avatar": "https://img.example/a.png"}}'
        session.on_owners_change(text)
        await session.cache.wait_ready()
        first = session.cache.generation

        session.on_owners_change(text)
        assert session.cache.generation == first + 1
        assert session.cache.lookup("a") is None
        await session.cache.wait_ready()

        assert session.cache.lookup("a") is not None
        assert fetcher.urls.count("https://img.example/a.png") == 2


@pytest.mark.asyncio
async def test_preload_ready_rerenders_with_bumped_counter():
    renderer = _Renderer()
    async with _session(renderer=renderer) as session:
        await session.cache.wait_ready()

        assert session.gate.preload_counter == 1
        assert renderer.frames[-1].preload_counter == 1
        first_owner = next(k for k, v in session.store.get().owners.items() if isinstance(v, dict) and v.get("avatar"))
        assert renderer.frames[-1].images(first_owner) is not None


@pytest.mark.asyncio
async def test_renderer_resolves_avatar_by_owner_record():
    seen: List[Any] = []

    def renderer(frame: RenderInput) -> Any:
        for key, owner in frame.owners.items():
            seen.append((frame.preload_counter, key, frame.images.for_owner(owner), frame.images(key)))
        return None

    async with _session(renderer=renderer) as session:
        await session.cache.wait_ready()

        owners = session.store.get().owners
        with_avatar = [k for k, v in owners.items() if isinstance(v, dict) and v.get("avatar")]
        assert with_avatar
        ready = {key: (by_record, by_key) for counter, key, by_record, by_key in seen if counter == 1}
        for key in with_avatar:
            by_record, by_key = ready[key]
            assert by_record is not None
            assert by_record is by_key
        assert session.cache.get(dict(owners[with_avatar[0]])) is None


@pytest.mark.asyncio
async def test_render_fault_then_recover_restores_default():
    async with _session() as session:
        default = session.default

        # Valid JSON, valid shape, but the renderer cannot draw it
        assert session.on_tasks_change('[{"id": 1}]') is True
        assert session.on_owners_change('{"z": 5}') is True
        display = session.gate.fault
        assert isinstance(display, ErrorDisplay)

        display.recover()

        state = session.store.get()
        assert state == default
        assert state.tasks == default.tasks and state.owners == default.owners
        assert session.gate.fault is None
        assert not isinstance(session.gate.last_output, ErrorDisplay)
        assert load_state_from_url(session.share_url) == default


@pytest.mark.asyncio
async def test_reset_is_available_without_fault():
    async with _session() as session:
        session.on_tasks_change("[]")
        session.reset()
        assert session.store.get() == session.default


@pytest.mark.asyncio
async def test_navigation_hook_sees_every_replacement():
    hrefs: List[str] = []
    async with _session(on_navigate=hrefs.append) as session:
        session.on_tasks_change("[]")
        session.on_tasks_change("not json")
        session.on_owners_change("{}")

        assert len(hrefs) == 2
        assert hrefs[-1] == session.share_url


@pytest.mark.asyncio
async def test_aclose_stops_reacting_to_store():
    session = _session()
    session.start()
    await session.aclose()

    generation = session.cache.generation
    session.store.set(AppState(tasks=[], owners={"n": {"name": "New"}}))
    assert session.cache.generation == generation
