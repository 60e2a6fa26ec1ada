from __future__ import annotations

from state.models import AppState, OwnerInfo, Task


DEFAULT_OWNERS = {
    "bvaughn": OwnerInfo(name="Brian Vaughn", avatar="https://avatars.githubusercontent.com/u/29597?v=4"),
    "lunaruan": OwnerInfo(name="Luna Ruan", avatar="https://avatars.githubusercontent.com/u/9073018?v=4"),
    "rickhanlonii": OwnerInfo(name="Ricky Hanlon", avatar="https://avatars.githubusercontent.com/u/2440089?v=4"),
    "team": OwnerInfo(name="Whole team"),
}

DEFAULT_TASKS = [
    Task(id=1, name="Scope the timeline view", start="2024-01-08", end="2024-01-19", owner="bvaughn"),
    Task(id=2, name="Owner directory editor", start="2024-01-15", end="2024-02-02", owner="lunaruan"),
    Task(id=3, name="Shareable links", start="2024-01-22", end="2024-02-09", owner="rickhanlonii", dependency=2),
    Task(id=4, name="Avatar preloading", start="2024-02-05", end="2024-02-16", owner="bvaughn", dependency=1),
    Task(id=5, name="Release", start="2024-02-19", end="2024-02-20", owner="team", isMilestone=True),
]


def default_state() -> AppState:
    """The dataset shown on first load and restored by a reset."""
    return AppState.from_records(DEFAULT_TASKS, DEFAULT_OWNERS)
