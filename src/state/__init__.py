"""
Canonical state and its derived representations.

This package defines the in-memory AppState, the editable text codec, the
URL-safe persisted encoding and the store that keeps them in step.
"""

from .models import AppState, OwnerInfo, Task
from .store import StateStore

__all__ = ["AppState", "OwnerInfo", "StateStore", "Task"]
