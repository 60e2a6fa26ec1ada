"""
Common utilities for gantt-sync.

Modules:
- avatars: async avatar client (httpx fetch + Pillow decode)
- preload: per-generation avatar cache with a fan-in ready signal
- config: settings from environment variables
- logging_setup: console logging configuration
"""

__all__ = [
    "avatars",
    "config",
    "logging_setup",
    "preload",
]
