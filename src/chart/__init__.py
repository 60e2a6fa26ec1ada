"""
Chart rendering boundary.

The drawing itself is done by an external renderer; this package wraps it in
a failure boundary and feeds it state plus preloaded avatars.
"""

from .gate import ErrorDisplay, RenderGate, RenderInput

__all__ = ["ErrorDisplay", "RenderGate", "RenderInput"]
