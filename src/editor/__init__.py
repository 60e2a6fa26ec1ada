from .defaults import default_state
from .session import EditorSession

__all__ = ["EditorSession", "default_state"]
