from __future__ import annotations

import json
from typing import Any


INDENT = 2


class ParseError(ValueError):
    """Raised when editor text is not valid JSON.

    Expected while the user is typing; callers treat it as a no-op.
    """

    def __init__(self, message: str, *, line: int = 0, column: int = 0) -> None:
        super().__init__(message)
        self.line = line
        self.column = column


def encode(value: Any) -> str:
    """Render a dataset as the editable text shown in the editor.

    Formatting is stable: encoding an unchanged value twice yields identical
    text. Key order is preserved as the user wrote it.
    """
    return json.dumps(value, indent=INDENT, ensure_ascii=False)


def decode(text: str) -> Any:
    """Parse editor text back into a value, raising ParseError on bad input."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as ex:
        raise ParseError(f"{ex.msg} (line {ex.lineno}, column {ex.colno})", line=ex.lineno, column=ex.colno) from ex
    except (TypeError, RecursionError) as ex:
        raise ParseError(str(ex) or "Unparseable input") from ex


def is_owners_shape(value: Any) -> bool:
    """Owners must be a mapping: not null, not a list."""
    return isinstance(value, dict)


def is_tasks_shape(value: Any) -> bool:
    return isinstance(value, list)


__all__ = [
    "ParseError",
    "decode",
    "encode",
    "is_owners_shape",
    "is_tasks_shape",
]
