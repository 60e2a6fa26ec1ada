from __future__ import annotations

import logging
import sys
from typing import Iterable, Union


PROJECT_LOGGERS = ("state", "common", "chart", "editor")


class _ThirdPartyNoiseFilter(logging.Filter):
    """
    Keep our own loggers; let third-party records (httpx, httpcore, PIL, asyncio)
    through only at WARNING and above.
    """

    def __init__(self, own: Iterable[str] = PROJECT_LOGGERS) -> None:
        super().__init__()
        self._own = tuple(own)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if any(name == p or name.startswith(p + ".") for p in self._own):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(*, level: Union[int, str] = logging.INFO) -> None:
    """
    Install one stderr handler on the root logger.

    Call once at startup; calling again replaces the handler instead of
    stacking duplicates.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        if getattr(h, "_gantt_sync", False):
            root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(level)
    ch.setFormatter(fmt)
    ch.addFilter(_ThirdPartyNoiseFilter())
    ch._gantt_sync = True  # type: ignore[attr-defined]
    root.addHandler(ch)

    logging.captureWarnings(True)
