from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from chart.gate import ErrorDisplay, RenderInput, Renderer
from common.config import get_settings
from common.logging_setup import setup_logging
from common.preload import AvatarFetcher

from .session import EditorSession


def summarize_frame(frame: RenderInput) -> Dict[str, Any]:
    """Headless stand-in renderer: reports what a chart would be able to draw."""
    unknown_owners = 0
    with_avatar = 0
    for task in frame.tasks:
        owner_key = task.get("owner") if isinstance(task, dict) else None
        if owner_key is None:
            continue
        if owner_key not in frame.owners:
            unknown_owners += 1
            continue
        if frame.images(owner_key) is not None:
            with_avatar += 1
    return {
        "tasks": len(frame.tasks),
        "owners": len(frame.owners),
        "tasks_with_avatar": with_avatar,
        "tasks_with_unknown_owner": unknown_owners,
    }


async def run_once(
    href: str,
    *,
    renderer: Renderer = summarize_frame,
    fetcher: Optional[AvatarFetcher] = None,
    width: int = 1024,
) -> Dict[str, Any]:
    """Open the dataset embedded in `href`, preload avatars and render once."""
    async with EditorSession(href, renderer, fetcher=fetcher, width=width) as session:
        await session.cache.wait_ready()
        output = session.gate.render()
        if isinstance(output, ErrorDisplay):
            return {"ok": False, "error": output.message, "share_url": session.share_url}
        return {
            "ok": True,
            "generation": session.cache.generation,
            "avatars": len(session.cache.snapshot()),
            "render": output,
            "share_url": session.share_url,
        }


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Load a shared chart link and report what it contains.")
    parser.add_argument("url", help="Shared link; the dataset is read from its query string")
    parser.add_argument("--width", type=int, default=1024)
    args = parser.parse_args(argv)

    setup_logging(level=get_settings().log_level)
    result = asyncio.run(run_once(args.url, width=args.width))
    json.dump(result, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
