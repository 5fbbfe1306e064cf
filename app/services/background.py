from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

Dispatcher = Callable[..., None]


def spawn_thread(target: Callable[..., Any], *args: Any, name: str = "") -> None:
    """Run ``target(*args)`` on a detached daemon thread.

    ``target`` owns its own error handling; anything that still escapes is
    logged here so the thread never dies silently.
    """

    def _worker() -> None:
        try:
            target(*args)
        except Exception:
            logger.exception("Background task %s crashed", name or getattr(target, "__name__", "task"))

    threading.Thread(target=_worker, name=name or None, daemon=True).start()


def run_inline(target: Callable[..., Any], *args: Any, name: str = "") -> None:
    """Synchronous dispatcher: runs the task before returning."""
    target(*args)


def get_dispatcher(mode: str) -> Dispatcher:
    if (mode or "").strip().lower() == "inline":
        return run_inline
    return spawn_thread
