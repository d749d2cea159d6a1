"""Fire-and-forget side effects that must never fail the primary request."""

import logging
from typing import Any, Callable

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)


def best_effort(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Run `fn`, logging and discarding any exception it raises."""
    try:
        fn(*args, **kwargs)
    except Exception as e:
        logger.warning(
            f"Best-effort task {getattr(fn, '__name__', fn)} failed: "
            f"exception_type={type(e).__name__}, error={e}"
        )


def schedule(
    background_tasks: BackgroundTasks, fn: Callable[..., Any], *args: Any, **kwargs: Any
) -> None:
    """Queue `fn` to run after the response is sent, wrapped in `best_effort`."""
    background_tasks.add_task(best_effort, fn, *args, **kwargs)
