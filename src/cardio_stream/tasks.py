"""
Background Tasks
================

asyncio.create_task with failure logging. Nobody awaits these tasks
until shutdown, so an exception is logged as soon as the task dies.
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional


logger = logging.getLogger(__name__)


def log_task_failure(task: asyncio.Task) -> None:
    """Done callback that logs a task's exception; cancellation is silent."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Task {task.get_name()} failed: {error!r}", exc_info=error)


def spawn(coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(log_task_failure)
    return task
