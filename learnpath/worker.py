"""Background worker process.

RUN:  python -m learnpath.worker

Same image as the API, different command:
  api:    uvicorn learnpath.main:app --host 0.0.0.0 --port 8000
  worker: python -m learnpath.worker

The loop polls every registered queue round-robin, hands each task to
its handler and logs the outcome.  A failed task is logged and dropped;
the API enqueues a fresh one the next time the same failure happens.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from learnpath.core.config import SETTINGS
from learnpath.core.logging import setup_logging
from learnpath.core.metrics import QUEUE_DEPTH
from learnpath.services.progress_service import progress_service
from learnpath.services.task_queue import COMPLETION_SIDE_EFFECTS, task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("learnpath.worker")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Task handlers
# ---------------------------------------------------------------------------


@register_handler(COMPLETION_SIDE_EFFECTS)
async def handle_completion_side_effects(payload: dict) -> None:
    """Finish the enrollment counters and completion effects a write left owed."""
    user_id = payload["user_id"]
    course_id = payload["course_id"]
    result = await progress_service.replay_completion(user_id, course_id)
    if result is None:
        return
    logger.info(
        "Replayed completion user=%s course=%s certificate_issued=%s",
        user_id,
        course_id,
        result.certificate_issued,
    )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def run_once(timeout: int = 1) -> int:
    """One pass over every queue. Returns how many tasks were handled."""
    handled = 0
    for queue_name, handler in HANDLERS.items():
        task = await task_queue.dequeue(queue_name, timeout=timeout)
        QUEUE_DEPTH.labels(queue_name=queue_name).set(
            await task_queue.queue_length(queue_name)
        )
        if task is None:
            continue

        handled += 1
        try:
            await handler(task.payload)
            logger.info("Task %s on [%s] completed", task.id, queue_name)
        except Exception:
            logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return handled


async def run_worker() -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    logger.info("Worker started, listening on queues: %s", list(HANDLERS))
    while True:
        await run_once()


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
