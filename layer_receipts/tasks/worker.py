"""
Task worker that drains the delayed queues.

Handlers are registered per task type. Any exception escaping a handler
is treated as transient: the task is re-queued with exponential backoff
until its retry policy is exhausted, then logged and dropped.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from layer_receipts.config import settings
from layer_receipts.infrastructure.observability.logging import get_logger
from layer_receipts.services.redis_client import RedisClientError
from layer_receipts.tasks.contracts import TaskEnvelope
from layer_receipts.tasks.queue import RedisTaskQueue

logger = get_logger(__name__)

TaskHandler = Callable[[dict[str, Any]], Awaitable[None]]


class UnknownTaskTypeError(ValueError):
    """Raised when a task type has no registered handler."""


class TaskWorker:
    """Polls registered task types and runs due tasks concurrently."""

    def __init__(
        self,
        queue: RedisTaskQueue,
        concurrency: int | None = None,
        poll_interval: float | None = None,
    ):
        self.queue = queue
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL_SECONDS
        )
        self._handlers: dict[str, TaskHandler] = {}
        self._semaphore = asyncio.Semaphore(self.concurrency)
        self._stop_event = asyncio.Event()

    @property
    def task_types(self) -> list[str]:
        return list(self._handlers)

    def process(self, task_type: str, handler: TaskHandler) -> None:
        """Register the handler for a task type."""
        if task_type in self._handlers:
            logger.warning("Replacing task handler", task_type=task_type)
        self._handlers[task_type] = handler

    def handler_for(self, task_type: str) -> TaskHandler:
        try:
            return self._handlers[task_type]
        except KeyError:
            raise UnknownTaskTypeError(f"No handler registered for task type '{task_type}'") from None

    async def run_once(self) -> int:
        """Claim and run every due task once. Returns the number of tasks run."""
        claimed: list[TaskEnvelope] = []
        for task_type in self.task_types:
            claimed.extend(await self.queue.claim_due(task_type, self.concurrency))

        if claimed:
            await asyncio.gather(*(self._execute(envelope) for envelope in claimed))
        return len(claimed)

    async def run_forever(self) -> None:
        logger.info(
            "Task worker started",
            task_types=self.task_types,
            concurrency=self.concurrency,
        )
        self._stop_event.clear()
        while not self._stop_event.is_set():
            try:
                processed = await self.run_once()
            except RedisClientError as e:
                logger.error("Task worker poll failed", error=str(e))
                processed = 0

            if processed == 0:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                except TimeoutError:
                    pass
        logger.info("Task worker stopped")

    def stop(self) -> None:
        self._stop_event.set()

    async def _execute(self, envelope: TaskEnvelope) -> None:
        async with self._semaphore:
            handler = self.handler_for(envelope.task_type)
            try:
                await handler(envelope.payload)
            except Exception as e:
                await self._handle_failure(envelope, e)
            else:
                logger.debug(
                    "Task completed",
                    task_type=envelope.task_type,
                    task_id=envelope.task_id,
                    attempt=envelope.attempt,
                )

    async def _handle_failure(self, envelope: TaskEnvelope, error: Exception) -> None:
        if not envelope.has_attempts_left():
            logger.error(
                "Task failed permanently",
                failed_at=datetime.now(UTC).isoformat(),
                task_type=envelope.task_type,
                task_id=envelope.task_id,
                attempts=envelope.attempt,
                error=str(error),
                error_type=type(error).__name__,
            )
            return

        delay_ms = envelope.retry_policy.delay_for(envelope.attempt)
        logger.warning(
            "Task failed, retrying",
            task_type=envelope.task_type,
            task_id=envelope.task_id,
            attempt=envelope.attempt,
            max_attempts=envelope.max_attempts,
            retry_in_ms=delay_ms,
            error=str(error),
        )
        try:
            await self.queue.enqueue(envelope.next_attempt(), delay_ms)
        except RedisClientError as e:
            logger.error(
                "Unable to re-queue failed task",
                failed_at=datetime.now(UTC).isoformat(),
                task_type=envelope.task_type,
                task_id=envelope.task_id,
                error=str(e),
            )
