"""
Redis backed delayed task queue.

Every task type gets its own sorted set. The score is the earliest time
(epoch ms) the task may run; the member is the JSON envelope. Claiming
is atomic so two workers never receive the same task.
"""

import time
from typing import Any, Protocol

from layer_receipts.config import settings
from layer_receipts.infrastructure.observability.logging import get_logger
from layer_receipts.services.redis_client import RedisClient
from layer_receipts.tasks.contracts import DEFAULT_RETRY_POLICY, RetryPolicy, TaskEnvelope

logger = get_logger(__name__)


class TaskScheduler(Protocol):
    """Anything able to run a named task later."""

    async def schedule(
        self,
        task_type: str,
        payload: dict[str, Any],
        delay_ms: int = 0,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> str:
        """Schedule a task and return its id."""
        ...


def _now_ms() -> float:
    return time.time() * 1000


class RedisTaskQueue:
    """TaskScheduler implementation on top of Redis sorted sets."""

    def __init__(self, client: RedisClient, prefix: str | None = None):
        self.client = client
        self.prefix = prefix or settings.TASK_QUEUE_PREFIX

    def queue_key(self, task_type: str) -> str:
        return f"{self.prefix}:{task_type}"

    async def schedule(
        self,
        task_type: str,
        payload: dict[str, Any],
        delay_ms: int = 0,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ) -> str:
        envelope = TaskEnvelope(
            task_type=task_type,
            payload=payload,
            max_attempts=retry_policy.attempts,
            backoff_ms=retry_policy.backoff_ms,
        )
        await self.enqueue(envelope, delay_ms)
        return envelope.task_id

    async def enqueue(self, envelope: TaskEnvelope, delay_ms: int = 0) -> None:
        """Put an envelope (new or retried) back on its queue."""
        due_at = _now_ms() + max(delay_ms, 0)
        await self.client.add_scheduled(self.queue_key(envelope.task_type), envelope.to_json(), due_at)
        logger.debug(
            "Task scheduled",
            task_type=envelope.task_type,
            task_id=envelope.task_id,
            attempt=envelope.attempt,
            delay_ms=delay_ms,
        )

    async def claim_due(self, task_type: str, limit: int) -> list[TaskEnvelope]:
        """Remove and return up to `limit` tasks of `task_type` that are due."""
        raw_items = await self.client.pop_due(self.queue_key(task_type), _now_ms(), limit)
        envelopes = []
        for raw in raw_items:
            try:
                envelopes.append(TaskEnvelope.from_json(raw))
            except (ValueError, KeyError, TypeError) as e:
                logger.error(
                    "Discarding malformed task",
                    task_type=task_type,
                    raw_preview=raw[:60],
                    error=str(e),
                )
        return envelopes
