"""Arms the delayed receipt check for a message."""

from layer_receipts.hooks.definitions import DELAYED_JOB_SUFFIX
from layer_receipts.infrastructure.observability.logging import get_logger
from layer_receipts.tasks.contracts import RetryPolicy
from layer_receipts.tasks.queue import TaskScheduler

logger = get_logger(__name__)

CHECK_RETRY_POLICY = RetryPolicy(attempts=10, backoff_ms=1000)


def delayed_task_type(hook_name: str) -> str:
    return f"{hook_name}{DELAYED_JOB_SUFFIX}"


class DelayScheduler:
    def __init__(self, scheduler: TaskScheduler, retry_policy: RetryPolicy = CHECK_RETRY_POLICY):
        self.scheduler = scheduler
        self.retry_policy = retry_policy

    async def arm(self, hook_name: str, message_id: str, delay_ms: int) -> str:
        """Schedule one check of `message_id` no earlier than `delay_ms` from now."""
        task_id = await self.scheduler.schedule(
            delayed_task_type(hook_name),
            {"title": "Process undelivered message", "messageId": message_id},
            delay_ms=delay_ms,
            retry_policy=self.retry_policy,
        )
        logger.debug(
            "Receipt check armed",
            hook=hook_name,
            message_id=message_id,
            delay_ms=delay_ms,
            task_id=task_id,
        )
        return task_id
