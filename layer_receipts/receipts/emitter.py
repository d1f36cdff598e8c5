"""
Notification emitter.

Publishes one job per qualifying message, named after the original
(non-receipts) hook so the application's own worker picks it up. Publish
failures are retried with exponential backoff; once retries run out the
notification is logged and dropped.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from layer_receipts.infrastructure.observability.logging import get_logger
from layer_receipts.services.redis_client import RedisClientError
from layer_receipts.tasks.contracts import RetryPolicy
from layer_receipts.tasks.queue import TaskScheduler
from layer_receipts.webhooks.models import MessageSnapshot

logger = get_logger(__name__)

PUBLISH_ATTEMPTS = 10
PUBLISH_BACKOFF_SECONDS = 1.0
NOTIFICATION_RETRY_POLICY = RetryPolicy(attempts=10, backoff_ms=1000)


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "Retrying notification publish",
        attempt=retry_state.attempt_number,
        exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
    )


class NotificationEmitter:
    def __init__(
        self,
        scheduler: TaskScheduler,
        attempts: int = PUBLISH_ATTEMPTS,
        backoff_seconds: float = PUBLISH_BACKOFF_SECONDS,
        job_retry_policy: RetryPolicy = NOTIFICATION_RETRY_POLICY,
    ):
        self.scheduler = scheduler
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.job_retry_policy = job_retry_policy

    async def emit(
        self,
        hook_name: str,
        snapshot: MessageSnapshot,
        recipients: Sequence[str],
        identities: dict[str, dict[str, Any] | None],
    ) -> str | None:
        """
        Publish the notification job.

        Args:
            hook_name: Original hook name; used as the job's task type.
            snapshot: Message the recipients have not progressed on.
            recipients: User ids still in a watched status, in stored order.
            identities: Identity records keyed by user id (may be empty).

        Returns:
            The job's task id, or None if publishing was abandoned.
        """
        payload = {
            "message": snapshot.to_payload(),
            "recipients": list(recipients),
            "identities": identities,
        }

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.attempts),
                wait=wait_exponential(multiplier=self.backoff_seconds),
                retry=retry_if_exception_type((RedisClientError, ConnectionError, TimeoutError)),
                before_sleep=_log_retry,
                reraise=True,
            ):
                with attempt:
                    task_id = await self.scheduler.schedule(
                        hook_name, payload, retry_policy=self.job_retry_policy
                    )
        except (RedisClientError, ConnectionError, TimeoutError) as e:
            logger.error(
                "Unable to publish receipt notification; dropping it",
                failed_at=datetime.now(UTC).isoformat(),
                hook=hook_name,
                message_id=snapshot.id,
                attempts=self.attempts,
                error=str(e),
            )
            return None

        logger.info(
            "Receipt notification published",
            hook=hook_name,
            message_id=snapshot.id,
            recipients=len(recipients),
            task_id=task_id,
        )
        return task_id
