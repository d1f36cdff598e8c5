"""Task contracts - envelope and retry policy shared by the queue and the worker."""

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff policy for a scheduled task.

    Attributes:
        attempts: Total number of executions allowed, first run included.
        backoff_ms: Delay before the second attempt; doubles on each retry.
    """

    attempts: int = 10
    backoff_ms: int = 1000

    def delay_for(self, attempt: int) -> int:
        """Delay in ms before re-running a task that just failed `attempt`."""
        return self.backoff_ms * (2 ** (attempt - 1))


DEFAULT_RETRY_POLICY = RetryPolicy()


@dataclass(slots=True)
class TaskEnvelope:
    """Serialized form of a task sitting in the delayed queue."""

    task_type: str
    payload: dict[str, Any]
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempt: int = 1
    max_attempts: int = DEFAULT_RETRY_POLICY.attempts
    backoff_ms: int = DEFAULT_RETRY_POLICY.backoff_ms
    created_at: float = field(default_factory=time.time)

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(attempts=self.max_attempts, backoff_ms=self.backoff_ms)

    def has_attempts_left(self) -> bool:
        return self.attempt < self.max_attempts

    def next_attempt(self) -> "TaskEnvelope":
        return TaskEnvelope(
            task_type=self.task_type,
            payload=self.payload,
            task_id=self.task_id,
            attempt=self.attempt + 1,
            max_attempts=self.max_attempts,
            backoff_ms=self.backoff_ms,
            created_at=self.created_at,
        )

    def to_json(self) -> str:
        return json.dumps(
            {
                "task_id": self.task_id,
                "task_type": self.task_type,
                "payload": self.payload,
                "attempt": self.attempt,
                "max_attempts": self.max_attempts,
                "backoff_ms": self.backoff_ms,
                "created_at": self.created_at,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "TaskEnvelope":
        data = json.loads(raw)
        return cls(
            task_type=data["task_type"],
            payload=data.get("payload") or {},
            task_id=data["task_id"],
            attempt=int(data.get("attempt", 1)),
            max_attempts=int(data.get("max_attempts", DEFAULT_RETRY_POLICY.attempts)),
            backoff_ms=int(data.get("backoff_ms", DEFAULT_RETRY_POLICY.backoff_ms)),
            created_at=float(data.get("created_at", time.time())),
        )
