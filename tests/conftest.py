import pytest

from layer_receipts.hooks.definitions import (
    HookConfig,
    IdentityMode,
    ReceiptConfig,
    ReceiptHookConfig,
)
from layer_receipts.services.redis_client import RedisClientError
from layer_receipts.tasks.contracts import DEFAULT_RETRY_POLICY


class FakeRedis:
    """In-memory stand-in for RedisClient (strings + delayed queues)."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.sorted_sets: dict[str, dict[str, float]] = {}
        self.fail_operations: set[str] = set()

    def _check(self, operation: str):
        if operation in self.fail_operations:
            raise RedisClientError(f"{operation} unavailable", operation=operation)

    async def ping(self) -> bool:
        return "ping" not in self.fail_operations

    async def get(self, key: str) -> str | None:
        self._check("get")
        return self.store.get(key)

    async def set(
        self,
        key: str,
        value: str,
        only_if_exists: bool = False,
        only_if_missing: bool = False,
        ttl_seconds: int | None = None,
        keep_ttl: bool = False,
    ) -> bool:
        self._check("set")
        if only_if_exists and key not in self.store:
            return False
        if only_if_missing and key in self.store:
            return False
        self.store[key] = value
        if ttl_seconds is not None:
            self.ttls[key] = ttl_seconds
        elif not keep_ttl:
            self.ttls.pop(key, None)
        return True

    async def exists(self, key: str) -> bool:
        self._check("exists")
        return key in self.store

    async def persist(self, key: str) -> bool:
        self._check("persist")
        return self.ttls.pop(key, None) is not None

    async def delete(self, key: str) -> bool:
        self._check("delete")
        self.ttls.pop(key, None)
        return self.store.pop(key, None) is not None

    async def getdel(self, key: str) -> str | None:
        self._check("getdel")
        self.ttls.pop(key, None)
        return self.store.pop(key, None)

    async def add_scheduled(self, key: str, member: str, score: float) -> bool:
        self._check("zadd")
        self.sorted_sets.setdefault(key, {})[member] = score
        return True

    async def pop_due(self, key: str, max_score: float, limit: int) -> list[str]:
        self._check("pop_due")
        queue = self.sorted_sets.get(key, {})
        due = sorted((score, member) for member, score in queue.items() if score <= max_score)
        popped = [member for _, member in due[:limit]]
        for member in popped:
            del queue[member]
        return popped

    def make_all_due(self) -> None:
        for queue in self.sorted_sets.values():
            for member in queue:
                queue[member] = 0


class FakeScheduler:
    """Records scheduled tasks instead of queueing them."""

    def __init__(self):
        self.scheduled: list[dict] = []
        self.failures_left = 0

    async def schedule(self, task_type, payload, delay_ms=0, retry_policy=DEFAULT_RETRY_POLICY):
        if self.failures_left > 0:
            self.failures_left -= 1
            raise RedisClientError("queue unavailable", operation="zadd")
        task_id = f"task-{len(self.scheduled) + 1}"
        self.scheduled.append(
            {
                "task_id": task_id,
                "task_type": task_type,
                "payload": payload,
                "delay_ms": delay_ms,
                "retry_policy": retry_policy,
            }
        )
        return task_id

    def of_type(self, task_type: str) -> list[dict]:
        return [task for task in self.scheduled if task["task_type"] == task_type]


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def fake_scheduler():
    return FakeScheduler()


@pytest.fixture
def receipt_hook():
    receipts = ReceiptConfig(
        delay_ms=600000,
        watched_statuses=frozenset({"sent", "delivered"}),
        identity_mode=IdentityMode.OFF,
    )
    return ReceiptHookConfig.derive(
        HookConfig(name="Message Read Monitor", path="/message-read-monitor"),
        receipts,
    )


@pytest.fixture
def make_message():
    def _make(message_id="msg-1", recipient_status=None, sender=None, **extra):
        message = {
            "id": message_id,
            "sender": sender if sender is not None else {"user_id": "sender-1"},
            "recipient_status": recipient_status
            if recipient_status is not None
            else {"sender-1": "read", "A": "sent", "B": "delivered", "C": "read"},
            "parts": [{"mime_type": "text/plain", "body": "hello"}],
        }
        message.update(extra)
        return message

    return _make
