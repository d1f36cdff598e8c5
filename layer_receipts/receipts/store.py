"""
Receipt state store.

Holds the last known snapshot of each tracked message under
`<prefix><hookName>-<messageId>`. Events for one message can be applied out
of order when a task is retried, so writes follow these rules:
- message.sent never overwrites a snapshot a newer receipt already wrote.
- A receipt for a message whose message.sent has not been applied yet is
  kept, with an expiry in case message.sent never arrives.
- A deleted message is marked closed for a while, so late or retried events
  cannot bring it back.

Tracked snapshots carry no expiry: they are removed when the message is
deleted or when the delayed check consumes them.
"""

import json

from layer_receipts.config import settings
from layer_receipts.infrastructure.observability.logging import get_logger
from layer_receipts.services.redis_client import RedisClient
from layer_receipts.webhooks.models import MessageSnapshot

logger = get_logger(__name__)

DELETED_MARKER_SUFFIX = ":deleted"


class ReceiptStateStore:
    def __init__(
        self,
        client: RedisClient,
        prefix: str | None = None,
        pending_ttl_seconds: int | None = None,
        deleted_ttl_seconds: int | None = None,
    ):
        self.client = client
        self.prefix = prefix if prefix is not None else settings.RECEIPTS_KEY_PREFIX
        self.pending_ttl_seconds = pending_ttl_seconds or settings.RECEIPTS_PENDING_TTL_SECONDS
        self.deleted_ttl_seconds = deleted_ttl_seconds or settings.RECEIPTS_DELETED_TTL_SECONDS

    def key(self, hook_name: str, message_id: str) -> str:
        return f"{self.prefix}{hook_name}-{message_id}"

    def deleted_key(self, hook_name: str, message_id: str) -> str:
        return f"{self.key(hook_name, message_id)}{DELETED_MARKER_SUFFIX}"

    async def track(self, hook_name: str, snapshot: MessageSnapshot) -> bool:
        """
        Start tracking a sent message.

        Returns:
            False when a snapshot was already there (written by a receipt that
            overtook message.sent, or by an earlier attempt). That snapshot is
            kept and made permanent.
        """
        key = self.key(hook_name, snapshot.id)
        created = await self.client.set(key, json.dumps(snapshot.to_payload()), only_if_missing=True)
        if not created:
            await self.client.persist(key)
        return created

    async def record_receipt(self, hook_name: str, snapshot: MessageSnapshot) -> bool:
        """
        Store the snapshot carried by a delivered/read event.

        Returns:
            True when the message was already tracked, False when a pending
            snapshot was written ahead of message.sent.
        """
        key = self.key(hook_name, snapshot.id)
        value = json.dumps(snapshot.to_payload())

        if await self.client.set(key, value, only_if_exists=True, keep_ttl=True):
            return True
        if await self.client.set(key, value, only_if_missing=True, ttl_seconds=self.pending_ttl_seconds):
            return False
        # message.sent landed between the two writes
        await self.client.set(key, value, only_if_exists=True, keep_ttl=True)
        return True

    async def take(self, hook_name: str, message_id: str) -> MessageSnapshot | None:
        """Read and remove the snapshot in one atomic step."""
        raw = await self.client.getdel(self.key(hook_name, message_id))
        return self._decode(hook_name, message_id, raw)

    async def delete(self, hook_name: str, message_id: str) -> bool:
        """Forget the message and close it to later events."""
        await self.client.set(
            self.deleted_key(hook_name, message_id), "1", ttl_seconds=self.deleted_ttl_seconds
        )
        return await self.client.delete(self.key(hook_name, message_id))

    async def is_deleted(self, hook_name: str, message_id: str) -> bool:
        return await self.client.exists(self.deleted_key(hook_name, message_id))

    def _decode(self, hook_name: str, message_id: str, raw: str | None) -> MessageSnapshot | None:
        if raw is None:
            return None
        try:
            return MessageSnapshot.model_validate_json(raw)
        except ValueError as e:
            logger.error(
                "Discarding unreadable snapshot",
                hook=hook_name,
                message_id=message_id,
                error=str(e),
            )
            return None
