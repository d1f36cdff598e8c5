"""
Receipt tracker - applies message events to the receipt state store.

Per (hook, message) the state moves:
- absent -> tracked on message.sent (snapshot stored, one check armed)
- tracked -> tracked on message.delivered / message.read (snapshot replaced)
- tracked -> absent on message.deleted (an armed check then finds nothing)

A retried message.sent can run after a newer receipt; the store keeps the
newer snapshot in that case (see ReceiptStateStore).
"""

from typing import Any

from pydantic import ValidationError

from layer_receipts.hooks.definitions import ReceiptHookConfig
from layer_receipts.infrastructure.observability.logging import get_logger
from layer_receipts.receipts.scheduler import DelayScheduler
from layer_receipts.receipts.store import ReceiptStateStore
from layer_receipts.webhooks.models import EventTypes, MessageSnapshot

logger = get_logger(__name__)


class ReceiptTracker:
    def __init__(
        self,
        hook: ReceiptHookConfig,
        store: ReceiptStateStore,
        delay_scheduler: DelayScheduler,
    ):
        self.hook = hook
        self.store = store
        self.delay_scheduler = delay_scheduler

    async def handle_event(self, payload: dict[str, Any]) -> None:
        """Task handler for events queued by the receipts hook listener."""
        event_type = payload.get("type")
        raw_message = payload.get("message")
        if not raw_message:
            logger.debug("Ignoring event without message", hook=self.hook.name, event_type=event_type)
            return

        try:
            message = MessageSnapshot.model_validate(raw_message)
        except ValidationError as e:
            logger.warning("Ignoring malformed message", hook=self.hook.name, error=str(e))
            return

        if message.sender.is_platform_service:
            return

        await self.apply(event_type, message)

    async def apply(self, event_type: str | None, message: MessageSnapshot) -> None:
        hook_name = self.hook.name

        if event_type == EventTypes.MESSAGE_DELETED:
            await self.store.delete(hook_name, message.id)
            logger.info("Stopped tracking deleted message", hook=hook_name, message_id=message.id)
            return

        if event_type not in (EventTypes.MESSAGE_SENT, EventTypes.MESSAGE_DELIVERED, EventTypes.MESSAGE_READ):
            logger.debug("Ignoring event type", hook=hook_name, event_type=event_type)
            return

        if await self.store.is_deleted(hook_name, message.id):
            logger.debug(
                "Ignoring event for deleted message",
                hook=hook_name,
                message_id=message.id,
                event_type=event_type,
            )
            return

        if event_type == EventTypes.MESSAGE_SENT:
            created = await self.store.track(hook_name, message)
            await self.delay_scheduler.arm(hook_name, message.id, self.hook.receipts.delay_ms)
            logger.info(
                "Tracking message" if created else "Tracking message with newer receipts",
                hook=hook_name,
                message_id=message.id,
            )
        else:
            tracked = await self.store.record_receipt(hook_name, message)
            logger.debug(
                "Updated message receipts" if tracked else "Stored receipt ahead of message.sent",
                hook=hook_name,
                message_id=message.id,
                event_type=event_type,
            )
