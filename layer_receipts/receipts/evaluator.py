"""
Recipient evaluator - runs when a delayed receipt check fires.

The snapshot is taken (read and removed atomically), so a redelivered
check finds nothing and exits. A missing snapshot or an empty recipient
list is a normal outcome, not an error.
"""

from collections.abc import Iterable
from typing import Any

from layer_receipts.hooks.definitions import ReceiptHookConfig
from layer_receipts.infrastructure.observability.logging import get_logger
from layer_receipts.receipts.emitter import NotificationEmitter
from layer_receipts.receipts.identities import IdentityEnricher
from layer_receipts.receipts.store import ReceiptStateStore
from layer_receipts.webhooks.models import MessageSnapshot

logger = get_logger(__name__)


def filter_recipients(snapshot: MessageSnapshot, watched_statuses: Iterable[str]) -> list[str]:
    """User ids whose status is any of the watched ones, in stored order."""
    watched = set(watched_statuses)
    return [user_id for user_id, status in snapshot.recipient_status.items() if status in watched]


class RecipientEvaluator:
    def __init__(
        self,
        hook: ReceiptHookConfig,
        store: ReceiptStateStore,
        enricher: IdentityEnricher,
        emitter: NotificationEmitter,
    ):
        self.hook = hook
        self.store = store
        self.enricher = enricher
        self.emitter = emitter

    async def handle_check(self, payload: dict[str, Any]) -> None:
        """Task handler for `<hook> delayed-job` tasks."""
        message_id = payload.get("messageId")
        if not message_id:
            logger.warning("Receipt check without message id", hook=self.hook.name)
            return
        await self.evaluate(message_id)

    async def evaluate(self, message_id: str) -> list[str]:
        logger.debug("Processing receipt check", hook=self.hook.name, message_id=message_id)

        snapshot = await self.store.take(self.hook.name, message_id)
        if snapshot is None:
            logger.debug("No snapshot for message; nothing to check", hook=self.hook.name, message_id=message_id)
            return []

        recipients = filter_recipients(snapshot, self.hook.receipts.watched_statuses)
        if not recipients:
            logger.debug("All recipients progressed", hook=self.hook.name, message_id=message_id)
            return []

        identities = await self.enricher.enrich(snapshot.sender.user_id, recipients)
        await self.emitter.emit(self.hook.original_name, snapshot, recipients, identities)
        return recipients
