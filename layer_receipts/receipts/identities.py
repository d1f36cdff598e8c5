"""
Identity enrichment for receipt notifications.

Looks up the sender and every reported recipient concurrently. A failed
lookup yields None for that user only; the batch always completes.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from layer_receipts.hooks.definitions import IdentityMode, IdentityResolver, ReceiptConfig
from layer_receipts.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

IdentityLookup = Callable[[str], Awaitable[dict[str, Any] | None]]


class IdentityEnricher:
    def __init__(self, mode: IdentityMode, lookup: IdentityLookup | IdentityResolver | None = None):
        if mode is not IdentityMode.OFF and lookup is None:
            raise ValueError(f"Identity mode '{mode.value}' needs a lookup function")
        self.mode = mode
        self.lookup = lookup

    @classmethod
    def for_receipts(cls, receipts: ReceiptConfig, directory: IdentityLookup | None) -> "IdentityEnricher":
        """Pick the lookup matching the hook's identity mode."""
        if receipts.identity_mode is IdentityMode.CUSTOM:
            return cls(IdentityMode.CUSTOM, receipts.resolver)
        if receipts.identity_mode is IdentityMode.BUILTIN:
            return cls(IdentityMode.BUILTIN, directory)
        return cls(IdentityMode.OFF)

    async def enrich(
        self, sender_id: str | None, recipient_ids: Iterable[str]
    ) -> dict[str, dict[str, Any] | None]:
        if self.mode is IdentityMode.OFF:
            return {}

        user_ids = list(dict.fromkeys([uid for uid in [sender_id, *recipient_ids] if uid]))
        results = await asyncio.gather(*(self._resolve(user_id) for user_id in user_ids))
        return dict(zip(user_ids, results, strict=True))

    async def _resolve(self, user_id: str) -> dict[str, Any] | None:
        try:
            return await self.lookup(user_id)
        except Exception as e:
            logger.warning(
                "Identity lookup failed",
                user_id=user_id,
                mode=self.mode.value,
                error=str(e),
            )
            return None
