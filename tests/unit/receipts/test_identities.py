from unittest.mock import AsyncMock

import pytest

from layer_receipts.hooks.definitions import IdentityMode, ReceiptConfig
from layer_receipts.receipts.identities import IdentityEnricher


@pytest.mark.asyncio
async def test_off_mode_returns_empty_mapping():
    enricher = IdentityEnricher(IdentityMode.OFF)
    assert await enricher.enrich("sender-1", ["A", "B"]) == {}


@pytest.mark.asyncio
async def test_lookup_covers_sender_and_recipients_once():
    lookup = AsyncMock(side_effect=lambda user_id: {"id": user_id})
    enricher = IdentityEnricher(IdentityMode.BUILTIN, lookup)

    identities = await enricher.enrich("sender-1", ["A", "B", "A"])

    assert list(identities) == ["sender-1", "A", "B"]
    assert lookup.await_count == 3


@pytest.mark.asyncio
async def test_failed_lookup_yields_none_for_that_user_only():
    async def lookup(user_id):
        if user_id == "B":
            raise RuntimeError("directory timeout")
        return {"id": user_id}

    enricher = IdentityEnricher(IdentityMode.CUSTOM, lookup)

    assert await enricher.enrich("sender-1", ["A", "B"]) == {
        "sender-1": {"id": "sender-1"},
        "A": {"id": "A"},
        "B": None,
    }


def test_non_off_mode_requires_lookup():
    with pytest.raises(ValueError):
        IdentityEnricher(IdentityMode.BUILTIN)


def test_for_receipts_picks_lookup_by_mode():
    async def custom(user_id):
        return None

    async def directory(user_id):
        return None

    statuses = frozenset({"sent"})
    builtin = IdentityEnricher.for_receipts(
        ReceiptConfig(delay_ms=1, watched_statuses=statuses, identity_mode=IdentityMode.BUILTIN), directory
    )
    own = IdentityEnricher.for_receipts(
        ReceiptConfig(delay_ms=1, watched_statuses=statuses, identity_mode=IdentityMode.CUSTOM, resolver=custom),
        directory,
    )
    off = IdentityEnricher.for_receipts(ReceiptConfig(delay_ms=1, watched_statuses=statuses), directory)

    assert builtin.lookup is directory
    assert own.lookup is custom
    assert off.mode is IdentityMode.OFF
