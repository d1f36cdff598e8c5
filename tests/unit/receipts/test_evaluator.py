import json

import pytest

from layer_receipts.hooks.definitions import IdentityMode
from layer_receipts.receipts.emitter import NotificationEmitter
from layer_receipts.receipts.evaluator import RecipientEvaluator, filter_recipients
from layer_receipts.receipts.identities import IdentityEnricher
from layer_receipts.receipts.store import ReceiptStateStore
from layer_receipts.webhooks.models import MessageSnapshot

HOOK = "Message Read Monitor:receipts"


@pytest.fixture
def store(fake_redis):
    return ReceiptStateStore(fake_redis, prefix="layer-webhooks-")


@pytest.fixture
def evaluator(store, fake_scheduler, receipt_hook):
    emitter = NotificationEmitter(fake_scheduler, backoff_seconds=0)
    return RecipientEvaluator(receipt_hook, store, IdentityEnricher(IdentityMode.OFF), emitter)


def test_filter_keeps_watched_statuses_in_stored_order(make_message):
    snapshot = MessageSnapshot.model_validate(
        make_message(recipient_status={"C": "read", "B": "delivered", "A": "sent"})
    )
    assert filter_recipients(snapshot, {"sent", "delivered"}) == ["B", "A"]


@pytest.mark.asyncio
async def test_check_notifies_lagging_recipients(evaluator, store, fake_redis, fake_scheduler, make_message):
    await store.track(HOOK, MessageSnapshot.model_validate(make_message()))

    await evaluator.handle_check({"title": "Process undelivered message", "messageId": "msg-1"})

    [job] = fake_scheduler.of_type("Message Read Monitor")
    assert job["payload"]["recipients"] == ["A", "B"]
    assert job["payload"]["identities"] == {}
    assert job["payload"]["message"]["id"] == "msg-1"
    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_redelivered_check_is_a_no_op(evaluator, store, fake_scheduler, make_message):
    await store.track(HOOK, MessageSnapshot.model_validate(make_message()))

    assert await evaluator.evaluate("msg-1") == ["A", "B"]
    assert await evaluator.evaluate("msg-1") == []
    assert len(fake_scheduler.scheduled) == 1


@pytest.mark.asyncio
async def test_deleted_message_cancels_check(evaluator, store, fake_scheduler, make_message):
    await store.track(HOOK, MessageSnapshot.model_validate(make_message()))
    await store.delete(HOOK, "msg-1")

    assert await evaluator.evaluate("msg-1") == []
    assert fake_scheduler.scheduled == []


@pytest.mark.asyncio
async def test_everyone_progressed_emits_nothing(evaluator, store, fake_redis, fake_scheduler, make_message):
    await store.track(
        HOOK, MessageSnapshot.model_validate(make_message(recipient_status={"A": "read", "B": "read"}))
    )

    assert await evaluator.evaluate("msg-1") == []
    assert fake_scheduler.scheduled == []
    assert fake_redis.store == {}


@pytest.mark.asyncio
async def test_unreadable_snapshot_is_discarded(evaluator, fake_redis, fake_scheduler):
    fake_redis.store[f"layer-webhooks-{HOOK}-msg-1"] = "{not json"

    assert await evaluator.evaluate("msg-1") == []
    assert fake_scheduler.scheduled == []


@pytest.mark.asyncio
async def test_identities_are_attached(store, fake_scheduler, receipt_hook, make_message):
    async def lookup(user_id):
        return {"display_name": user_id.upper()}

    evaluator = RecipientEvaluator(
        receipt_hook,
        store,
        IdentityEnricher(IdentityMode.CUSTOM, lookup),
        NotificationEmitter(fake_scheduler, backoff_seconds=0),
    )
    await store.track(HOOK, MessageSnapshot.model_validate(make_message()))

    await evaluator.evaluate("msg-1")

    [job] = fake_scheduler.scheduled
    assert job["payload"]["identities"] == {
        "sender-1": {"display_name": "SENDER-1"},
        "A": {"display_name": "A"},
        "B": {"display_name": "B"},
    }
    assert json.dumps(job["payload"])


@pytest.mark.asyncio
async def test_failed_identity_lookup_still_publishes(store, fake_scheduler, receipt_hook, make_message):
    async def lookup(user_id):
        if user_id == "B":
            raise TimeoutError("directory unavailable")
        return {"display_name": user_id}

    evaluator = RecipientEvaluator(
        receipt_hook,
        store,
        IdentityEnricher(IdentityMode.CUSTOM, lookup),
        NotificationEmitter(fake_scheduler, backoff_seconds=0),
    )
    await store.track(HOOK, MessageSnapshot.model_validate(make_message()))

    assert await evaluator.evaluate("msg-1") == ["A", "B"]

    [job] = fake_scheduler.of_type("Message Read Monitor")
    assert job["payload"]["recipients"] == ["A", "B"]
    assert job["payload"]["identities"]["sender-1"] == {"display_name": "sender-1"}
    assert job["payload"]["identities"]["A"] == {"display_name": "A"}
    assert job["payload"]["identities"]["B"] is None
