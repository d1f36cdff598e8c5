from layer_receipts.hooks.definitions import HookConfig
from layer_receipts.webhooks.models import WebhookEvent
from layer_receipts.webhooks.router import RouteOutcome, route, route_malformed, target_hook_name


def _event(config_name: str, message: dict | None = None) -> WebhookEvent:
    body = {
        "event": {"type": "message.sent", "created_at": "2026-10-18T10:00:00Z"},
        "config": {"name": config_name},
    }
    if message is not None:
        body["message"] = message
    return WebhookEvent.model_validate(body)


def test_matching_hook_is_accepted():
    hook = HookConfig(name="Conversation Monitor", path="/conversations")
    assert route(_event("Conversation Monitor"), hook) is RouteOutcome.ACCEPTED


def test_receipts_variant_accepts_original_name(receipt_hook, make_message):
    event = _event("Message Read Monitor", make_message())
    assert route(event, receipt_hook) is RouteOutcome.ACCEPTED


def test_foreign_hook_is_rejected_with_client_error(receipt_hook):
    outcome = route(_event("Old Monitor Name"), receipt_hook)
    assert outcome is RouteOutcome.IGNORED_FOREIGN
    assert outcome.status_code == 400


def test_prefix_without_separator_is_foreign():
    hook = HookConfig(name="Monitor2", path="/m")
    assert route(_event("Monitor"), hook) is RouteOutcome.IGNORED_FOREIGN


def test_platform_sender_is_ignored(receipt_hook, make_message):
    event = _event("Message Read Monitor", make_message(sender={"name": "bot-service"}))
    outcome = route(event, receipt_hook)
    assert outcome is RouteOutcome.IGNORED_BOT_ECHO
    assert outcome.status_code == 200


def test_conversation_events_are_accepted():
    hook = HookConfig(name="Conversation Monitor", path="/conversations")
    event = WebhookEvent.model_validate(
        {
            "event": {"type": "conversation.created"},
            "conversation": {"id": "conv-1"},
            "config": {"name": "Conversation Monitor"},
        }
    )
    assert route(event, hook) is RouteOutcome.ACCEPTED


def test_malformed_body_routing(receipt_hook):
    assert route_malformed(b'{"config": {"name": "Message Read Monitor"}}', receipt_hook) is (
        RouteOutcome.IGNORED_MALFORMED
    )
    assert route_malformed(b'{"config": {"name": "Other"}, "event": 1}', receipt_hook) is (
        RouteOutcome.IGNORED_FOREIGN
    )
    assert route_malformed(b"not json", receipt_hook) is RouteOutcome.IGNORED_MALFORMED
    assert RouteOutcome.IGNORED_MALFORMED.status_code == 200


def test_target_hook_name():
    assert target_hook_name(b'{"config": {"name": "A"}}') == "A"
    assert target_hook_name(b'{"event": {}}') == ""
    assert target_hook_name(b"[1, 2]") is None
