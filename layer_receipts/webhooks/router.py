"""Decide what to do with a signed webhook event for a given hook."""

import json
from enum import Enum

from layer_receipts.hooks.definitions import HookConfig, ReceiptHookConfig
from layer_receipts.webhooks.models import WebhookEvent


class RouteOutcome(str, Enum):
    ACCEPTED = "accepted"
    IGNORED_FOREIGN = "ignored_foreign"
    IGNORED_BOT_ECHO = "ignored_bot_echo"
    IGNORED_MALFORMED = "ignored_malformed"

    @property
    def status_code(self) -> int:
        # Foreign events get a client error so Layer disables the stale registration.
        return 400 if self is RouteOutcome.IGNORED_FOREIGN else 200


def is_foreign(target_name: str, hook_name: str) -> bool:
    """True when the delivery was registered under a different hook name."""
    return target_name != hook_name and not hook_name.startswith(f"{target_name}:")


def target_hook_name(raw: bytes | str) -> str | None:
    """Best effort `config.name` of a body that did not validate; None if it is not a JSON object."""
    try:
        body = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    config = body.get("config")
    name = config.get("name") if isinstance(config, dict) else None
    return name if isinstance(name, str) else ""


def route(event: WebhookEvent, hook: HookConfig | ReceiptHookConfig) -> RouteOutcome:
    if is_foreign(event.hook_config_name, hook.name):
        return RouteOutcome.IGNORED_FOREIGN

    # Messages from Platform API senders would loop back into notifications.
    if event.message is not None and event.message.sender.is_platform_service:
        return RouteOutcome.IGNORED_BOT_ECHO

    return RouteOutcome.ACCEPTED


def route_malformed(raw: bytes | str, hook: HookConfig | ReceiptHookConfig) -> RouteOutcome:
    """Outcome for a signed body that failed validation: foreign if it names another hook."""
    target = target_hook_name(raw)
    if target is not None and is_foreign(target, hook.name):
        return RouteOutcome.IGNORED_FOREIGN
    return RouteOutcome.IGNORED_MALFORMED
