"""
Webhook registration with the Layer Platform.

Idempotent: existing registrations (same config name and target url) are
left alone, or activated if Layer disabled them; missing ones are created.
"""

import re
from collections.abc import Iterable
from enum import Enum

from layer_receipts.hooks.definitions import HookConfig, ReceiptHookConfig
from layer_receipts.infrastructure.observability.logging import get_logger
from layer_receipts.services.layer_client import LayerApiError, LayerPlatformClient

logger = get_logger(__name__)


class RegistrationOutcome(str, Enum):
    EXISTING = "existing"
    ENABLED = "enabled"
    REGISTERED = "registered"
    FAILED = "failed"


def normalize_base_url(url: str) -> str:
    url = re.sub(r":443(?=/|$)", "", url.strip())
    return url if url.endswith("/") else f"{url}/"


def registration_entries(
    hooks: Iterable[HookConfig],
    receipt_hooks: Iterable[ReceiptHookConfig] = (),
) -> list[HookConfig]:
    """Hooks as Layer knows them; receipts hooks register under their original name."""
    entries = list(hooks)
    entries.extend(
        HookConfig(name=hook.original_name, path=hook.path, events=hook.events)
        for hook in receipt_hooks
    )
    return entries


def _find_webhook(webhooks: list[dict], name: str, target_url: str) -> dict | None:
    for webhook in webhooks:
        config = webhook.get("config") or {}
        if config.get("name") == name and webhook.get("target_url") == target_url:
            return webhook
    return None


async def register_hooks(
    client: LayerPlatformClient,
    base_url: str,
    secret: str,
    hooks: Iterable[HookConfig],
) -> dict[str, RegistrationOutcome]:
    """
    Make sure every hook has an active registration.

    Args:
        client: Layer Platform client.
        base_url: Public base url the hook paths are appended to.
        secret: Shared secret Layer signs deliveries with.
        hooks: Hooks to register.

    Returns:
        Outcome per hook name; empty if the existing registrations could not be listed.
    """
    url = normalize_base_url(base_url)

    try:
        current = await client.list_webhooks()
    except LayerApiError as e:
        logger.error("Failed to list webhooks", error=str(e), status_code=e.status_code)
        return {}

    outcomes: dict[str, RegistrationOutcome] = {}
    for hook in hooks:
        target_url = url + hook.path.lstrip("/")
        log = logger.bind(hook=hook.name, target_url=target_url)
        webhook = _find_webhook(current, hook.name, target_url)

        try:
            if webhook:
                log.info("Webhook already registered", webhook_id=webhook.get("id"), status=webhook.get("status"))
                if webhook.get("status") != "active":
                    log.info("Enabling webhook", webhook_id=webhook.get("id"))
                    await client.enable_webhook(webhook["id"])
                    outcomes[hook.name] = RegistrationOutcome.ENABLED
                else:
                    outcomes[hook.name] = RegistrationOutcome.EXISTING
            else:
                log.info("Registering webhook", events=list(hook.events))
                await client.register_webhook(
                    target_url=target_url,
                    events=list(hook.events),
                    secret=secret,
                    config={"name": hook.name},
                )
                outcomes[hook.name] = RegistrationOutcome.REGISTERED
        except LayerApiError as e:
            log.error("Webhook registration failed", error=str(e), status_code=e.status_code)
            outcomes[hook.name] = RegistrationOutcome.FAILED

    return outcomes
