"""
Builds the service components from settings.

Shared by the API process (webhook listeners) and the worker process
(task handlers) so both see the same hook configuration.
"""

from layer_receipts.config import Settings, settings
from layer_receipts.hooks.definitions import (
    HookConfig,
    HookConfigError,
    IdentityMode,
    ReceiptHookConfig,
    ensure_unique_hooks,
    load_hook_configs,
    load_receipt_hook_configs,
)
from layer_receipts.receipts.service import ReceiptsService
from layer_receipts.receipts.store import ReceiptStateStore
from layer_receipts.services.layer_client import LayerPlatformClient
from layer_receipts.services.redis_client import RedisClient
from layer_receipts.tasks.queue import RedisTaskQueue


def load_configured_hooks(
    config: Settings = settings,
) -> tuple[list[HookConfig], list[ReceiptHookConfig]]:
    """Validate LISTEN_HOOKS and RECEIPT_HOOKS; raises HookConfigError on bad input."""
    listen_hooks = load_hook_configs(config.LISTEN_HOOKS)
    receipt_hooks = load_receipt_hook_configs(config.RECEIPT_HOOKS)
    ensure_unique_hooks(listen_hooks, receipt_hooks)
    return listen_hooks, receipt_hooks


def build_layer_client(
    receipt_hooks: list[ReceiptHookConfig],
    config: Settings = settings,
    required: bool = False,
) -> LayerPlatformClient | None:
    needs_directory = any(
        hook.receipts.identity_mode is IdentityMode.BUILTIN for hook in receipt_hooks
    )
    if not config.LAYER_APP_ID or not config.LAYER_API_TOKEN:
        if needs_directory or required:
            raise HookConfigError("LAYER_APP_ID and LAYER_API_TOKEN are required")
        return None
    return LayerPlatformClient(app_url=config.layer_app_url(), token=config.LAYER_API_TOKEN)


def build_receipts_service(
    receipt_hooks: list[ReceiptHookConfig],
    redis: RedisClient,
    layer_client: LayerPlatformClient | None,
    config: Settings = settings,
) -> ReceiptsService:
    return ReceiptsService(
        hooks=receipt_hooks,
        store=ReceiptStateStore(redis, prefix=config.RECEIPTS_KEY_PREFIX),
        scheduler=RedisTaskQueue(redis, prefix=config.TASK_QUEUE_PREFIX),
        directory=layer_client.get_identity if layer_client else None,
    )
