from .definitions import (  # noqa: F401
    HookConfig,
    HookConfigError,
    IdentityMode,
    ReceiptConfig,
    ReceiptHookConfig,
    load_hook_configs,
    load_receipt_hook_configs,
)
from .durations import InvalidDurationError, parse_duration  # noqa: F401
