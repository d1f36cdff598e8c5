"""
Receipt tracking: delayed "who has not read/received this yet" notifications.
"""

from .emitter import NotificationEmitter
from .evaluator import RecipientEvaluator, filter_recipients
from .identities import IdentityEnricher
from .scheduler import DelayScheduler, delayed_task_type
from .service import ReceiptsService
from .store import ReceiptStateStore
from .tracker import ReceiptTracker

__all__ = [
    "DelayScheduler",
    "IdentityEnricher",
    "NotificationEmitter",
    "ReceiptStateStore",
    "ReceiptTracker",
    "ReceiptsService",
    "RecipientEvaluator",
    "delayed_task_type",
    "filter_recipients",
]
