"""
Receipts service - wires the receipt tracking pieces for each hook.

For a receipts hook named `<name>:receipts`:
- the listener queues accepted events as `<name>:receipts` tasks,
- the tracker consumes them and arms `<name>:receipts delayed-job` checks,
- the evaluator consumes the checks and publishes `<name>` notifications.
"""

from dataclasses import dataclass

from fastapi import FastAPI

from layer_receipts.hooks.definitions import ReceiptHookConfig
from layer_receipts.infrastructure.observability.logging import get_logger
from layer_receipts.receipts.emitter import NotificationEmitter
from layer_receipts.receipts.evaluator import RecipientEvaluator
from layer_receipts.receipts.identities import IdentityEnricher, IdentityLookup
from layer_receipts.receipts.scheduler import DelayScheduler, delayed_task_type
from layer_receipts.receipts.store import ReceiptStateStore
from layer_receipts.receipts.tracker import ReceiptTracker
from layer_receipts.tasks.queue import TaskScheduler
from layer_receipts.tasks.worker import TaskWorker
from layer_receipts.webhooks.listener import build_hook_router, schedule_event

logger = get_logger(__name__)


@dataclass(slots=True)
class ReceiptPipeline:
    hook: ReceiptHookConfig
    tracker: ReceiptTracker
    evaluator: RecipientEvaluator


class ReceiptsService:
    def __init__(
        self,
        hooks: list[ReceiptHookConfig],
        store: ReceiptStateStore,
        scheduler: TaskScheduler,
        directory: IdentityLookup | None = None,
        emitter: NotificationEmitter | None = None,
    ):
        self.scheduler = scheduler
        delay_scheduler = DelayScheduler(scheduler)
        emitter = emitter or NotificationEmitter(scheduler)

        self.pipelines = [
            ReceiptPipeline(
                hook=hook,
                tracker=ReceiptTracker(hook, store, delay_scheduler),
                evaluator=RecipientEvaluator(
                    hook,
                    store,
                    IdentityEnricher.for_receipts(hook.receipts, directory),
                    emitter,
                ),
            )
            for hook in hooks
        ]

    def mount(self, app: FastAPI, secret: str) -> None:
        """Add the webhook endpoints for every receipts hook."""
        for pipeline in self.pipelines:
            hook = pipeline.hook
            app.include_router(build_hook_router(hook, secret, schedule_event(self.scheduler, hook.name)))
            logger.info(
                "Listening for receipts",
                hook=hook.name,
                path=hook.path,
                delay_ms=hook.receipts.delay_ms,
                watched_statuses=sorted(hook.receipts.watched_statuses),
                identities=hook.receipts.identity_mode.value,
            )

    def register_tasks(self, worker: TaskWorker) -> None:
        """Register event and delayed-check handlers with the task worker."""
        for pipeline in self.pipelines:
            worker.process(pipeline.hook.name, pipeline.tracker.handle_event)
            worker.process(delayed_task_type(pipeline.hook.name), pipeline.evaluator.handle_check)
