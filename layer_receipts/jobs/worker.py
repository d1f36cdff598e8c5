"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the matching coroutine.
"""

import asyncio
import os
import signal
import sys
from collections.abc import Awaitable, Callable

from layer_receipts.config import settings
from layer_receipts.infrastructure.observability.logging import get_logger, setup_logging
from layer_receipts.services.redis_client import redis_client
from layer_receipts.services.registration import register_hooks, registration_entries
from layer_receipts.tasks.queue import RedisTaskQueue
from layer_receipts.tasks.worker import TaskWorker
from layer_receipts.wiring import build_layer_client, build_receipts_service, load_configured_hooks

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]


async def run_receipts_worker() -> None:
    """Consume receipts event and delayed-check tasks until SIGINT/SIGTERM."""
    _, receipt_hooks = load_configured_hooks(settings)
    layer_client = build_layer_client(receipt_hooks, settings)

    await redis_client.initialize()
    worker = TaskWorker(RedisTaskQueue(redis_client, prefix=settings.TASK_QUEUE_PREFIX))
    build_receipts_service(receipt_hooks, redis_client, layer_client, settings).register_tasks(worker)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.stop)
        except NotImplementedError:
            pass

    try:
        await worker.run_forever()
    finally:
        await redis_client.close()
        if layer_client is not None:
            await layer_client.close()


async def run_registration() -> None:
    """Register every configured hook with Layer once."""
    if not settings.WEBHOOK_BASE_URL:
        raise ValueError("WEBHOOK_BASE_URL is required to register webhooks")

    listen_hooks, receipt_hooks = load_configured_hooks(settings)
    layer_client = build_layer_client(receipt_hooks, settings, required=True)
    try:
        outcomes = await register_hooks(
            layer_client,
            settings.WEBHOOK_BASE_URL,
            settings.WEBHOOK_SECRET,
            registration_entries(listen_hooks, receipt_hooks),
        )
    finally:
        await layer_client.close()

    logger.info(
        "Webhook registration complete",
        outcomes={name: outcome.value for name, outcome in outcomes.items()},
    )


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "receipts": run_receipts_worker,
    "register": run_registration,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "receipts").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
