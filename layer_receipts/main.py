"""
FastAPI application: webhook listeners for plain and receipts hooks.

Task handlers run in the worker process (see layer_receipts.jobs.worker).
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from layer_receipts.config import settings
from layer_receipts.infrastructure.observability.logging import get_logger, log_request, setup_logging
from layer_receipts.routes import health
from layer_receipts.services.redis_client import redis_client
from layer_receipts.tasks.queue import RedisTaskQueue
from layer_receipts.webhooks.listener import listen
from layer_receipts.wiring import build_layer_client, build_receipts_service, load_configured_hooks

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open Redis on startup and close it on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)
    if not settings.WEBHOOK_SECRET:
        logger.warning("WEBHOOK_SECRET is empty; webhook signatures cannot be trusted")

    await redis_client.initialize()
    logger.info("All services initialized successfully", services=["redis"])

    yield

    logger.info("Application shutting down")
    await redis_client.close()
    layer_client = getattr(app.state, "layer_client", None)
    if layer_client is not None:
        await layer_client.close()


def create_app() -> FastAPI:
    listen_hooks, receipt_hooks = load_configured_hooks(settings)

    app = FastAPI(
        title="Layer Receipts",
        description="Layer webhook listeners with delayed read/delivery receipt notifications",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(health.router)

    listen(app, settings.WEBHOOK_SECRET, listen_hooks, RedisTaskQueue(redis_client))

    layer_client = build_layer_client(receipt_hooks, settings)
    app.state.layer_client = layer_client
    receipts = build_receipts_service(receipt_hooks, redis_client, layer_client, settings)
    receipts.mount(app, settings.WEBHOOK_SECRET)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        log_request(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
