"""
Webhook listener routes.

Each hook gets two endpoints on its path:
- GET answers the verification challenge Layer sends when registering or
  re-activating a webhook.
- POST validates the signature, routes the event and hands accepted events
  to the hook's task queue.

Layer only ever sees status codes: 200 for accepted events, bot echoes and
bodies that do not validate, 400 for events meant for another hook, 403 for
bad signatures.
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from fastapi import APIRouter, FastAPI, Query, Request, Response
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from layer_receipts.hooks.definitions import HookConfig, ReceiptHookConfig
from layer_receipts.infrastructure.observability.logging import get_logger, log_webhook_delivery
from layer_receipts.tasks.contracts import RetryPolicy
from layer_receipts.tasks.queue import TaskScheduler
from layer_receipts.webhooks.models import WebhookEvent
from layer_receipts.webhooks.router import RouteOutcome, route, route_malformed, target_hook_name
from layer_receipts.webhooks.signature import SIGNATURE_HEADER, compute_signature, validate

logger = get_logger(__name__)

EventHandler = Callable[[WebhookEvent], Awaitable[None]]

EVENT_RETRY_POLICY = RetryPolicy(attempts=10, backoff_ms=10000)


def schedule_event(scheduler: TaskScheduler, task_type: str, delay_ms: int = 0) -> EventHandler:
    """Build a handler that queues accepted events as `task_type` jobs."""

    async def _schedule(event: WebhookEvent) -> None:
        await scheduler.schedule(
            task_type,
            event.to_task_payload(task_type),
            delay_ms=delay_ms,
            retry_policy=EVENT_RETRY_POLICY,
        )

    return _schedule


def build_hook_router(
    hook: HookConfig | ReceiptHookConfig,
    secret: str,
    on_accepted: EventHandler,
) -> APIRouter:
    router = APIRouter(tags=["webhooks"])
    log = logger.bind(hook=hook.name, path=hook.path)

    @router.get(hook.path, response_class=PlainTextResponse)
    async def verification_challenge(
        verification_challenge: str | None = Query(None),
    ) -> Response:
        log.info("Received verification challenge")
        if verification_challenge:
            return PlainTextResponse(verification_challenge)
        return Response(status_code=200)

    @router.post(hook.path)
    async def receive_event(request: Request) -> Response:
        raw = await request.body()
        provided = request.headers.get(SIGNATURE_HEADER)

        if not validate(raw, secret, provided):
            log.warning(
                "Computed HMAC signature did not match signed header",
                computed=compute_signature(raw, secret),
                provided=provided,
            )
            return Response(status_code=403)

        try:
            event = WebhookEvent.model_validate_json(raw)
        except ValidationError as e:
            outcome = route_malformed(raw, hook)
            log.warning(
                "Malformed webhook body",
                error=str(e),
                target_hook=target_hook_name(raw),
                outcome=outcome.value,
            )
            log_webhook_delivery(hook.name, outcome.value, outcome.status_code)
            return Response(status_code=outcome.status_code)

        log.debug("Received webhook", event_type=event.type)
        outcome = route(event, hook)

        if outcome is RouteOutcome.IGNORED_FOREIGN:
            log.error(
                "Received event meant for another hook; returning error to server",
                received_at=datetime.now(UTC).isoformat(),
                target_hook=event.hook_config_name,
            )
        elif outcome is RouteOutcome.IGNORED_BOT_ECHO:
            log.debug("Ignoring message sent by platform service", event_type=event.type)
        else:
            try:
                await on_accepted(event)
            except Exception:
                # Layer must not see internal failures as delivery errors.
                log.exception("Unable to queue webhook event", event_type=event.type)

        log_webhook_delivery(hook.name, outcome.value, outcome.status_code, event_type=event.type)
        return Response(status_code=outcome.status_code)

    return router


def listen(
    app: FastAPI,
    secret: str,
    hooks: list[HookConfig],
    scheduler: TaskScheduler,
) -> None:
    """Mount plain hooks; accepted events become jobs named after the hook."""
    for hook in hooks:
        handler = schedule_event(scheduler, hook.name, hook.delay_ms)
        app.include_router(build_hook_router(hook, secret, handler))
        logger.info("Listening for webhook", hook=hook.name, path=hook.path, delay_ms=hook.delay_ms)
