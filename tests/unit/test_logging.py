from structlog.testing import capture_logs

from layer_receipts.infrastructure.observability.logging import (
    SERVICE_NAME,
    _add_service_context,
    log_health_check,
    log_webhook_delivery,
)


def test_service_context_is_added():
    assert _add_service_context(None, "info", {"event": "x"}) == {"event": "x", "service": SERVICE_NAME}
    assert _add_service_context(None, "info", {"service": "other"})["service"] == "other"


def test_webhook_delivery_levels():
    with capture_logs() as logs:
        log_webhook_delivery("Read Monitor:receipts", "accepted", 200, event_type="message.sent")
        log_webhook_delivery("Read Monitor:receipts", "ignored_foreign", 400)

    assert [entry["log_level"] for entry in logs] == ["info", "warning"]
    assert logs[0]["log_type"] == "webhook_delivery"
    assert logs[0]["event_type"] == "message.sent"
    assert logs[1]["outcome"] == "ignored_foreign"


def test_failed_health_check_is_an_error():
    with capture_logs() as logs:
        log_health_check("redis", False, error="ConnectionError: refused")

    [entry] = logs
    assert entry["log_level"] == "error"
    assert entry["dependency"] == "redis"
    assert entry["error"] == "ConnectionError: refused"
