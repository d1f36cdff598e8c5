"""
Layer Platform API client.
Covers the two areas the service talks to: webhook registrations and the
identity directory.
"""

import asyncio
from typing import Any
from urllib.parse import quote

import httpx

from layer_receipts.config import settings
from layer_receipts.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

WEBHOOKS_MEDIA_TYPE = "application/vnd.layer.webhooks+json; version=1.0"
PLATFORM_MEDIA_TYPE = "application/vnd.layer+json; version=1.0"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 15  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 1
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class LayerApiError(Exception):
    """Custom exception for Layer Platform API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}


def _webhook_id(webhook_id: str) -> str:
    """Webhook ids come back as layer:/// URIs; the API path wants the UUID."""
    return webhook_id.rstrip("/").rsplit("/", 1)[-1]


class LayerPlatformClient:
    def __init__(
        self,
        app_url: str | None = None,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.app_url = (app_url or settings.layer_app_url()).rstrip("/")
        self.token = token if token is not None else settings.LAYER_API_TOKEN
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self, media_type: str) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": media_type,
            "Content-Type": "application/json",
        }

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Layer API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise LayerApiError(f"Layer API request failed: {e}") from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Layer API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise LayerApiError("Layer API retry loop exhausted")

    def _handle_response(self, response: httpx.Response, operation: str) -> Any:
        if response.is_success:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text[:200]}

        logger.warning(
            f"Layer API {operation} failed",
            status_code=response.status_code,
            error=data.get("message") if isinstance(data, dict) else None,
        )
        raise LayerApiError(
            f"Layer API {operation} failed with status {response.status_code}",
            status_code=response.status_code,
            response_data=data if isinstance(data, dict) else {"data": data},
        )

    # =================================================================
    # Webhooks
    # =================================================================

    async def list_webhooks(self) -> list[dict[str, Any]]:
        response = await self._request_with_retry(
            "GET", f"{self.app_url}/webhooks", headers=self._headers(WEBHOOKS_MEDIA_TYPE)
        )
        return self._handle_response(response, "list webhooks") or []

    async def register_webhook(
        self,
        target_url: str,
        events: list[str],
        secret: str,
        config: dict[str, Any],
    ) -> dict[str, Any]:
        body = {
            "target_url": target_url,
            "events": events,
            "secret": secret,
            "config": config,
        }
        response = await self._request_with_retry(
            "POST",
            f"{self.app_url}/webhooks",
            headers=self._headers(WEBHOOKS_MEDIA_TYPE),
            json=body,
        )
        return self._handle_response(response, "register webhook") or {}

    async def enable_webhook(self, webhook_id: str) -> None:
        response = await self._request_with_retry(
            "POST",
            f"{self.app_url}/webhooks/{_webhook_id(webhook_id)}/activate",
            headers=self._headers(WEBHOOKS_MEDIA_TYPE),
        )
        self._handle_response(response, "enable webhook")

    # =================================================================
    # Identities
    # =================================================================

    async def get_identity(self, user_id: str) -> dict[str, Any]:
        response = await self._request_with_retry(
            "GET",
            f"{self.app_url}/users/{quote(user_id, safe='')}/identity",
            headers=self._headers(PLATFORM_MEDIA_TYPE),
        )
        return self._handle_response(response, "get identity")
