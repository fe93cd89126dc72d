"""
REST client used for full resync and ordinary CRUD from the client side.

Transport-level failures (connection refused, timeouts) are retried with
exponential backoff; HTTP error responses are not.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import httpx

from shared.config.logging import sync_client_logger as logger
from shared.events import EntityType

# Collection paths per entity type
ENTITY_PATHS: dict[EntityType, str] = {
    EntityType.TRANSACTION: "/api/transactions",
    EntityType.BUDGET: "/api/budgets",
    EntityType.SAVINGS_GOAL: "/api/savings-goals",
}


class ApiError(Exception):
    """
    A REST call failed.

    Attributes:
        status_code: HTTP status, or None if no response was received.
        message: Server ``detail`` when available.
    """

    def __init__(self, status_code: int | None, message: str):
        super().__init__(f"{status_code}: {message}" if status_code else message)
        self.status_code = status_code
        self.message = message


class ApiService:
    """
    Thin async client over the REST surface.

    Usage:
        async with ApiService("http://localhost:8000", token) as api:
            transactions = await api.list(EntityType.TRANSACTION)
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        max_retries: int = 2,
        retry_base_delay: float = 0.5,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.token = token
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "ApiService":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def set_token(self, token: str | None) -> None:
        self.token = token

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, path, json=json, headers=self._headers())
                break
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    logger.error("Request failed", method=method, path=path, error=str(e))
                    raise ApiError(None, str(e) or type(e).__name__) from e
                delay = self.retry_base_delay * 2 ** attempt
                attempt += 1
                logger.warning(
                    "Request failed, retrying",
                    method=method,
                    path=path,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    delay=delay,
                )
                await self._sleep(delay)

        if response.status_code >= 400:
            raise ApiError(response.status_code, _error_detail(response))
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def list(self, entity_type: EntityType) -> list[dict[str, Any]]:
        return await self._request("GET", ENTITY_PATHS[entity_type])

    async def get(self, entity_type: EntityType, record_id: str) -> dict[str, Any]:
        return await self._request("GET", f"{ENTITY_PATHS[entity_type]}/{record_id}")

    async def create(self, entity_type: EntityType, data: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", ENTITY_PATHS[entity_type], json=data)

    async def update(self, entity_type: EntityType, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PATCH", f"{ENTITY_PATHS[entity_type]}/{record_id}", json=data)

    async def delete(self, entity_type: EntityType, record_id: str) -> None:
        await self._request("DELETE", f"{ENTITY_PATHS[entity_type]}/{record_id}")


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        detail = body["detail"]
        return detail if isinstance(detail, str) else str(detail)
    return response.reason_phrase
