from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)

COUPONS_RESOURCE = "/v2/coupons"
PRODUCTS_RESOURCE = "/v3/catalog/products"
CATEGORIES_RESOURCE = "/v3/catalog/categories"


class RemoteErrorKind(str, enum.Enum):
    duplicate = "duplicate"
    validation = "validation"
    transport = "transport"


@dataclass(frozen=True)
class CreateResult:
    ok: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    kind: RemoteErrorKind | None = None
    status_code: int | None = None

    @classmethod
    def success(cls, data: dict[str, Any], *, status_code: int | None = None) -> CreateResult:
        return cls(ok=True, data=data, status_code=status_code)

    @classmethod
    def failure(cls, error: str, kind: RemoteErrorKind, *, status_code: int | None = None) -> CreateResult:
        return cls(ok=False, error=error, kind=kind, status_code=status_code)

    @property
    def is_duplicate(self) -> bool:
        return self.kind is RemoteErrorKind.duplicate


def normalize_remote_error(raw: Any) -> str:
    """Collapse whatever the store sent back (or the exception raised) into one message."""
    if isinstance(raw, BaseException):
        return str(raw) or raw.__class__.__name__
    if isinstance(raw, dict) and raw.get("errors"):
        raw = raw["errors"]
    if isinstance(raw, str):
        return raw
    if raw is None:
        return "Unknown error"
    return json.dumps(raw, separators=(",", ":"), ensure_ascii=False, default=str)


def classify_remote_error(
    message: str,
    *,
    status_code: int | None = None,
    markers: Sequence[str] = (),
) -> RemoteErrorKind:
    if status_code == httpx.codes.CONFLICT:
        return RemoteErrorKind.duplicate
    if any(marker and marker in message for marker in markers):
        return RemoteErrorKind.duplicate
    if status_code is None:
        return RemoteErrorKind.transport
    return RemoteErrorKind.validation


def _response_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _page_items(body: Any) -> list[dict[str, Any]]:
    # v2 endpoints return a bare array, v3 wraps it in {"data": [...]}.
    if isinstance(body, list):
        return body
    if isinstance(body, dict) and isinstance(body.get("data"), list):
        return body["data"]
    return []


class BigCommerceClient:
    """Thin async wrapper over the store's REST API.

    All calls are sequential; ``page_delay`` is awaited after every list page and
    ``request_delay`` is exposed for callers pacing write calls.
    """

    def __init__(
        self,
        *,
        store_hash: str,
        access_token: str,
        base_url: str = "https://api.bigcommerce.com/stores",
        page_size: int = 250,
        page_delay: float = 0.05,
        request_delay: float = 0.2,
        duplicate_markers: Sequence[str] = ("already exists", "conflict"),
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store_hash = store_hash
        self.page_size = page_size
        self.page_delay = page_delay
        self.request_delay = request_delay
        self.duplicate_markers = tuple(duplicate_markers)
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/{store_hash}",
            headers={
                "X-Auth-Token": access_token,
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, config: Settings | None = None, **overrides: Any) -> BigCommerceClient:
        config = config or settings
        options: dict[str, Any] = {
            "store_hash": config.bc_store_hash,
            "access_token": config.bc_access_token,
            "base_url": config.bc_api_base_url,
            "page_size": config.bc_page_size,
            "page_delay": config.bc_page_delay_seconds,
            "request_delay": config.bc_request_delay_seconds,
            "duplicate_markers": config.duplicate_error_markers,
            "timeout": config.bc_timeout_seconds,
        }
        options.update(overrides)
        return cls(**options)

    async def __aenter__(self) -> BigCommerceClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def pause(self, seconds: float | None = None) -> None:
        delay = self.request_delay if seconds is None else seconds
        if delay > 0:
            await self._sleep(delay)

    async def iter_resource(
        self,
        resource: str,
        *,
        page_size: int | None = None,
        params: dict[str, Any] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield every item of a paginated list endpoint, page by page.

        An empty page ends the listing; so does a failed request, which is logged.
        """
        limit = page_size or self.page_size
        page = 1
        while True:
            query = {**(params or {}), "page": page, "limit": limit}
            try:
                response = await self._client.get(resource, params=query)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning(
                    "bigcommerce_list_failed",
                    extra={"resource": resource, "page": page, "error": normalize_remote_error(exc)},
                )
                return
            finally:
                await self.pause(self.page_delay)

            items = [] if response.status_code == httpx.codes.NO_CONTENT else _page_items(_response_body(response))
            if not items:
                return
            logger.debug("bigcommerce_page_loaded", extra={"resource": resource, "page": page, "count": len(items)})
            for item in items:
                yield item
            page += 1

    async def list_resource(
        self,
        resource: str,
        *,
        page_size: int | None = None,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        return [item async for item in self.iter_resource(resource, page_size=page_size, params=params)]

    async def create(self, resource: str, payload: dict[str, Any]) -> CreateResult:
        try:
            response = await self._client.post(resource, json=payload)
        except httpx.HTTPError as exc:
            message = normalize_remote_error(exc)
            return CreateResult.failure(message, classify_remote_error(message, markers=self.duplicate_markers))

        body = _response_body(response)
        if response.is_success:
            return CreateResult.success(body if isinstance(body, dict) else {}, status_code=response.status_code)

        message = normalize_remote_error(body if body is not None else response.reason_phrase)
        kind = classify_remote_error(message, status_code=response.status_code, markers=self.duplicate_markers)
        return CreateResult.failure(message, kind, status_code=response.status_code)

    async def get_coupons(self) -> list[dict[str, Any]]:
        return await self.list_resource(COUPONS_RESOURCE)

    async def get_products(self) -> list[dict[str, Any]]:
        return await self.list_resource(PRODUCTS_RESOURCE)

    async def get_categories(self) -> list[dict[str, Any]]:
        return await self.list_resource(CATEGORIES_RESOURCE)

    async def create_coupon(self, payload: dict[str, Any]) -> CreateResult:
        return await self.create(COUPONS_RESOURCE, payload)

    async def find_coupon(self, code: str) -> dict[str, Any] | None:
        try:
            response = await self._client.get(COUPONS_RESOURCE, params={"code": code})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("bigcommerce_coupon_lookup_failed", extra={"code": code, "error": normalize_remote_error(exc)})
            return None
        items = _page_items(_response_body(response))
        return items[0] if items else None
