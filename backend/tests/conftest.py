import json
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import get_client_factory, get_export_dir
from app.main import app
from app.services.bigcommerce import BigCommerceClient

STORE_HASH = "test-store"
StoreReply = httpx.Response | Callable[[dict[str, Any]], httpx.Response]


class FakeStore:
    """In-memory stand-in for the store API, served through httpx.MockTransport."""

    def __init__(
        self,
        *,
        coupons: list[dict[str, Any]] | None = None,
        products: list[dict[str, Any]] | None = None,
        categories: list[dict[str, Any]] | None = None,
    ) -> None:
        self.coupons = list(coupons or [])
        self.products = list(products or [])
        self.categories = list(categories or [])
        self.created_payloads: list[dict[str, Any]] = []
        self.create_replies: list[StoreReply] = []
        self.requests: list[httpx.Request] = []
        self.fail_list_pages: set[tuple[str, int]] = set()
        self._next_id = 1000

    def _resource(self, request: httpx.Request) -> str:
        return request.url.path.split(f"/stores/{STORE_HASH}", 1)[1]

    def _list(self, resource: str, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if resource == "/v2/coupons" and "code" in params:
            matches = [c for c in self.coupons if c["code"] == params["code"]]
            return httpx.Response(200, json=matches) if matches else httpx.Response(204)

        page = int(params.get("page", 1))
        limit = int(params.get("limit", 250))
        if (resource, page) in self.fail_list_pages:
            return httpx.Response(500, json={"title": "Internal error"})

        source = {
            "/v2/coupons": self.coupons,
            "/v3/catalog/products": self.products,
            "/v3/catalog/categories": self.categories,
        }.get(resource)
        if source is None:
            return httpx.Response(404, json={"title": "Not found"})
        items = source[(page - 1) * limit : page * limit]
        if resource.startswith("/v3/"):
            return httpx.Response(200, json={"data": items, "meta": {}})
        return httpx.Response(200, json=items) if items else httpx.Response(204)

    def _create(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.created_payloads.append(payload)
        if self.create_replies:
            reply = self.create_replies.pop(0)
            return reply(payload) if callable(reply) else reply
        if any(c["code"] == payload["code"] for c in self.coupons):
            return httpx.Response(409, json=[{"status": 409, "message": "The coupon code already exists."}])
        self._next_id += 1
        coupon = {**payload, "id": self._next_id, "num_uses": 0}
        self.coupons.append(coupon)
        return httpx.Response(201, json=coupon)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        resource = self._resource(request)
        if request.method == "GET":
            return self._list(resource, request)
        if request.method == "POST" and resource == "/v2/coupons":
            return self._create(request)
        return httpx.Response(405)

    def client(self, **overrides: Any) -> BigCommerceClient:
        options: dict[str, Any] = {
            "store_hash": STORE_HASH,
            "access_token": "test-token",
            "page_delay": 0,
            "request_delay": 0,
            "transport": httpx.MockTransport(self.handler),
        }
        options.update(overrides)
        return BigCommerceClient(**options)


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def api_client(store: FakeStore, tmp_path: Path) -> Generator[TestClient, None, None]:
    export_dir = tmp_path / "exports"
    export_dir.mkdir()
    app.dependency_overrides[get_client_factory] = lambda: store.client
    app.dependency_overrides[get_export_dir] = lambda: export_dir
    test_client = TestClient(app)
    yield test_client
    test_client.close()
    app.dependency_overrides.clear()

