import asyncio
import json
from pathlib import Path

import httpx
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from app.core.dependencies import get_client_factory
from app.main import app
from app.services import exporter
from app.services.exporter import GENERATED_COLUMNS, GENERATED_FILENAME_RE


def parse_sse(body: str) -> list[dict]:
    events = []
    for chunk in body.split("\n\n"):
        if chunk.startswith("data: "):
            events.append(json.loads(chunk[len("data: ") :]))
    return events


def _broken_factory():
    raise RuntimeError("store credentials missing")


def _generate_body(**overrides) -> dict:
    body = {
        "quantity": 3,
        "codePrefix": "GETLINKED",
        "namePrefix": "SHOPIFY 100 OFF",
        "productIds": [111],
    }
    body.update(overrides)
    return body


def test_products_and_categories(api_client: TestClient, store) -> None:
    store.products = [{"id": 111, "name": "Mug", "price": 9.5}, {"id": 112, "name": "Cap"}]
    store.categories = [{"id": 9, "name": "Gifts"}]

    res = api_client.get("/api/products")
    assert res.status_code == 200
    assert res.json() == {
        "success": True,
        "products": [{"id": 111, "name": "Mug"}, {"id": 112, "name": "Cap"}],
        "categories": [{"id": 9, "name": "Gifts"}],
    }


def test_products_failure_returns_500(api_client: TestClient) -> None:
    app.dependency_overrides[get_client_factory] = lambda: _broken_factory
    res = api_client.get("/api/products")
    assert res.status_code == 500
    assert res.json() == {"success": False, "message": "store credentials missing"}


def test_coupon_listings(api_client: TestClient, store) -> None:
    store.coupons = [
        {"id": 1, "code": "A1", "name": "First", "type": "percentage_discount", "amount": "10.0000", "enabled": True},
        {"id": 2, "code": "B2", "name": "Second", "type": "per_item_discount", "amount": "5.0000", "enabled": False},
    ]
    for path in ("/api/existing-coupons", "/api/coupons"):
        res = api_client.get(path)
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert [c["code"] for c in body["coupons"]] == ["A1", "B2"]
        assert body["coupons"][1]["enabled"] is False


def test_generate_streams_results_and_exports(api_client: TestClient, store, tmp_path: Path) -> None:
    store.coupons = [{"id": 1, "code": "EXISTING"}]
    res = api_client.post("/api/generate-coupons", json=_generate_body(expiryDate="2026-12-31"))
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/event-stream")

    events = parse_sse(res.text)
    assert [e["type"] for e in events] == ["result", "result", "result", "complete"]
    names = [e["data"]["name"] for e in events[:3]]
    assert names == ["SHOPIFY 100 OFF 1 of 3", "SHOPIFY 100 OFF 2 of 3", "SHOPIFY 100 OFF 3 of 3"]
    assert all(e["data"]["status"] == "Created" for e in events[:3])

    stats = events[-1]["stats"]
    assert stats["created"] == 3
    assert stats["failed"] == 0
    assert stats["total"] == 3
    assert GENERATED_FILENAME_RE.fullmatch(stats["filename"])
    assert stats["downloadUrl"] == f"/{stats['filename']}"

    export = tmp_path / "exports" / stats["filename"]
    assert export.is_file()
    wb = load_workbook(export)
    ws = wb.active
    rows = list(ws.iter_rows(values_only=True))
    assert list(rows[0]) == GENERATED_COLUMNS
    assert [row[0] for row in rows[1:]] == [e["data"]["code"] for e in events[:3]]

    assert {p["expires"] for p in store.created_payloads} == {"Thu, 31 Dec 2026 23:59:59 GMT"}


def test_generate_reports_failures_in_stream(api_client: TestClient, store) -> None:
    store.create_replies.append(httpx.Response(422, json={"title": "The field 'amount' is invalid."}))
    res = api_client.post("/api/generate-coupons", json=_generate_body(quantity=2))
    events = parse_sse(res.text)
    assert events[0]["data"]["status"] == "Failed"
    assert "amount" in events[0]["data"]["error"]
    assert events[-1]["stats"]["failed"] == 1
    assert events[-1]["stats"]["created"] == 1


def test_generate_emits_error_event(api_client: TestClient) -> None:
    app.dependency_overrides[get_client_factory] = lambda: _broken_factory
    res = api_client.post("/api/generate-coupons", json=_generate_body())
    assert parse_sse(res.text) == [{"type": "error", "message": "store credentials missing"}]


def test_generate_rejects_bad_parameters(api_client: TestClient) -> None:
    assert api_client.post("/api/generate-coupons", json=_generate_body(quantity=801)).status_code == 422
    assert api_client.post("/api/generate-coupons", json=_generate_body(productIds=[])).status_code == 422
    assert api_client.post("/api/generate-coupons", json=_generate_body(targeting="brands")).status_code == 422


def test_create_single_coupon(api_client: TestClient, store) -> None:
    res = api_client.post(
        "/api/create-single-coupon",
        json={"code": "SUMMER10", "discount": 10, "productIds": [111, 112], "expiryDate": "2026-03-01"},
    )
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["message"] == "Coupon created successfully"
    assert body["coupon"]["id"] == 1001

    payload = store.created_payloads[0]
    assert payload["name"] == "SUMMER10"
    assert payload["amount"] == 10
    assert payload["expires"] == "Sun, 01 Mar 2026 23:59:59 GMT"
    assert payload["applies_to"] == {"entity": "products", "ids": [111, 112]}


def test_create_single_coupon_rejected(api_client: TestClient, store) -> None:
    store.coupons = [{"id": 1, "code": "SUMMER10"}]
    res = api_client.post(
        "/api/create-single-coupon",
        json={"code": "SUMMER10", "name": "Summer", "discount": 10, "productIds": [111]},
    )
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert "already exists" in body["message"]


def test_malformed_remote_items_keep_error_envelope(api_client: TestClient, store) -> None:
    store.products = [{"name": "No id"}]
    res = api_client.get("/api/products")
    assert res.status_code == 500
    assert res.json()["success"] is False

    store.coupons = [{"id": "not-a-number", "code": "BAD"}]
    res = api_client.get("/api/coupons")
    assert res.status_code == 500
    assert res.json()["success"] is False


def test_generation_export_runs_in_worker_thread(api_client: TestClient, monkeypatch) -> None:
    real_export = exporter.export_generation_results
    seen: list[str] = []

    def recording_export(*args, **kwargs):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            seen.append("worker-thread")
        else:
            seen.append("event-loop")
        return real_export(*args, **kwargs)

    monkeypatch.setattr(exporter, "export_generation_results", recording_export)
    res = api_client.post("/api/generate-coupons", json=_generate_body())
    assert parse_sse(res.text)[-1]["type"] == "complete"
    assert seen == ["worker-thread"]


def test_create_single_coupon_rejects_invalid_expiry(api_client: TestClient, store) -> None:
    res = api_client.post(
        "/api/create-single-coupon",
        json={"code": "SUMMER10", "discount": 10, "productIds": [111], "expiryDate": "2026-13-01"},
    )
    assert res.status_code == 422
    assert res.json()["code"] == "validation_error"
    assert store.created_payloads == []

    blank = api_client.post(
        "/api/create-single-coupon",
        json={"code": "SUMMER10", "discount": 10, "productIds": [111], "expiryDate": "  "},
    )
    assert blank.status_code == 200
    assert store.created_payloads[0]["expires"].endswith("GMT")
