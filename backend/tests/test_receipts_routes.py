from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from fakes import CORNER_STORE, INLINE_IMAGE
from kakeibo.api.deps import get_orchestrator
from kakeibo.api.main import app


@pytest.fixture()
def client_for(make_orchestrator):
    def _client(**kwargs):
        orchestrator, fake = make_orchestrator(**kwargs)
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        return TestClient(app), fake
    yield _client
    app.dependency_overrides.clear()


def test_health(client_for):
    client, _ = client_for()
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


def test_submit_records_receipt(client_for, writer):
    client, _ = client_for(content=CORNER_STORE)

    resp = client.post("/receipts", json={"imageReference": INLINE_IMAGE, "category": "groceries"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["recordedCount"] == 1
    assert body["filePath"] == str(writer.file_path)


def test_run_image_then_submit_with_empty_reference(client_for):
    client, fake = client_for(content=CORNER_STORE)

    stored = client.post("/receipts/runs/run-42/image", json={"imageReference": INLINE_IMAGE})
    assert stored.status_code == 202
    assert stored.json() == {"runId": "run-42", "stored": True}

    resp = client.post("/receipts", json={"imageReference": "", "runId": "run-42"})
    assert resp.status_code == 200
    assert resp.json()["recordedCount"] == 1
    assert fake.completions.calls[0]["messages"][0]["content"][1]["image_url"]["url"] == INLINE_IMAGE


def test_submit_without_image_is_bad_request(client_for, writer):
    client, _ = client_for(content=CORNER_STORE)

    resp = client.post("/receipts", json={"runId": "nothing-stored"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["stage"] == "resolve"
    assert body["errorKind"] == "InvalidReferenceKind"
    assert writer.calls == 0


def test_submit_timeout_is_gateway_timeout(client_for):
    client, _ = client_for(content=CORNER_STORE, delay=5, timeout=0.05)

    resp = client.post("/receipts", json={"imageReference": INLINE_IMAGE})

    assert resp.status_code == 504
    assert resp.json()["errorKind"] == "TimeoutError"


def test_submit_parse_error_is_bad_gateway(client_for):
    client, _ = client_for(content="[]")

    resp = client.post("/receipts", json={"imageReference": INLINE_IMAGE})

    assert resp.status_code == 502
    assert resp.json()["errorKind"] == "ParseError"


def test_run_image_requires_reference(client_for):
    client, _ = client_for()

    resp = client.post("/receipts/runs/run-1/image", json={"imageReference": ""})

    assert resp.status_code == 422
    assert resp.json()["error"] == "Validation error"


def test_ledger_listing(client_for):
    client, _ = client_for(content=CORNER_STORE)
    assert client.get("/receipts/ledger").json() == []

    client.post("/receipts", json={"imageReference": INLINE_IMAGE, "category": "groceries"})
    rows = client.get("/receipts/ledger").json()

    assert len(rows) == 1
    assert rows[0]["itemName"] == "Milk"
    assert rows[0]["paymentMethod"] == "unknown"
    assert "item_name" not in rows[0]
    assert rows[0]["category"] == "groceries"
    assert rows[0]["total"] == 165
