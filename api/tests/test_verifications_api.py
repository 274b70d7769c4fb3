from __future__ import annotations

import json
import os
from typing import Any

import pytest
from fastapi.testclient import TestClient

import app.core.security as security
from app.core.config import get_settings
from app.main import app
from app.messaging.bus import MessageBusError
from app.messaging.memory import InMemoryMessageBus
from app.services.cache import ContentCache
from app.services.container import get_coordinator
from app.services.data_index import VerificationDataIndex
from app.services.lifecycle import LifecycleCoordinator
from app.services.store import InMemoryStore

AUTH = {"Authorization": "Bearer token"}


class FailingBus(InMemoryMessageBus):
    async def publish(self, topic: str, payload: bytes) -> None:
        raise MessageBusError("nats: timeout")


@pytest.fixture
def api_client() -> TestClient:
    os.environ["SG_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["SG_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("SG_SUPABASE_URL", None)
    os.environ.pop("SG_SUPABASE_ANON_KEY", None)
    get_settings.cache_clear()


def _mock_supabase_user(monkeypatch: pytest.MonkeyPatch, user: dict[str, Any]) -> None:
    async def _fake_fetch(**_: Any) -> dict[str, Any]:
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)


def _as_analyst(monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(
        monkeypatch,
        {"id": "user-1", "email": "analyst@example.com", "app_metadata": {"role": "analyst"}},
    )


def _create(client: TestClient, inn: str = "1234567890", types: list[str] | None = None):
    return client.post(
        "/verifications",
        json={"inn": inn, "requested_data_types": types or ["BASIC_INFORMATION"]},
        headers=AUTH,
    )


def test_create_requires_bearer_token(api_client: TestClient) -> None:
    response = api_client.post("/verifications", json={"inn": "1234567890", "requested_data_types": ["ACTIVITIES"]})
    assert response.status_code == 401


def test_create_denies_viewer_role(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"id": "user-2", "email": "viewer@example.com", "app_metadata": {}})

    response = _create(api_client)
    assert response.status_code == 403


def test_create_returns_in_process_verification(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _as_analyst(monkeypatch)

    response = _create(api_client, types=["BASIC_INFORMATION", "ACTIVITIES"])
    assert response.status_code == 201
    body = response.json()
    assert body["inn"] == "1234567890"
    assert body["status"] == "IN_PROCESS"
    assert body["author_email"] == "analyst@example.com"
    assert body["requested_data_types"] == ["BASIC_INFORMATION", "ACTIVITIES"]

    bus = app.state.services.bus
    [payload] = bus.messages("verification.create")
    assert json.loads(payload)["verification_id"] == body["id"]


def test_create_rejects_short_inn(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _as_analyst(monkeypatch)

    response = _create(api_client, inn="123")
    assert response.status_code == 422
    assert response.json()["detail"] == "inn must be 10 or 12 digits, got 3"


def test_create_rejects_unknown_data_type(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _as_analyst(monkeypatch)

    response = _create(api_client, types=["CREDIT_SCORE"])
    assert response.status_code == 422


def test_create_reports_bus_failure_and_leaves_no_record(
    api_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _as_analyst(monkeypatch)
    store = InMemoryStore()
    coordinator = LifecycleCoordinator(
        store,
        VerificationDataIndex(store, ContentCache(store)),
        FailingBus(),
        create_topic="verification.create",
    )
    app.dependency_overrides[get_coordinator] = lambda: coordinator

    response = _create(api_client)
    assert response.status_code == 502
    assert store.verifications == {}


def test_list_and_get_verifications(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _as_analyst(monkeypatch)
    first = _create(api_client, inn="1111111111").json()
    second = _create(api_client, inn="222222222222").json()

    listing = api_client.get("/verifications")
    assert listing.status_code == 200
    assert [row["id"] for row in listing.json()] == [second["id"], first["id"]]

    page = api_client.get("/verifications", params={"limit": 1, "offset": 1})
    assert [row["id"] for row in page.json()] == [first["id"]]

    detail = api_client.get(f"/verifications/{first['id']}")
    assert detail.status_code == 200
    assert detail.json()["inn"] == "1111111111"
    assert detail.json()["data"] == []
    assert detail.json()["missing_data_types"] == []


def test_list_rejects_negative_limit(api_client: TestClient) -> None:
    response = api_client.get("/verifications", params={"limit": -1})
    assert response.status_code == 422
    assert response.json()["detail"] == "limit must be non-negative, got -1"


def test_get_unknown_verification_returns_404(api_client: TestClient) -> None:
    response = api_client.get("/verifications/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404

    response = api_client.get("/verifications/00000000-0000-0000-0000-000000000000/data")
    assert response.status_code == 404


def test_data_endpoint_returns_typed_fields(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _as_analyst(monkeypatch)
    created = _create(api_client).json()

    bus = app.state.services.bus
    api_client.portal.call(
        bus.publish,
        "verification.data",
        json.dumps(
            {"verification_id": created["id"], "data_type": "BASIC_INFORMATION", "data": {"name": "Acme"}}
        ).encode("utf-8"),
    )

    response = api_client.get(f"/verifications/{created['id']}/data")
    assert response.status_code == 200
    body = response.json()
    assert body["basic_information"] == {"name": "Acme"}
    assert body["activities"] is None
    assert body["verification"]["data"][0]["data_type"] == "BASIC_INFORMATION"
    assert body["verification"]["data"][0]["data"] == {"name": "Acme"}


def test_corrupt_cached_payload_does_not_break_reads(api_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _as_analyst(monkeypatch)
    created = _create(api_client, types=["ACTIVITIES"]).json()

    services = app.state.services
    record = api_client.portal.call(services.data_index.upsert, created["id"], "ACTIVITIES", {"okved": "62.01"})
    payload, stored_at = services.store.cache[record.content_hash]
    services.store.cache[record.content_hash] = (payload[:-1], stored_at)

    detail = api_client.get(f"/verifications/{created['id']}")
    assert detail.status_code == 200
    assert detail.json()["data"] == []
    assert detail.json()["missing_data_types"] == ["ACTIVITIES"]

    typed = api_client.get(f"/verifications/{created['id']}/data")
    assert typed.status_code == 200
    assert typed.json()["activities"] is None
