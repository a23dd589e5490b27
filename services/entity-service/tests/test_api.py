from __future__ import annotations

import time
from datetime import datetime

import jwt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import make_entity
from entity_service.api import routes
from entity_service.config import get_settings
from entity_service.domain.allocator import BusinessEntityIdAllocator
from entity_service.domain.identifiers import ENTITY_ID_PREFIX
from entity_service.domain.service import BusinessEntityService


def _bearer(user_id: str, **claims) -> dict[str, str]:
    settings = get_settings()
    now = int(time.time())
    payload = {"sub": user_id, "iss": settings.jwt_issuer, "iat": now, "exp": now + 300}
    payload.update(claims)
    token = jwt.encode(payload, settings.jwt_secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def _build_client(service: BusinessEntityService) -> TestClient:
    app = FastAPI()
    app.include_router(routes.router)
    app.state.entity_service = service
    return TestClient(app)


@pytest.fixture
def api_client(service, repository):
    """Provide a FastAPI test client with isolated state."""
    with _build_client(service) as client:
        yield client, repository


def test_create_business_entity_allocates_prefixed_id(api_client):
    client, repository = api_client

    response = client.post(
        "/v1/business-entities",
        json={"name": "Acme LLC", "entity_type": "LLC", "state": "CA"},
        headers=_bearer("u1"),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["entity_id"].startswith(ENTITY_ID_PREFIX)
    assert len(body["entity_id"]) == 12
    assert body["display_id"] == body["entity_id"]
    assert body["legacy_id"] is False
    assert body["user_id"] == "u1"
    assert body["status"] == "draft"
    assert repository.entities[body["entity_id"]].name == "Acme LLC"


def test_requests_without_valid_token_are_rejected(api_client):
    client, _ = api_client

    missing = client.get("/v1/business-entities")
    assert missing.status_code == 401
    assert missing.headers["www-authenticate"] == "Bearer"

    wrong_scheme = client.get("/v1/business-entities", headers={"Authorization": "Basic abc"})
    assert wrong_scheme.status_code == 401

    expired = client.get(
        "/v1/business-entities", headers=_bearer("u1", exp=int(time.time()) - 60)
    )
    assert expired.status_code == 401

    forged = client.get(
        "/v1/business-entities", headers=_bearer("u1", iss="someone-else")
    )
    assert forged.status_code == 401


def test_other_users_cannot_see_or_update_entity(api_client):
    client, repository = api_client
    created = client.post(
        "/v1/business-entities", json={"name": "Acme LLC"}, headers=_bearer("u1")
    ).json()
    entity_id = created["entity_id"]

    assert client.get(f"/v1/business-entities/{entity_id}", headers=_bearer("u2")).status_code == 404
    patched = client.patch(
        f"/v1/business-entities/{entity_id}", json={"status": "active"}, headers=_bearer("u2")
    )
    assert patched.status_code == 404
    assert repository.entities[entity_id].status == "draft"


def test_owner_update_refreshes_updated_at(api_client):
    client, _ = api_client
    created = client.post(
        "/v1/business-entities",
        json={"name": "Acme LLC", "entity_type": "LLC", "state": "CA", "status": "draft"},
        headers=_bearer("u1"),
    ).json()

    response = client.patch(
        f"/v1/business-entities/{created['entity_id']}",
        json={"status": "active"},
        headers=_bearer("u1"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "active"
    assert body["name"] == "Acme LLC"
    assert datetime.fromisoformat(body["updated_at"]) > datetime.fromisoformat(body["created_at"])


def test_empty_update_is_rejected(api_client):
    client, repository = api_client
    repository.seed(make_entity(f"{ENTITY_ID_PREFIX}4", "u1"))

    response = client.patch(f"/v1/business-entities/{ENTITY_ID_PREFIX}4", json={}, headers=_bearer("u1"))
    assert response.status_code == 400
    assert repository.update_calls == []


def test_legacy_numeric_entities_remain_reachable(api_client):
    client, repository = api_client
    repository.seed(make_entity("42", "u1"))

    response = client.get("/v1/business-entities/42", headers=_bearer("u1"))

    assert response.status_code == 200
    body = response.json()
    assert body["entity_id"] == "42"
    assert body["display_id"] == "42"
    assert body["legacy_id"] is True


def test_list_only_returns_callers_entities(api_client):
    client, repository = api_client
    repository.seed(make_entity("42", "u1"))
    repository.seed(make_entity("43", "u2"))
    client.post("/v1/business-entities", json={"name": "Acme LLC"}, headers=_bearer("u1"))

    response = client.get("/v1/business-entities", headers=_bearer("u1"))

    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["user_id"] for item in items] == ["u1", "u1"]
    assert items[0]["entity_id"] == "42"


def test_exhausted_namespace_returns_service_unavailable(repository, lock):
    for digit in range(10):
        repository.seed(make_entity(f"{ENTITY_ID_PREFIX}{digit}", "someone"))
    allocator = BusinessEntityIdAllocator(
        repository.entity_id_exists, max_attempts=3, sleep=lambda _: None
    )
    service = BusinessEntityService(repository, allocator, lock)

    with _build_client(service) as client:
        response = client.post("/v1/business-entities", json={"name": "Late Co"}, headers=_bearer("u1"))

    assert response.status_code == 503
    assert response.json()["detail"] == "no business entity id available"
    assert len(repository.entities) == 10


def test_link_mailbox_subscription(api_client):
    client, repository = api_client
    repository.seed(make_entity(f"{ENTITY_ID_PREFIX}8", "u1"))

    response = client.put(
        "/v1/mailbox-subscriptions/31/business-entity",
        json={"business_entity_id": f"{ENTITY_ID_PREFIX}8"},
        headers=_bearer("u1"),
    )

    assert response.status_code == 204
    assert repository.mailbox_links == {31: f"{ENTITY_ID_PREFIX}8"}


def test_link_mailbox_requires_canonical_id(api_client):
    client, repository = api_client
    repository.seed(make_entity("42", "u1"))

    response = client.put(
        "/v1/mailbox-subscriptions/31/business-entity",
        json={"business_entity_id": "42"},
        headers=_bearer("u1"),
    )

    assert response.status_code == 422
    assert repository.mailbox_links == {}


def test_link_mailbox_to_foreign_entity_is_not_found(api_client):
    client, repository = api_client
    repository.seed(make_entity(f"{ENTITY_ID_PREFIX}8", "u2"))

    response = client.put(
        "/v1/mailbox-subscriptions/31/business-entity",
        json={"business_entity_id": f"{ENTITY_ID_PREFIX}8"},
        headers=_bearer("u1"),
    )

    assert response.status_code == 404
    assert repository.mailbox_links == {}


def test_explicit_null_clears_nullable_attribute(api_client):
    client, repository = api_client
    repository.seed(make_entity(f"{ENTITY_ID_PREFIX}2", "u1", name="Acme LLC", state="CA"))

    response = client.patch(
        f"/v1/business-entities/{ENTITY_ID_PREFIX}2", json={"name": None}, headers=_bearer("u1")
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] is None
    assert body["state"] == "CA"
    assert repository.entities[f"{ENTITY_ID_PREFIX}2"].name is None


def test_null_status_is_rejected(api_client):
    client, repository = api_client
    repository.seed(make_entity(f"{ENTITY_ID_PREFIX}2", "u1"))

    response = client.patch(
        f"/v1/business-entities/{ENTITY_ID_PREFIX}2", json={"status": None}, headers=_bearer("u1")
    )

    assert response.status_code == 422
    assert repository.update_calls == []
