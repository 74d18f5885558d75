import pytest
from fastapi.testclient import TestClient

from conftest import case_row
from debtdesk.core.config import settings
from debtdesk.db import InMemoryGateway
from debtdesk.db.gateway import CurrentUser
from debtdesk.main import create_app
from debtdesk.services.case_query import CASES_COLLECTION
from debtdesk.services.error_handling import ACCESS_DENIED_MESSAGE

API = settings.api_prefix

AGENT = {"X-User-Id": "agent-1", "X-User-Role": "AGENT", "X-User-Name": "Alice Agent"}
OTHER_AGENT = {"X-User-Id": "agent-2", "X-User-Role": "AGENT"}
CLIENT = {"X-User-Id": "user-c1", "X-User-Role": "CLIENT", "X-Client-Id": "client-1"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "ADMIN"}


@pytest.fixture
def gateway():
    gateway = InMemoryGateway()
    gateway.seed(CASES_COLLECTION, [
        case_row(i, amount=i * 100, client_id="client-1" if i <= 6 else "client-2", agent_id="agent-1" if i % 2 else "agent-2")
        for i in range(1, 13)
    ])
    return gateway


@pytest.fixture
def client(gateway):
    with TestClient(create_app(gateway)) as test_client:
        yield test_client


def test_health(client):
    assert client.get(f"{API}/health/").json()["status"] == "healthy"
    ready = client.get(f"{API}/health/ready").json()
    assert ready["ready"] is True
    assert ready["checks"]["gateway"]["status"] == "ready"


def test_case_list_pagination(client):
    params = {"sort_by": "amount", "order": "desc"}
    first = client.get(f"{API}/cases", params=params, headers=ADMIN).json()
    second = client.get(f"{API}/cases", params={**params, "page": 2}, headers=ADMIN).json()

    assert [c["id"] for c in first["cases"]] == [f"case-{i}" for i in range(12, 2, -1)]
    assert [c["id"] for c in second["cases"]] == ["case-2", "case-1"]
    assert first["total_pages"] == 2


def test_case_list_is_role_scoped(client):
    body = client.get(f"{API}/cases", params={"search": "debtor"}, headers=CLIENT).json()
    assert body["total_count"] == 6
    assert {c["client_id"] for c in body["cases"]} == {"client-1"}


def test_case_view_and_access_denied(client):
    view = client.get(f"{API}/cases/case-1", headers=AGENT)
    assert view.status_code == 200
    assert view.json()["progress"]["percent"] == 0

    denied = client.get(f"{API}/cases/case-2", headers=AGENT)
    assert denied.status_code == 403
    assert denied.json() == {"detail": ACCESS_DENIED_MESSAGE, "category": "authorization"}

    assert client.get(f"{API}/cases/case-99", headers=ADMIN).status_code == 404


def test_unknown_role_header_is_rejected(client):
    response = client.get(f"{API}/cases", headers={"X-User-Id": "x", "X-User-Role": "ROOT"})
    assert response.status_code == 422


def test_anonymous_cannot_create_case(client):
    response = client.post(f"{API}/cases", json={
        "debtor": {"name": "Acme"}, "amount": "10", "reference": "R-1",
    })
    assert response.status_code == 401


def test_gateway_session_user_is_used_without_headers(gateway):
    gateway.current_user = CurrentUser(id="agent-1", email="agent1@debtdesk.example")
    with TestClient(create_app(gateway)) as test_client:
        body = test_client.get(f"{API}/cases").json()
    assert body["total_count"] == 6


def test_create_case_and_upload_document(client, gateway):
    created = client.post(f"{API}/cases", headers=CLIENT, json={
        "debtor": {"name": "Initrode", "email": "ap@initrode.example", "address": {"city": "Paris", "country": "France"}},
        "amount": "980.00",
        "currency": "EUR",
        "reference": "INV-777",
    })
    assert created.status_code == 201
    case = created.json()
    assert case["client_id"] == "client-1"
    assert case["status"] == "new"

    upload = client.post(
        f"{API}/cases/{case['id']}/documents",
        headers=CLIENT,
        files={"file": ("invoice.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert upload.status_code == 201
    assert upload.json()["reference"] == f"case-documents/{case['id']}/invoice.pdf"

    rejected = client.post(
        f"{API}/cases/{case['id']}/documents",
        headers=CLIENT,
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert rejected.status_code == 422
    assert rejected.json()["category"] == "validation"


NEW_CASE = {
    "debtor": {"name": "Globex", "address": {"city": "Lyon", "country": "France"}},
    "amount": "150.00",
    "reference": "INV-900",
}


def test_client_cannot_create_case_for_another_client(client, gateway):
    response = client.post(f"{API}/cases", headers=CLIENT, json={**NEW_CASE, "client_id": "client-2"})

    assert response.status_code == 403
    assert response.json()["category"] == "authorization"
    assert gateway.writes == []


def test_client_may_name_own_client(client):
    response = client.post(f"{API}/cases", headers=CLIENT, json={**NEW_CASE, "client_id": "client-1"})
    assert response.status_code == 201
    assert response.json()["client_id"] == "client-1"


def test_admin_may_create_case_for_named_client(client):
    response = client.post(f"{API}/cases", headers=ADMIN, json={**NEW_CASE, "client_id": "client-2"})
    assert response.status_code == 201
    assert response.json()["client_id"] == "client-2"


def test_actions_endpoints(client):
    logged = client.post(f"{API}/cases/case-1/actions", headers=AGENT, json={
        "action_type": "legal_notice", "description": "Sent final notice", "priority": "urgent",
    })
    assert logged.status_code == 201
    assert logged.json()["display"]["label"] == "Legal Notice Sent"
    assert logged.json()["action"]["metadata"]["priority"] == "urgent"

    forbidden = client.post(f"{API}/cases/case-1/actions", headers=ADMIN, json={
        "action_type": "meeting", "description": "Visit",
    })
    assert forbidden.status_code == 403

    listed = client.get(f"{API}/cases/case-1/actions", headers=CLIENT).json()
    assert [e["action"]["action_type"] for e in listed] == ["legal_notice"]

    taxonomy = client.get(f"{API}/actions/taxonomy").json()
    assert "Negotiation" in taxonomy


def test_conversation_flow(client):
    created = client.post(f"{API}/conversations", headers=AGENT, json={
        "title": "Settlement", "type": "case", "case_id": "case-1",
        "participants": [{"user_id": "agent-2"}, {"user_id": "agent-1"}],
    })
    assert created.status_code == 201
    conversation_id = created.json()["id"]
    assert len(created.json()["participants"]) == 2

    sent = client.post(f"{API}/conversations/{conversation_id}/messages", headers=AGENT, json={"content": "hello"})
    assert sent.status_code == 201

    messages = client.get(f"{API}/conversations/{conversation_id}/messages", headers=OTHER_AGENT).json()
    assert [m["content"] for m in messages] == ["hello"]

    listed = client.get(f"{API}/conversations", headers=OTHER_AGENT).json()
    assert listed[0]["last_message"]["content"] == "hello"

    assert client.post(f"{API}/conversations/{conversation_id}/read", headers=OTHER_AGENT).json() == {"status": "ok"}

    detail = client.get(f"{API}/cases/case-1/detail", headers=AGENT).json()
    assert [c["id"] for c in detail["conversations"]] == [conversation_id]
    assert detail["can_log_actions"] is True


def test_case_conversation_without_case_id_is_rejected(client):
    response = client.post(f"{API}/conversations", headers=AGENT, json={"type": "case"})
    assert response.status_code == 422


def test_websocket_streams_new_messages(client):
    conversation_id = client.post(f"{API}/conversations", headers=AGENT, json={
        "type": "direct", "participants": [{"user_id": "agent-2"}],
    }).json()["id"]

    with client.websocket_connect(f"/ws/conversations/{conversation_id}?user_id=agent-2&role=AGENT") as ws:
        assert ws.receive_json()["type"] == "connection_established"
        assert ws.receive_json()["type"] == "subscribed"

        client.post(f"{API}/conversations/{conversation_id}/messages", headers=AGENT, json={"content": "ping over ws"})
        pushed = ws.receive_json()
        assert pushed["type"] == "message"
        assert pushed["message"]["content"] == "ping over ws"

        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_metrics_endpoint(client):
    client.get(f"{API}/health/")
    assert "http_requests_total" in client.get("/metrics/").text


def test_docs_are_hidden_in_production(gateway, monkeypatch):
    with TestClient(create_app(gateway)) as test_client:
        assert test_client.get("/docs").status_code == 200

    monkeypatch.setattr(settings, "app_env", "production")
    with TestClient(create_app(gateway)) as test_client:
        assert test_client.get("/docs").status_code == 404
        assert test_client.get("/openapi.json").status_code == 200
