"""Tests for the conversations and instances routers."""

from uuid import uuid4

from fastapi.testclient import TestClient

from tests.fixtures.message_fixtures import at


def test_list_conversations(client: TestClient, setup_conversation):
    r = client.get("/conversations")
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 1
    assert data["items"][0]["id"] == str(setup_conversation.id)


def test_list_conversations_filters_by_owner(client: TestClient, setup_conversation):
    r = client.get("/conversations", params={"owner_id": "someone-else"})
    assert r.status_code == 200
    assert r.json()["items"] == []


def test_get_conversation(client: TestClient, setup_conversation):
    r = client.get(f"/conversations/{setup_conversation.id}")
    assert r.status_code == 200
    assert r.json()["contact_id"] == setup_conversation.contact_id


def test_get_conversation_not_found(client: TestClient):
    r = client.get(f"/conversations/{uuid4()}")
    assert r.status_code == 404


def test_list_conversation_messages(client: TestClient, setup_conversation, store_message):
    store_message(setup_conversation, "B", "second", at(2))
    store_message(setup_conversation, "A", "first", at(1))
    r = client.get(f"/conversations/{setup_conversation.id}/messages")
    assert r.status_code == 200
    assert [m["content"] for m in r.json()["items"]] == ["first", "second"]


def test_create_and_list_instances(client: TestClient):
    payload = {"instance_key": "sales-1", "owner_id": "owner-1", "display_name": "Sales"}
    r = client.post("/instances", json=payload)
    assert r.status_code == 201
    created = r.json()
    assert created["platform"] == "whatsapp"

    assert client.post("/instances", json=payload).status_code == 409
    assert [i["instance_key"] for i in client.get("/instances").json()] == ["sales-1"]
    assert client.get(f"/instances/{created['id']}").status_code == 200
    assert client.get(f"/instances/{uuid4()}").status_code == 404


def test_metrics_endpoint(client: TestClient):
    r = client.get("/metrics/")
    assert r.status_code == 200
    assert "conversync_messages_reconciled_total" in r.text
