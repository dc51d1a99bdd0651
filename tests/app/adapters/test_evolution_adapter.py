"""Tests for the gateway adapter (webhook parsing and history source)."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from app.adapters.evolution import (
    EvolutionAdapter,
    EvolutionSyncSource,
    candidate_from_record,
    extract_content,
    map_message_type,
    map_status,
    normalize_event_name,
    parse_timestamp,
)
from app.core.errors import MalformedEvent, SourceUnavailable
from app.schemas.evolution import MessageStatusUpdateEvent, MessageUpsertEvent
from tests.fixtures.message_fixtures import CONTACT_JID, evolution_record, status_payload, upsert_payload


@pytest.fixture
def adapter():
    return EvolutionAdapter()


@pytest.mark.parametrize("name", ["MESSAGES_UPSERT", "messages.upsert", "Messages-Upsert"])
def test_normalize_event_name(name):
    assert normalize_event_name(name) == "messages.upsert"


def test_parse_upsert(adapter):
    event = adapter.parse_webhook(upsert_payload("inst-1", external_id="ABC", text="halo"))
    assert isinstance(event, MessageUpsertEvent)
    assert event.platform_instance == "inst-1"
    assert event.message_key.remote_id == CONTACT_JID
    assert event.message_key.external_id == "ABC"
    assert event.raw["message"] == {"conversation": "halo"}

    candidate = adapter.to_candidate(event)
    assert candidate.content == "halo"
    assert candidate.external_timestamp == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert candidate.contact_name == "Budi"


@pytest.mark.parametrize("name", ["MESSAGES_UPSERT", "SEND_MESSAGE", "send.message"])
def test_parse_upsert_aliases(adapter, name):
    event = adapter.parse_webhook(upsert_payload("inst-1", event=name))
    assert isinstance(event, MessageUpsertEvent)


def test_parse_upsert_unwraps_single_item_list(adapter):
    payload = upsert_payload("inst-1")
    payload["data"] = [payload["data"]]
    assert isinstance(adapter.parse_webhook(payload), MessageUpsertEvent)


def test_parse_status_update(adapter):
    event = adapter.parse_webhook(status_payload("inst-1", "ABC", "READ"))
    assert isinstance(event, MessageStatusUpdateEvent)
    assert event.message_key.external_id == "ABC"
    assert event.status == "read"


def test_unknown_event_type_is_rejected(adapter):
    with pytest.raises(MalformedEvent):
        adapter.parse_webhook({"event": "presence.update", "instance": "inst-1", "data": {}})


@pytest.mark.parametrize(
    "payload",
    [
        {"instance": "inst-1", "data": {}},
        {"event": "messages.upsert", "instance": "inst-1", "data": {"key": {}}},
        {"event": "messages.upsert", "instance": "inst-1", "data": "oops"},
        {"event": "messages.update", "instance": "inst-1", "data": {"key": {}}},
    ],
)
def test_malformed_payloads_are_rejected(adapter, payload):
    with pytest.raises(MalformedEvent):
        adapter.parse_webhook(payload)


def test_verify_webhook():
    adapter = EvolutionAdapter(webhook_secret="s3cret")
    assert adapter.verify_webhook(None, {"apikey": "s3cret"})
    assert adapter.verify_webhook(None, {"X-Webhook-Secret": "s3cret"})
    assert not adapter.verify_webhook(None, {"apikey": "wrong"})
    assert not adapter.verify_webhook(None, {})
    assert EvolutionAdapter().verify_webhook(None, {})


def test_to_candidate_matches_history_record(adapter):
    record = evolution_record(external_id="ABC", text="halo")
    event = adapter.parse_webhook({"event": "messages.upsert", "instance": "inst-1", "data": record})
    from_webhook = adapter.to_candidate(event)
    from_history = candidate_from_record(record, "inst-1")

    assert from_webhook.model_dump() == from_history.model_dump()
    assert from_webhook.created_at == from_webhook.external_timestamp


def test_candidate_from_outbound_record():
    record = evolution_record(from_me=True, push_name="Me")
    candidate = candidate_from_record(record, "inst-1")
    assert candidate.direction == "outbound"
    assert candidate.sender_type == "agent"
    assert candidate.sender_id == "inst-1"
    assert candidate.contact_name is None


def test_candidate_from_group_record_uses_subject():
    record = evolution_record(
        remote_jid="120363025246125486@g.us",
        groupMetadata={"subject": "Family"},
    )
    record["key"]["participant"] = "6281234567890@s.whatsapp.net"
    candidate = candidate_from_record(record, "inst-1")
    assert candidate.contact_name == "Family"
    assert candidate.sender_id == "6281234567890@s.whatsapp.net"


@pytest.mark.parametrize(
    "value, expected",
    [
        (1772366400, datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)),
        (1772366400000, datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)),
        ("1772366400", datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)),
        ({"low": 1772366400, "high": 0}, datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)),
        ("2026-03-01T12:00:00Z", datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)),
        (None, None),
        ("garbage", None),
    ],
)
def test_parse_timestamp(value, expected):
    assert parse_timestamp(value) == expected


def test_extract_content_and_types():
    assert extract_content({"extendedTextMessage": {"text": "long"}}, "extendedTextMessage") == "long"
    assert extract_content({"imageMessage": {"caption": "cat"}}, "imageMessage") == "[Image] cat"
    assert extract_content({}, "stickerMessage") == "[stickerMessage]"
    assert map_message_type("imageMessage") == "media"
    assert map_message_type("reactionMessage") == "status"
    assert map_message_type("conversation") == "text"
    assert map_status("DELIVERY_ACK") == "delivered"
    assert map_status(None) == "delivered"


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = "" if payload is None else str(payload)
    return response


@pytest.fixture
def source():
    return EvolutionSyncSource("http://gateway:8080/", "key", "inst-1", page_size=2)


@patch("app.adapters.evolution.requests.post")
def test_fetch_page_reads_paged_records(mock_post, source):
    mock_post.return_value = _response(
        payload={
            "messages": {
                "total": 3,
                "pages": 2,
                "currentPage": 1,
                "records": [
                    evolution_record(external_id="B", timestamp=1772366500),
                    evolution_record(external_id="A", timestamp=1772366400),
                    {"key": {}},
                ],
            }
        }
    )
    page = source.fetch_page(CONTACT_JID)

    assert [m.external_message_id for m in page.messages] == ["A", "B"]
    assert page.next_cursor == "2"
    assert len(page.errors) == 1
    url = mock_post.call_args.args[0]
    assert url == "http://gateway:8080/chat/findMessages/inst-1"
    assert mock_post.call_args.kwargs["json"]["where"] == {"key": {"remoteJid": CONTACT_JID}}
    assert mock_post.call_args.kwargs["headers"]["apikey"] == "key"


@patch("app.adapters.evolution.requests.post")
def test_fetch_last_page_has_no_cursor(mock_post, source):
    mock_post.return_value = _response(
        payload={"messages": {"pages": 2, "currentPage": 2, "records": []}}
    )
    assert source.fetch_page(CONTACT_JID, "2").next_cursor is None
    assert mock_post.call_args.kwargs["json"]["page"] == 2


@patch("app.adapters.evolution.requests.post")
def test_list_contacts_skips_broadcast(mock_post, source):
    mock_post.return_value = _response(
        payload=[
            {"remoteJid": CONTACT_JID, "pushName": "Budi"},
            {"remoteJid": "status@broadcast"},
            {"id": "120363@g.us", "name": "Family"},
        ]
    )
    contacts = source.list_contacts()
    assert [(c.remote_id, c.name) for c in contacts] == [
        (CONTACT_JID, "Budi"),
        ("120363@g.us", "Family"),
    ]


@pytest.mark.parametrize("status_code", [401, 403, 500, 503])
@patch("app.adapters.evolution.requests.post")
def test_http_errors_raise_source_unavailable(mock_post, source, status_code):
    mock_post.return_value = _response(status_code=status_code)
    with pytest.raises(SourceUnavailable):
        source.fetch_page(CONTACT_JID)


@patch("app.adapters.evolution.requests.post")
def test_network_errors_raise_source_unavailable(mock_post, source):
    mock_post.side_effect = requests.ConnectionError("refused")
    with pytest.raises(SourceUnavailable):
        source.list_contacts()
