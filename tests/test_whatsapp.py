"""Tests for the WhatsApp gateway endpoints."""

import hashlib
import hmac
import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.contact import Contact
from app.models.message import Message
from app.services.gateway import GREETING_REPLY


def _settings(verify_token: str = "verify-me", app_secret: str = "", development: bool = True) -> MagicMock:
    return MagicMock(
        WHATSAPP_VERIFY_TOKEN=verify_token, WHATSAPP_APP_SECRET=app_secret, is_development=development
    )


def _webhook(messages=None, statuses=None, contacts=None) -> dict:
    value = {"messaging_product": "whatsapp"}
    if messages is not None:
        value["messages"] = messages
    if statuses is not None:
        value["statuses"] = statuses
    if contacts is not None:
        value["contacts"] = contacts
    return {"object": "whatsapp_business_account", "entry": [{"id": "1", "changes": [{"field": "messages", "value": value}]}]}


class TestStatusAndRestart:
    def test_status(self, client: TestClient, test_user: dict):
        response = client.get("/api/whatsapp/status", headers=test_user["headers"])
        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {"configured": True, "connected": True}}

    def test_status_requires_auth(self, client: TestClient):
        assert client.get("/api/whatsapp/status").status_code == 401

    def test_restart(self, client: TestClient, admin: dict, whatsapp):
        response = client.post("/api/whatsapp/restart", headers=admin["headers"])
        assert response.status_code == 200
        assert response.json()["message"] == "WhatsApp session restarted"
        assert whatsapp.restarts == 1


class TestSend:
    """Tests for sending by phone number."""

    def test_send_creates_contact(self, client: TestClient, test_user: dict, whatsapp, db_session: Session):
        response = client.post(
            "/api/whatsapp/send",
            json={"to": "5511977776666", "message": "Bem-vindo"},
            headers=test_user["headers"],
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "message_id": "wamid.1"}

        contact = db_session.query(Contact).filter(Contact.phone_number == "5511977776666").one()
        assert contact.name == "Contact 5511977776666"
        message = db_session.query(Message).one()
        assert message.contact_id == contact.id
        assert message.direction == "outgoing"

    def test_send_reuses_existing_contact(self, client: TestClient, test_user: dict, contact, db_session: Session):
        client.post(
            "/api/whatsapp/send",
            json={"to": contact.phone_number, "message": "Again"},
            headers=test_user["headers"],
        )
        assert db_session.query(Contact).count() == 1

    def test_send_failure(self, client: TestClient, test_user: dict, whatsapp, db_session: Session):
        whatsapp.failing_numbers.add("5511900000000")
        response = client.post(
            "/api/whatsapp/send",
            json={"to": "5511900000000", "message": "hi"},
            headers=test_user["headers"],
        )
        assert response.status_code == 502
        assert response.json()["success"] is False
        assert db_session.query(Message).count() == 0


class TestSendBulk:
    def test_bulk_with_failures(self, client: TestClient, manager: dict, whatsapp, db_session: Session):
        good = Contact(phone_number="5511911111111", name="Good", tags=[])
        bad = Contact(phone_number="5511922222222", name="Bad", tags=[])
        db_session.add_all([good, bad])
        db_session.commit()
        whatsapp.failing_numbers.add(bad.phone_number)

        response = client.post(
            "/api/whatsapp/send-bulk",
            json={"contacts": [good.id, bad.id, 999], "message": "Promo"},
            headers=manager["headers"],
        )
        assert response.status_code == 200
        body = response.json()
        assert body["total_sent"] == 1
        assert body["total_failed"] == 2
        assert body["results"] == [{"contact_id": good.id, "success": True, "message_id": "wamid.1"}]
        assert {"contact_id": 999, "error": "Contact not found"} in body["errors"]
        assert {"contact_id": bad.id, "error": "Recipient is not on WhatsApp"} in body["errors"]

    def test_bulk_requires_manager(self, client: TestClient, test_user: dict, contact):
        response = client.post(
            "/api/whatsapp/send-bulk",
            json={"contacts": [contact.id], "message": "Promo"},
            headers=test_user["headers"],
        )
        assert response.status_code == 403

    def test_bulk_empty_list(self, client: TestClient, manager: dict):
        response = client.post("/api/whatsapp/send-bulk", json={"contacts": [], "message": "x"}, headers=manager["headers"])
        assert response.status_code == 400


class TestWebhookVerification:
    def test_verify(self, client: TestClient):
        with patch("app.routers.whatsapp.get_settings", return_value=_settings()):
            response = client.get(
                "/api/whatsapp/webhook",
                params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "12345"},
            )
        assert response.status_code == 200
        assert response.text == "12345"

    def test_verify_wrong_token(self, client: TestClient):
        with patch("app.routers.whatsapp.get_settings", return_value=_settings()):
            response = client.get(
                "/api/whatsapp/webhook",
                params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "12345"},
            )
        assert response.status_code == 403

    def test_verify_when_unconfigured(self, client: TestClient):
        with patch("app.routers.whatsapp.get_settings", return_value=_settings(verify_token="")):
            response = client.get(
                "/api/whatsapp/webhook",
                params={"hub.mode": "subscribe", "hub.verify_token": "", "hub.challenge": "12345"},
            )
        assert response.status_code == 403


class TestWebhookIngest:
    """Tests for inbound messages and delivery receipts."""

    @pytest.fixture(autouse=True)
    def _no_signature(self):
        with patch("app.routers.whatsapp.get_settings", return_value=_settings()):
            yield

    def test_inbound_text_creates_contact(self, client: TestClient, db_session: Session):
        payload = _webhook(
            contacts=[{"wa_id": "5511955554444", "profile": {"name": "Ana"}}],
            messages=[
                {"from": "5511955554444", "id": "wamid.IN1", "timestamp": "1700000000", "type": "text",
                 "text": {"body": "Oi"}},
            ],
        )
        response = client.post("/api/whatsapp/webhook", json=payload)
        assert response.status_code == 200
        assert response.json() == {"success": True, "received": 1, "status_updates": 0}

        contact = db_session.query(Contact).one()
        assert contact.name == "Ana"
        message = db_session.query(Message).one()
        assert message.direction == "incoming"
        assert message.content == "Oi"
        assert message.status == "delivered"
        assert contact.last_contact_at == message.timestamp

    def test_redelivery_is_ignored(self, client: TestClient, db_session: Session):
        payload = _webhook(
            messages=[{"from": "5511955554444", "id": "wamid.DUP", "timestamp": "1700000000", "type": "text",
                       "text": {"body": "Oi"}}],
        )
        client.post("/api/whatsapp/webhook", json=payload)
        second = client.post("/api/whatsapp/webhook", json=payload)
        assert second.json()["received"] == 0
        assert db_session.query(Message).count() == 1

    def test_media_and_unknown_types(self, client: TestClient, db_session: Session):
        payload = _webhook(
            messages=[
                {"from": "5511955554444", "id": "wamid.IMG", "timestamp": "1700000000", "type": "image",
                 "image": {"caption": "look", "id": "media-1"}},
                {"from": "5511955554444", "id": "wamid.STK", "timestamp": "1700000001", "type": "sticker",
                 "sticker": {"id": "media-2"}},
            ],
        )
        client.post("/api/whatsapp/webhook", json=payload)
        messages = {m.whatsapp_message_id: m for m in db_session.query(Message).all()}
        assert messages["wamid.IMG"].message_type == "image"
        assert messages["wamid.IMG"].content == "look"
        assert messages["wamid.STK"].message_type == "other"
        assert messages["wamid.STK"].content == "[sticker]"

    def test_status_updates(self, client: TestClient, manager: dict, contact, db_session: Session):
        sent = client.post(
            "/api/messages/", json={"contact_id": contact.id, "content": "hi"}, headers=manager["headers"]
        ).json()["data"]

        payload = _webhook(
            statuses=[
                {"id": sent["whatsapp_message_id"], "status": "read", "timestamp": "1700000100"},
                {"id": "wamid.UNKNOWN", "status": "read"},
                {"id": sent["whatsapp_message_id"], "status": "warped"},
            ],
        )
        response = client.post("/api/whatsapp/webhook", json=payload)
        assert response.json()["status_updates"] == 1

        message = db_session.get(Message, sent["id"])
        db_session.refresh(message)
        assert message.status == "read"

    def test_invalid_json(self, client: TestClient):
        response = client.post(
            "/api/whatsapp/webhook", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400

    def test_non_object_body(self, client: TestClient):
        response = client.post("/api/whatsapp/webhook", json=[1, 2, 3])
        assert response.status_code == 400


class TestWebhookSignature:
    def test_signature_required_when_secret_set(self, client: TestClient):
        body = json.dumps(_webhook(messages=[])).encode("utf-8")
        with patch("app.routers.whatsapp.get_settings", return_value=_settings(app_secret="shh")):
            unsigned = client.post(
                "/api/whatsapp/webhook", content=body, headers={"Content-Type": "application/json"}
            )
            signature = "sha256=" + hmac.new(b"shh", body, hashlib.sha256).hexdigest()
            signed = client.post(
                "/api/whatsapp/webhook",
                content=body,
                headers={"Content-Type": "application/json", "X-Hub-Signature-256": signature},
            )
        assert unsigned.status_code == 403
        assert signed.status_code == 200


class TestWebhookWithoutSecret:
    """Unsigned webhooks are refused unless running in development."""

    def _post_text(self, client: TestClient):
        payload = _webhook(
            messages=[{"from": "5511955554444", "id": "wamid.NS1", "timestamp": "1700000000", "type": "text",
                       "text": {"body": "Oi"}}],
        )
        return client.post("/api/whatsapp/webhook", json=payload)

    def test_rejected_outside_development(self, client: TestClient, db_session: Session):
        with patch("app.routers.whatsapp.get_settings", return_value=_settings(development=False)):
            response = self._post_text(client)
        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "Webhook signature secret is not configured"}
        assert db_session.query(Message).count() == 0
        assert db_session.query(Contact).count() == 0

    def test_rejected_with_default_settings(self, client: TestClient, db_session: Session, default_settings):
        with patch("app.routers.whatsapp.get_settings", return_value=default_settings):
            response = self._post_text(client)
        assert response.status_code == 403
        assert db_session.query(Message).count() == 0

    def test_startup_warns_about_missing_secret(self, default_settings):
        warnings = default_settings.validate()
        assert any("WHATSAPP_APP_SECRET" in w for w in warnings)

    def test_accepted_in_development(self, client: TestClient):
        with patch("app.routers.whatsapp.get_settings", return_value=_settings(development=True)):
            response = self._post_text(client)
        assert response.status_code == 200


class TestPhoneNormalization:
    """Outbound and inbound traffic for one number share a contact."""

    @pytest.fixture(autouse=True)
    def _development_settings(self):
        with patch("app.routers.whatsapp.get_settings", return_value=_settings()):
            yield

    def test_send_then_reply_share_contact(self, client: TestClient, test_user: dict, whatsapp, db_session: Session):
        sent = client.post(
            "/api/whatsapp/send",
            json={"to": "+55 11 99999-0000", "message": "Olá Maria"},
            headers=test_user["headers"],
        )
        assert sent.status_code == 200
        assert whatsapp.sent == [("5511999990000", "Olá Maria")]

        reply = _webhook(
            messages=[{"from": "5511999990000", "id": "wamid.R1", "timestamp": "1700000000", "type": "text",
                       "text": {"body": "Obrigada"}}],
        )
        assert client.post("/api/whatsapp/webhook", json=reply).json()["received"] == 1

        contacts = db_session.query(Contact).all()
        assert [c.phone_number for c in contacts] == ["5511999990000"]
        messages = db_session.query(Message).all()
        assert {m.contact_id for m in messages} == {contacts[0].id}
        assert {m.direction for m in messages} == {"incoming", "outgoing"}

    def test_send_to_formatted_number_reuses_contact(
        self, client: TestClient, test_user: dict, contact, db_session: Session
    ):
        response = client.post(
            "/api/whatsapp/send",
            json={"to": "+55 (11) 99999-0000", "message": "Again"},
            headers=test_user["headers"],
        )
        assert response.status_code == 200
        assert db_session.query(Contact).count() == 1

    def test_send_to_number_without_digits(self, client: TestClient, test_user: dict, db_session: Session):
        response = client.post("/api/whatsapp/send", json={"to": "+ ( ) -", "message": "x"}, headers=test_user["headers"])
        assert response.status_code == 400
        assert response.json()["error"] == "Phone number must contain digits"
        assert db_session.query(Contact).count() == 0


class TestGreetingReply:
    """Inbound greetings get an automatic reply."""

    @pytest.fixture(autouse=True)
    def _development_settings(self):
        with patch("app.routers.whatsapp.get_settings", return_value=_settings()):
            yield

    def _inbound(self, body: str, message_id: str = "wamid.G1") -> dict:
        return _webhook(
            messages=[{"from": "5511955554444", "id": message_id, "timestamp": "1700000000", "type": "text",
                       "text": {"body": body}}],
        )

    def test_greeting_is_answered(self, client: TestClient, whatsapp, db_session: Session):
        response = client.post("/api/whatsapp/webhook", json=self._inbound("Olá, tudo bem?"))
        assert response.json()["received"] == 1
        assert whatsapp.sent == [("5511955554444", GREETING_REPLY)]

        outgoing = db_session.query(Message).filter(Message.direction == "outgoing").one()
        assert outgoing.content == GREETING_REPLY

    def test_unaccented_greeting(self, client: TestClient, whatsapp):
        client.post("/api/whatsapp/webhook", json=self._inbound("OLA"))
        assert len(whatsapp.sent) == 1

    def test_word_containing_ola_is_not_a_greeting(self, client: TestClient, whatsapp):
        client.post("/api/whatsapp/webhook", json=self._inbound("Vou para a escola"))
        assert whatsapp.sent == []

    def test_failed_reply_keeps_inbound_message(self, client: TestClient, whatsapp, db_session: Session):
        whatsapp.failing_numbers.add("5511955554444")
        response = client.post("/api/whatsapp/webhook", json=self._inbound("olá"))
        assert response.status_code == 200
        assert response.json()["received"] == 1
        assert db_session.query(Message).count() == 1
