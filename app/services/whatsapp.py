"""WhatsApp Cloud API client and webhook payload parsing."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import requests

from app.config import Settings

logger = logging.getLogger("whatsapp_desk")


@dataclass
class SendResult:
    """Outcome of a send attempt."""

    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass
class InboundMessage:
    wa_id: str
    whatsapp_message_id: str
    message_type: str
    content: str
    timestamp: datetime
    profile_name: str | None = None


@dataclass
class StatusUpdate:
    whatsapp_message_id: str
    status: str


def normalize_phone_number(phone: str) -> str:
    """Reduce a phone number or chat id to the bare digits the API expects."""
    phone = str(phone).strip()
    if "@" in phone:
        phone = phone.split("@", 1)[0]
    return phone.replace("+", "").replace(" ", "").replace("-", "").replace("(", "").replace(")", "")


class WhatsAppClient:
    """Sends messages through the WhatsApp Cloud API.

    One client is created at application startup and closed at shutdown; it
    owns a ``requests.Session`` so connections are reused across sends.
    """

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v22.0",
        base_url: str = "https://graph.facebook.com",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self.connected = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "WhatsAppClient":
        return cls(
            access_token=settings.WHATSAPP_ACCESS_TOKEN,
            phone_number_id=settings.WHATSAPP_PHONE_NUMBER_ID,
            api_version=settings.WHATSAPP_API_VERSION,
            base_url=settings.WHATSAPP_API_BASE_URL,
            timeout=settings.WHATSAPP_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/{self.api_version}/{self.phone_number_id}/messages"

    def send(self, destination: str, body: str) -> SendResult:
        """Send a text message. Never raises for transport problems."""
        if not self.configured:
            return SendResult(success=False, error="WhatsApp credentials are not configured")

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": normalize_phone_number(destination),
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }
        headers = {"Authorization": f"Bearer {self.access_token}"}

        try:
            response = self._session.post(self.messages_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout:
            self.connected = False
            return SendResult(success=False, error="WhatsApp API timed out")
        except requests.exceptions.ConnectionError:
            self.connected = False
            return SendResult(success=False, error="Could not connect to WhatsApp API")
        except requests.exceptions.RequestException as e:
            logger.error("WhatsApp request failed: %s", e)
            return SendResult(success=False, error="WhatsApp request failed")

        try:
            data: dict[str, Any] = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.status_code != 200:
            error = data.get("error")
            message = (error.get("message") if isinstance(error, dict) else None) or response.text or "unknown error"
            logger.warning("WhatsApp API returned %d: %s", response.status_code, message)
            return SendResult(success=False, error=f"WhatsApp API error {response.status_code}: {message}")

        messages = data.get("messages") or []
        if not messages or not messages[0].get("id"):
            return SendResult(success=False, error="Unexpected response from WhatsApp API")

        self.connected = True
        return SendResult(success=True, message_id=messages[0]["id"])

    def get_status(self) -> dict[str, bool]:
        return {"configured": self.configured, "connected": self.connected}

    def restart(self) -> None:
        """Drop the HTTP session and start a fresh one."""
        logger.info("Restarting WhatsApp client session")
        self._session.close()
        self._session = requests.Session()
        self.connected = False

    def close(self) -> None:
        self._session.close()
        self.connected = False


def parse_webhook_payload(payload: dict[str, Any]) -> tuple[list[InboundMessage], list[StatusUpdate]]:
    """Extract inbound messages and delivery status updates from a webhook body."""
    inbound: list[InboundMessage] = []
    statuses: list[StatusUpdate] = []

    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            names = {
                c.get("wa_id"): (c.get("profile") or {}).get("name")
                for c in value.get("contacts") or []
            }

            for msg in value.get("messages") or []:
                msg_type = msg.get("type", "other")
                if msg_type == "text":
                    content = (msg.get("text") or {}).get("body", "")
                else:
                    section = msg.get(msg_type) or {}
                    content = section.get("caption") or section.get("body") or f"[{msg_type}]"
                try:
                    timestamp = datetime.fromtimestamp(int(msg.get("timestamp")), timezone.utc).replace(tzinfo=None)
                except (TypeError, ValueError, OverflowError, OSError):
                    timestamp = datetime.utcnow()
                wa_id = msg.get("from", "")
                inbound.append(
                    InboundMessage(
                        wa_id=wa_id,
                        whatsapp_message_id=msg.get("id", ""),
                        message_type=msg_type,
                        content=content,
                        timestamp=timestamp,
                        profile_name=names.get(wa_id),
                    )
                )

            for status in value.get("statuses") or []:
                if status.get("id") and status.get("status"):
                    statuses.append(StatusUpdate(whatsapp_message_id=status["id"], status=status["status"]))

    return inbound, statuses
