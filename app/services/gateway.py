"""WhatsApp gateway: sending by phone number, bulk sends and inbound webhooks."""

import logging
import re

from sqlalchemy.orm import Session

from app.models.contact import Contact
from app.models.message import Message, MessageDirection, MessageStatus, MessageType
from app.services.contact import ContactError, ContactService, DuplicatePhoneError, get_contact_service
from app.services.message import MessageSendError, MessageService, get_message_service
from app.services.whatsapp import WhatsAppClient, normalize_phone_number, parse_webhook_payload

logger = logging.getLogger("whatsapp_desk")

KNOWN_STATUSES = {s.value for s in MessageStatus}
KNOWN_TYPES = {t.value for t in MessageType}

GREETING_PATTERN = re.compile(r"\bol[aá]\b", re.IGNORECASE)
GREETING_REPLY = "Olá! Como posso ajudar você hoje?"


class GatewayService:
    """Bridges the WhatsApp transport and the contact/message store."""

    def __init__(
        self,
        contacts: ContactService | None = None,
        messages: MessageService | None = None,
    ) -> None:
        self.contacts = contacts or get_contact_service()
        self.messages = messages or get_message_service()

    def find_or_create_contact(self, db: Session, phone_number: str, name: str | None = None) -> Contact:
        phone_number = normalize_phone_number(phone_number)
        contact = self.contacts.get_by_phone(db, phone_number)
        if contact:
            return contact
        logger.info("Creating contact for %s", phone_number)
        try:
            return self.contacts.create_contact(db, phone_number=phone_number, name=name or f"Contact {phone_number}")
        except DuplicatePhoneError:
            contact = self.contacts.get_by_phone(db, phone_number)
            if contact is None:
                raise
            return contact

    def send_to_number(self, db: Session, client: WhatsAppClient, to: str, body: str) -> Message:
        """Send to a phone number, creating the contact on first use."""
        contact = self.find_or_create_contact(db, to)
        return self.messages.send_message(db, client, contact, body)

    def send_bulk(self, db: Session, client: WhatsAppClient, contact_ids: list[int], body: str) -> dict:
        """Send one message to many contacts; failures do not stop the batch."""
        results: list[dict] = []
        errors: list[dict] = []

        for contact_id in contact_ids:
            contact = self.contacts.get_contact(db, contact_id)
            if not contact:
                errors.append({"contact_id": contact_id, "error": "Contact not found"})
                continue
            try:
                message = self.messages.send_message(db, client, contact, body)
            except MessageSendError as e:
                errors.append({"contact_id": contact_id, "error": str(e)})
                continue
            results.append(
                {"contact_id": contact_id, "success": True, "message_id": message.whatsapp_message_id}
            )

        logger.info("Bulk send finished: %d sent, %d failed", len(results), len(errors))
        return {
            "total_sent": len(results),
            "total_failed": len(errors),
            "results": results,
            "errors": errors,
        }

    def ingest_webhook(self, db: Session, payload: dict, client: WhatsAppClient | None = None) -> dict[str, int]:
        """Store inbound messages and apply delivery status updates.

        When ``client`` is given, inbound greetings get an automatic reply.
        """
        inbound, statuses = parse_webhook_payload(payload)

        stored = 0
        for item in inbound:
            if item.whatsapp_message_id and (
                db.query(Message).filter(Message.whatsapp_message_id == item.whatsapp_message_id).first()
            ):
                # Cloud API redelivers webhooks it considers unacknowledged
                continue
            try:
                contact = self.find_or_create_contact(db, item.wa_id, name=item.profile_name)
            except ContactError as e:
                logger.warning("Skipping inbound message %s: %s", item.whatsapp_message_id, e)
                continue
            message_type = item.message_type if item.message_type in KNOWN_TYPES else MessageType.OTHER.value
            db.add(
                Message(
                    contact_id=contact.id,
                    direction=MessageDirection.INCOMING.value,
                    message_type=message_type,
                    content=item.content,
                    whatsapp_message_id=item.whatsapp_message_id or None,
                    status=MessageStatus.DELIVERED.value,
                    timestamp=item.timestamp,
                )
            )
            contact.last_contact_at = item.timestamp
            db.commit()
            stored += 1

            is_greeting = message_type == MessageType.TEXT.value and GREETING_PATTERN.search(item.content)
            if client is not None and is_greeting:
                self._reply_to_greeting(db, client, contact)

        updated = 0
        for update in statuses:
            if update.status not in KNOWN_STATUSES:
                continue
            message = db.query(Message).filter(Message.whatsapp_message_id == update.whatsapp_message_id).first()
            if message:
                message.status = update.status
                updated += 1
        db.commit()

        return {"received": stored, "status_updates": updated}

    def _reply_to_greeting(self, db: Session, client: WhatsAppClient, contact: Contact) -> None:
        try:
            self.messages.send_message(db, client, contact, GREETING_REPLY)
        except MessageSendError as e:
            logger.warning("Greeting reply to contact %s failed: %s", contact.id, e)


_gateway_service: GatewayService | None = None


def get_gateway_service() -> GatewayService:
    """Get singleton gateway service instance."""
    global _gateway_service
    if _gateway_service is None:
        _gateway_service = GatewayService()
    return _gateway_service
