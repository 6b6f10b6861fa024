"""Message service for history, sending, status updates and statistics."""

import logging
from datetime import datetime, timezone
from pathlib import PurePosixPath
from urllib.parse import urlparse

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from app.models.contact import Contact
from app.models.message import Message, MessageDirection, MessageStatus, MessageType
from app.services.pagination import paginate
from app.services.whatsapp import WhatsAppClient

logger = logging.getLogger("whatsapp_desk")

MEDIA_TYPES = {
    MessageType.IMAGE: {"jpg", "jpeg", "png", "gif"},
    MessageType.AUDIO: {"mp3", "wav", "ogg"},
    MessageType.VIDEO: {"mp4", "avi", "mov"},
    MessageType.DOCUMENT: {"pdf", "doc", "docx", "xls", "xlsx", "txt"},
}


class MessageSendError(Exception):
    """The WhatsApp transport refused or failed to deliver a message."""


def infer_message_type(media_url: str | None) -> MessageType:
    """Guess the message type from a media URL's file extension."""
    if not media_url:
        return MessageType.TEXT
    extension = PurePosixPath(urlparse(media_url).path).suffix.lower().lstrip(".")
    for message_type, extensions in MEDIA_TYPES.items():
        if extension in extensions:
            return message_type
    return MessageType.TEXT


def _as_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _within(query: Query, start_date: datetime | None, end_date: datetime | None) -> Query:
    start_date, end_date = _as_naive_utc(start_date), _as_naive_utc(end_date)
    if start_date:
        query = query.filter(Message.timestamp >= start_date)
    if end_date:
        query = query.filter(Message.timestamp <= end_date)
    return query


class MessageService:
    """Handles message history and delivery."""

    def list_messages(
        self,
        db: Session,
        page: int = 1,
        limit: int = 50,
        direction: MessageDirection | None = None,
        contact_id: int | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> tuple[list[Message], dict[str, int]]:
        """List non-deleted messages, newest first."""
        query = db.query(Message).filter(Message.is_deleted.is_(False))
        if direction:
            query = query.filter(Message.direction == direction.value)
        if contact_id:
            query = query.filter(Message.contact_id == contact_id)
        query = _within(query, start_date, end_date)
        return paginate(query.order_by(Message.timestamp.desc(), Message.id.desc()), page, limit)

    def get_message(self, db: Session, message_id: int) -> Message | None:
        return db.query(Message).filter(Message.id == message_id, Message.is_deleted.is_(False)).first()

    def record_outgoing(
        self,
        db: Session,
        contact: Contact,
        content: str,
        whatsapp_message_id: str | None,
        media_url: str | None = None,
    ) -> Message:
        """Store a message that the transport accepted and touch the contact."""
        now = datetime.utcnow()
        message = Message(
            contact_id=contact.id,
            direction=MessageDirection.OUTGOING.value,
            message_type=infer_message_type(media_url).value,
            content=content,
            media_url=media_url,
            whatsapp_message_id=whatsapp_message_id,
            status=MessageStatus.SENT.value,
            timestamp=now,
        )
        contact.last_contact_at = now
        db.add(message)
        db.commit()
        db.refresh(message)
        return message

    def send_message(
        self,
        db: Session,
        client: WhatsAppClient,
        contact: Contact,
        content: str,
        media_url: str | None = None,
    ) -> Message:
        """Send through WhatsApp and record it. Nothing is stored if the send fails."""
        result = client.send(contact.phone_number, content)
        if not result.success:
            logger.warning("Send to contact %s failed: %s", contact.id, result.error)
            raise MessageSendError(result.error or "Failed to send WhatsApp message")
        return self.record_outgoing(db, contact, content, result.message_id, media_url=media_url)

    def update_status(self, db: Session, message: Message, status: MessageStatus) -> Message:
        message.status = status.value
        db.commit()
        db.refresh(message)
        return message

    def delete_message(self, db: Session, message: Message) -> None:
        """Soft delete: the row stays but disappears from every listing."""
        message.is_deleted = True
        db.commit()

    def get_stats(
        self, db: Session, start_date: datetime | None = None, end_date: datetime | None = None
    ) -> dict:
        """Counts by direction, status and type over non-deleted messages."""

        def grouped(column) -> dict[str, int]:
            query = db.query(column, func.count(Message.id)).filter(Message.is_deleted.is_(False))
            return dict(_within(query, start_date, end_date).group_by(column).all())

        by_direction = grouped(Message.direction)
        return {
            "total": sum(by_direction.values()),
            "incoming": by_direction.get(MessageDirection.INCOMING.value, 0),
            "outgoing": by_direction.get(MessageDirection.OUTGOING.value, 0),
            "by_status": grouped(Message.status),
            "by_type": grouped(Message.message_type),
        }


_message_service: MessageService | None = None


def get_message_service() -> MessageService:
    """Get singleton message service instance."""
    global _message_service
    if _message_service is None:
        _message_service = MessageService()
    return _message_service
