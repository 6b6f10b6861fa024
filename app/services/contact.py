"""Contact service for CRUD, search and message history."""

import logging
from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.contact import Contact
from app.models.message import Message
from app.services.pagination import paginate
from app.services.whatsapp import normalize_phone_number

logger = logging.getLogger("whatsapp_desk")

SORTABLE_FIELDS = {
    "created_at": Contact.created_at,
    "updated_at": Contact.updated_at,
    "name": Contact.name,
    "phone_number": Contact.phone_number,
    "last_contact_at": Contact.last_contact_at,
}
CLEARABLE_FIELDS = {"email", "company", "notes"}


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ContactError(ValueError):
    """A contact write was rejected."""


class DuplicatePhoneError(ContactError):
    """A contact with this phone number already exists."""


class InvalidPhoneError(ContactError):
    """The phone number has no dialable digits."""


class ContactService:
    """Handles contact management."""

    def list_contacts(
        self,
        db: Session,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> tuple[list[Contact], dict[str, int]]:
        """List contacts with optional search over name, phone, email and company."""
        query = db.query(Contact)
        if search:
            pattern = f"%{escape_like(search)}%"
            query = query.filter(
                or_(
                    Contact.name.ilike(pattern, escape="\\"),
                    Contact.phone_number.ilike(pattern, escape="\\"),
                    Contact.email.ilike(pattern, escape="\\"),
                    Contact.company.ilike(pattern, escape="\\"),
                )
            )

        column = SORTABLE_FIELDS.get(sort_by, Contact.created_at)
        order = column.asc() if sort_order == "asc" else column.desc()
        return paginate(query.order_by(order, Contact.id), page, limit)

    def get_contact(self, db: Session, contact_id: int) -> Contact | None:
        return db.get(Contact, contact_id)

    def get_by_phone(self, db: Session, phone_number: str) -> Contact | None:
        return db.query(Contact).filter(Contact.phone_number == normalize_phone_number(phone_number)).first()

    def create_contact(
        self,
        db: Session,
        phone_number: str,
        name: str,
        email: str | None = None,
        company: str | None = None,
        tags: list[str] | None = None,
        notes: str | None = None,
    ) -> Contact:
        """Create a contact. Raises DuplicatePhoneError if the number is taken, InvalidPhoneError if it is empty."""
        phone_number = normalize_phone_number(phone_number)
        if not phone_number:
            raise InvalidPhoneError("Phone number must contain digits")
        if self.get_by_phone(db, phone_number):
            raise DuplicatePhoneError("A contact with this phone number already exists")

        contact = Contact(
            phone_number=phone_number,
            name=name.strip(),
            email=email,
            company=company,
            tags=tags or [],
            notes=notes,
        )
        db.add(contact)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicatePhoneError("A contact with this phone number already exists") from None
        db.refresh(contact)
        return contact

    def update_contact(self, db: Session, contact: Contact, changes: dict[str, Any]) -> Contact:
        """Apply a partial update. The phone number is not editable."""
        for field in ("name", "email", "company", "tags", "notes", "is_active"):
            if field not in changes:
                continue
            if changes[field] is None and field not in CLEARABLE_FIELDS:
                continue
            setattr(contact, field, changes[field])
        db.commit()
        db.refresh(contact)
        return contact

    def delete_contact(self, db: Session, contact: Contact) -> bool:
        """Delete a contact, or deactivate it if it has message history.

        Returns True when the row was removed, False when it was only deactivated.
        """
        message_count = db.query(Message).filter(Message.contact_id == contact.id).count()
        if message_count > 0:
            contact.is_active = False
            db.commit()
            logger.info("Deactivated contact %s with %d messages", contact.id, message_count)
            return False

        db.delete(contact)
        db.commit()
        return True

    def get_contact_messages(
        self, db: Session, contact_id: int, page: int = 1, limit: int = 50
    ) -> tuple[list[Message], dict[str, int]]:
        """Message history for a contact, newest first."""
        query = (
            db.query(Message)
            .filter(Message.contact_id == contact_id, Message.is_deleted.is_(False))
            .order_by(Message.timestamp.desc(), Message.id.desc())
        )
        return paginate(query, page, limit)


_contact_service: ContactService | None = None


def get_contact_service() -> ContactService:
    """Get singleton contact service instance."""
    global _contact_service
    if _contact_service is None:
        _contact_service = ContactService()
    return _contact_service
