"""Pydantic schemas for message endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.message import MessageStatus


class ContactSummary(BaseModel):
    id: int
    name: str
    phone_number: str

    model_config = {"from_attributes": True}


class MessageOut(BaseModel):
    id: int
    contact_id: int
    contact: ContactSummary | None = None
    direction: str
    message_type: str
    content: str
    media_url: str | None
    whatsapp_message_id: str | None
    status: str
    timestamp: datetime

    model_config = {"from_attributes": True}


class SendMessageRequest(BaseModel):
    contact_id: int
    content: str = Field(min_length=1, max_length=4096)
    media_url: str | None = Field(default=None, max_length=512)


class StatusUpdateRequest(BaseModel):
    status: MessageStatus


class MessageStats(BaseModel):
    total: int
    incoming: int
    outgoing: int
    by_status: dict[str, int]
    by_type: dict[str, int]
