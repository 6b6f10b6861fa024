"""Pydantic schemas for WhatsApp gateway endpoints."""

from pydantic import BaseModel, Field


class WhatsAppStatus(BaseModel):
    configured: bool
    connected: bool


class SendRequest(BaseModel):
    to: str = Field(min_length=3, max_length=32)
    message: str = Field(min_length=1, max_length=4096)


class SendResponse(BaseModel):
    success: bool = True
    message_id: str


class BulkSendRequest(BaseModel):
    contacts: list[int] = Field(min_length=1)
    message: str = Field(min_length=1, max_length=4096)


class BulkResult(BaseModel):
    contact_id: int
    success: bool
    message_id: str | None


class BulkError(BaseModel):
    contact_id: int
    error: str


class BulkSendResponse(BaseModel):
    success: bool = True
    total_sent: int
    total_failed: int
    results: list[BulkResult]
    errors: list[BulkError]
