"""Pydantic schemas for contact endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field


class ContactCreateRequest(BaseModel):
    phone_number: str = Field(min_length=3, max_length=32)
    name: str = Field(min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    company: str | None = Field(default=None, max_length=255)
    tags: list[str] = []
    notes: str | None = None


class ContactUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    company: str | None = Field(default=None, max_length=255)
    tags: list[str] | None = None
    notes: str | None = None
    is_active: bool | None = None


class ContactResponse(BaseModel):
    id: int
    phone_number: str
    name: str
    email: str | None
    company: str | None
    tags: list[str]
    notes: str | None
    last_contact_at: datetime | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
