"""Contact API endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import CurrentUser, get_current_user, require_roles
from app.models.user import UserRole
from app.schemas.common import DataResponse, MessageResponse, PageResponse, Pagination
from app.schemas.contact import ContactCreateRequest, ContactResponse, ContactUpdateRequest
from app.schemas.message import MessageOut
from app.services.contact import ContactError, get_contact_service

router = APIRouter(prefix="/api/contacts", tags=["Contacts"])


@router.get("/", response_model=PageResponse[ContactResponse])
def list_contacts(
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PageResponse[ContactResponse]:
    """List contacts with search, sorting and pagination."""
    items, pagination = get_contact_service().list_contacts(
        db, page=page, limit=limit, search=search, sort_by=sort_by, sort_order=sort_order
    )
    return PageResponse[ContactResponse](
        data=[ContactResponse.model_validate(c) for c in items],
        pagination=Pagination(**pagination),
    )


@router.get("/{contact_id}", response_model=DataResponse[ContactResponse])
def get_contact(
    contact_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DataResponse[ContactResponse]:
    """Get a single contact by ID."""
    contact = get_contact_service().get_contact(db, contact_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return DataResponse[ContactResponse](data=ContactResponse.model_validate(contact))


@router.get("/{contact_id}/messages", response_model=PageResponse[MessageOut])
def get_contact_messages(
    contact_id: int,
    page: int = 1,
    limit: int = 50,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PageResponse[MessageOut]:
    """Message history for a contact, newest first."""
    service = get_contact_service()
    if not service.get_contact(db, contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    items, pagination = service.get_contact_messages(db, contact_id, page=page, limit=limit)
    return PageResponse[MessageOut](
        data=[MessageOut.model_validate(m) for m in items],
        pagination=Pagination(**pagination),
    )


@router.post("/", response_model=DataResponse[ContactResponse], status_code=201)
def create_contact(
    body: ContactCreateRequest,
    user: CurrentUser = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    db: Session = Depends(get_db),
) -> DataResponse[ContactResponse]:
    """Create a contact."""
    try:
        contact = get_contact_service().create_contact(db, **body.model_dump())
    except ContactError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    return DataResponse[ContactResponse](data=ContactResponse.model_validate(contact))


@router.put("/{contact_id}", response_model=DataResponse[ContactResponse])
def update_contact(
    contact_id: int,
    body: ContactUpdateRequest,
    user: CurrentUser = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    db: Session = Depends(get_db),
) -> DataResponse[ContactResponse]:
    """Update a contact's details."""
    service = get_contact_service()
    contact = service.get_contact(db, contact_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    contact = service.update_contact(db, contact, body.model_dump(exclude_unset=True))
    return DataResponse[ContactResponse](data=ContactResponse.model_validate(contact))


@router.delete("/{contact_id}", response_model=MessageResponse)
def delete_contact(
    contact_id: int,
    user: CurrentUser = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Delete a contact, or deactivate it when it has message history."""
    service = get_contact_service()
    contact = service.get_contact(db, contact_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    if service.delete_contact(db, contact):
        return MessageResponse(message="Contact deleted")
    return MessageResponse(message="Contact has messages and was marked inactive")
