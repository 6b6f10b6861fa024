"""Message API endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import CurrentUser, get_current_user, get_whatsapp_client, require_roles
from app.models.message import MessageDirection
from app.models.user import UserRole
from app.schemas.common import DataResponse, MessageResponse, PageResponse, Pagination
from app.schemas.message import MessageOut, MessageStats, SendMessageRequest, StatusUpdateRequest
from app.services.contact import get_contact_service
from app.services.message import MessageSendError, get_message_service
from app.services.whatsapp import WhatsAppClient

router = APIRouter(prefix="/api/messages", tags=["Messages"])


@router.get("/", response_model=PageResponse[MessageOut])
def list_messages(
    page: int = 1,
    limit: int = 50,
    direction: MessageDirection | None = None,
    contact_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PageResponse[MessageOut]:
    """List messages with optional direction, contact and date filters."""
    items, pagination = get_message_service().list_messages(
        db,
        page=page,
        limit=limit,
        direction=direction,
        contact_id=contact_id,
        start_date=start_date,
        end_date=end_date,
    )
    return PageResponse[MessageOut](
        data=[MessageOut.model_validate(m) for m in items],
        pagination=Pagination(**pagination),
    )


@router.get("/stats", response_model=DataResponse[MessageStats])
def message_stats(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DataResponse[MessageStats]:
    """Message counts by direction, status and type."""
    stats = get_message_service().get_stats(db, start_date=start_date, end_date=end_date)
    return DataResponse[MessageStats](data=MessageStats(**stats))


@router.get("/{message_id}", response_model=DataResponse[MessageOut])
def get_message(
    message_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DataResponse[MessageOut]:
    """Get a single message by ID."""
    message = get_message_service().get_message(db, message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return DataResponse[MessageOut](data=MessageOut.model_validate(message))


@router.post("/", response_model=DataResponse[MessageOut], status_code=201)
def send_message(
    body: SendMessageRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: WhatsAppClient = Depends(get_whatsapp_client),
) -> DataResponse[MessageOut]:
    """Send a WhatsApp message to an existing contact."""
    contact = get_contact_service().get_contact(db, body.contact_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    try:
        message = get_message_service().send_message(db, client, contact, body.content, media_url=body.media_url)
    except MessageSendError as e:
        raise HTTPException(status_code=502, detail=str(e)) from None
    return DataResponse[MessageOut](data=MessageOut.model_validate(message))


@router.put("/{message_id}/status", response_model=DataResponse[MessageOut])
def update_message_status(
    message_id: int,
    body: StatusUpdateRequest,
    user: CurrentUser = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    db: Session = Depends(get_db),
) -> DataResponse[MessageOut]:
    """Update a message's delivery status."""
    service = get_message_service()
    message = service.get_message(db, message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    message = service.update_status(db, message, body.status)
    return DataResponse[MessageOut](data=MessageOut.model_validate(message))


@router.delete("/{message_id}", response_model=MessageResponse)
def delete_message(
    message_id: int,
    user: CurrentUser = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Soft-delete a message."""
    service = get_message_service()
    message = service.get_message(db, message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    service.delete_message(db, message)
    return MessageResponse(message="Message deleted")
