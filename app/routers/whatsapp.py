"""WhatsApp gateway API endpoints."""

import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import get_settings
from app.database import get_db
from app.dependencies import CurrentUser, get_current_user, get_whatsapp_client, require_roles
from app.models.user import UserRole
from app.schemas.common import DataResponse, MessageResponse
from app.schemas.whatsapp import BulkSendRequest, BulkSendResponse, SendRequest, SendResponse, WhatsAppStatus
from app.services.contact import ContactError
from app.services.gateway import get_gateway_service
from app.services.message import MessageSendError
from app.services.whatsapp import WhatsAppClient

logger = logging.getLogger("whatsapp_desk")

router = APIRouter(prefix="/api/whatsapp", tags=["WhatsApp"])


@router.get("/status", response_model=DataResponse[WhatsAppStatus])
def whatsapp_status(
    user: CurrentUser = Depends(get_current_user),
    client: WhatsAppClient = Depends(get_whatsapp_client),
) -> DataResponse[WhatsAppStatus]:
    """Report whether the WhatsApp client is configured and has reached the API."""
    return DataResponse[WhatsAppStatus](data=WhatsAppStatus(**client.get_status()))


@router.post("/send", response_model=SendResponse)
def send(
    body: SendRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: WhatsAppClient = Depends(get_whatsapp_client),
) -> SendResponse:
    """Send a message to a phone number, creating the contact if needed."""
    try:
        message = get_gateway_service().send_to_number(db, client, body.to, body.message)
    except ContactError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except MessageSendError as e:
        raise HTTPException(status_code=502, detail=str(e)) from None
    return SendResponse(message_id=message.whatsapp_message_id)  # type: ignore[arg-type]


@router.post("/send-bulk", response_model=BulkSendResponse)
def send_bulk(
    body: BulkSendRequest,
    user: CurrentUser = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
    db: Session = Depends(get_db),
    client: WhatsAppClient = Depends(get_whatsapp_client),
) -> BulkSendResponse:
    """Send one message to several contacts."""
    outcome = get_gateway_service().send_bulk(db, client, body.contacts, body.message)
    return BulkSendResponse(**outcome)


@router.post("/restart", response_model=MessageResponse)
def restart(
    user: CurrentUser = Depends(require_roles(UserRole.ADMIN)),
    client: WhatsAppClient = Depends(get_whatsapp_client),
) -> MessageResponse:
    """Reset the WhatsApp client session."""
    client.restart()
    logger.info("WhatsApp session restarted by user %s", user.user_id)
    return MessageResponse(message="WhatsApp session restarted")


@router.get("/webhook", response_class=PlainTextResponse)
def verify_webhook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    verify_token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
) -> PlainTextResponse:
    """Answer the Cloud API subscription handshake."""
    expected = get_settings().WHATSAPP_VERIFY_TOKEN
    if mode == "subscribe" and expected and verify_token and hmac.compare_digest(verify_token, expected):
        return PlainTextResponse(content=challenge or "")
    raise HTTPException(status_code=403, detail="Webhook verification failed")


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    db: Session = Depends(get_db),
    client: WhatsAppClient = Depends(get_whatsapp_client),
) -> dict:
    """Ingest inbound messages and delivery receipts.

    Requests must be signed with ``WHATSAPP_APP_SECRET``. Unsigned requests
    are only accepted in development when no secret is configured.
    """
    raw_body = await request.body()

    settings = get_settings()
    app_secret = settings.WHATSAPP_APP_SECRET
    if not app_secret and not settings.is_development:
        logger.warning("Rejected webhook: WHATSAPP_APP_SECRET is not configured")
        raise HTTPException(status_code=403, detail="Webhook signature secret is not configured")
    if app_secret:
        signature = request.headers.get("X-Hub-Signature-256", "")
        expected = "sha256=" + hmac.new(app_secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(signature, expected):
            raise HTTPException(status_code=403, detail="Invalid webhook signature")

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON") from None
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    counts = await run_in_threadpool(get_gateway_service().ingest_webhook, db, payload, client)
    if counts["received"]:
        logger.info("Webhook stored %d inbound messages", counts["received"])
    return {"success": True, **counts}
