"""Authentication and authorization dependencies for FastAPI routes.

A protected request moves through these stages::

    NO_TOKEN -> TOKEN_EXTRACTED -> TOKEN_VERIFIED -> USER_LOADED -> AUTHORIZED

Routes without a role list treat a loaded user as authorized. Any failed
transition ends the request before the route handler runs. Every
401 carries the same body so clients cannot tell which check failed.
"""

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User, UserRole
from app.services.jwt import TokenError, get_jwt_service
from app.services.whatsapp import WhatsAppClient

logger = logging.getLogger("whatsapp_desk")

NOT_AUTHORIZED = "Not authorized"
FORBIDDEN = "You do not have permission to access this resource"


class AuthStage(str, enum.Enum):
    NO_TOKEN = "no_token"
    TOKEN_EXTRACTED = "token_extracted"
    TOKEN_VERIFIED = "token_verified"
    USER_LOADED = "user_loaded"
    AUTHORIZED = "authorized"


@dataclass
class CurrentUser:
    """Authenticated user context."""

    user_id: int
    name: str
    email: str
    role: str


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header, or None."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        return None
    return token


def _unauthorized(stage: AuthStage, reason: str) -> HTTPException:
    logger.info("Auth rejected at %s: %s", stage.value, reason)
    return HTTPException(status_code=401, detail=NOT_AUTHORIZED, headers={"WWW-Authenticate": "Bearer"})


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> CurrentUser:
    """Resolve the bearer token to an active user. Raises 401 otherwise."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise _unauthorized(AuthStage.NO_TOKEN, "missing or malformed Authorization header")

    try:
        user_id = get_jwt_service().verify_token(token)
    except TokenError as e:
        raise _unauthorized(AuthStage.TOKEN_EXTRACTED, str(e)) from None

    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized(AuthStage.TOKEN_VERIFIED, f"user {user_id} does not exist")
    if not user.is_active:
        raise _unauthorized(AuthStage.TOKEN_VERIFIED, f"user {user_id} is disabled")

    logger.debug("Auth reached %s for user %s", AuthStage.USER_LOADED.value, user.id)
    return CurrentUser(user_id=user.id, name=user.name, email=user.email, role=user.role)


def require_roles(*roles: UserRole) -> Callable[..., CurrentUser]:
    """Build a dependency that only lets users with one of ``roles`` through."""
    allowed = {role.value for role in roles}

    def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            logger.info(
                "Auth rejected at %s: role %s not in %s", AuthStage.USER_LOADED.value, user.role, sorted(allowed)
            )
            raise HTTPException(status_code=403, detail=FORBIDDEN)
        logger.debug("Auth reached %s for user %s as %s", AuthStage.AUTHORIZED.value, user.user_id, user.role)
        return user

    return dependency


def get_whatsapp_client(request: Request) -> WhatsAppClient:
    """Return the WhatsApp client created at startup."""
    return request.app.state.whatsapp_client
