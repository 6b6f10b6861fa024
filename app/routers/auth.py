"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.dependencies import CurrentUser, get_current_user
from app.rate_limit import limiter
from app.schemas.auth import (
    AuthPayload,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from app.schemas.common import DataResponse, MessageResponse
from app.services.auth import AuthError, AuthResult, get_auth_service

logger = logging.getLogger("whatsapp_desk")

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

STATUS_BY_ERROR = {
    AuthError.DUPLICATE_EMAIL: 400,
    AuthError.INVALID_CREDENTIALS: 401,
    AuthError.USER_NOT_FOUND: 404,
    AuthError.INVALID_OR_EXPIRED_TOKEN: 400,
    AuthError.NOT_FOUND: 404,
}


def _raise_for(result: AuthResult) -> None:
    if not result.success:
        raise HTTPException(status_code=STATUS_BY_ERROR[result.error_kind], detail=result.error)  # type: ignore[index]


def _auth_payload(result: AuthResult) -> DataResponse[AuthPayload]:
    return DataResponse[AuthPayload](
        data=AuthPayload(
            id=result.user_id,  # type: ignore[arg-type]
            name=result.name,  # type: ignore[arg-type]
            email=result.email,  # type: ignore[arg-type]
            role=result.role,  # type: ignore[arg-type]
            token=result.token,  # type: ignore[arg-type]
        )
    )


@router.post("/register", response_model=DataResponse[AuthPayload], status_code=201)
@limiter.limit("5/minute")
def register(request: Request, body: RegisterRequest, db: Session = Depends(get_db)) -> DataResponse[AuthPayload]:
    """Register a new user account."""
    result = get_auth_service().register(db, body.name, body.email, body.password, body.role)
    _raise_for(result)
    return _auth_payload(result)


@router.post("/login", response_model=DataResponse[AuthPayload])
@limiter.limit("10/minute")
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)) -> DataResponse[AuthPayload]:
    """Authenticate and receive a JWT token."""
    result = get_auth_service().authenticate(db, body.email, body.password)
    _raise_for(result)
    return _auth_payload(result)


@router.post("/forgot-password", response_model=ForgotPasswordResponse, response_model_exclude_none=True)
@limiter.limit("3/minute")
def forgot_password(
    request: Request, body: ForgotPasswordRequest, db: Session = Depends(get_db)
) -> ForgotPasswordResponse:
    """Issue a password reset token.

    The reset link goes to the server log. The token itself is only echoed in
    the response body when running in development.
    """
    result = get_auth_service().request_password_reset(db, body.email)
    _raise_for(result)

    base_url = str(request.base_url).rstrip("/")
    logger.info("PASSWORD RESET for user %s: %s/api/auth/reset-password/%s", result.user_id, base_url, result.reset_token)

    settings = get_settings()
    return ForgotPasswordResponse(
        message="Password reset instructions have been sent",
        reset_token=result.reset_token if settings.is_development else None,
    )


@router.post("/reset-password/{token}", response_model=MessageResponse)
@limiter.limit("5/minute")
def reset_password(
    request: Request, token: str, body: ResetPasswordRequest, db: Session = Depends(get_db)
) -> MessageResponse:
    """Set a new password using a reset token."""
    result = get_auth_service().reset_password(db, token, body.password)
    _raise_for(result)
    return MessageResponse(message="Password has been reset")


@router.get("/profile", response_model=DataResponse[ProfileResponse])
def get_profile(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DataResponse[ProfileResponse]:
    """Get the current user's profile."""
    result = get_auth_service().get_profile(db, user.user_id)
    _raise_for(result)
    return DataResponse[ProfileResponse](data=ProfileResponse.model_validate(result.user))


@router.put("/profile", response_model=DataResponse[ProfileResponse])
def update_profile(
    body: ProfileUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DataResponse[ProfileResponse]:
    """Update the current user's name, email, password or picture."""
    result = get_auth_service().update_profile(
        db,
        user.user_id,
        name=body.name,
        email=body.email,
        password=body.password,
        profile_picture=body.profile_picture,
    )
    _raise_for(result)
    return DataResponse[ProfileResponse](data=ProfileResponse.model_validate(result.user))
