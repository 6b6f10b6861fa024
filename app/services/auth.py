"""Authentication service."""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.user import User, UserRole
from app.services.jwt import JWTService, get_jwt_service
from app.services.passwords import generate_reset_token, hash_password, hash_reset_token, verify_password

logger = logging.getLogger("whatsapp_desk")


class AuthError(str, enum.Enum):
    DUPLICATE_EMAIL = "duplicate_email"
    INVALID_CREDENTIALS = "invalid_credentials"
    USER_NOT_FOUND = "user_not_found"
    INVALID_OR_EXPIRED_TOKEN = "invalid_or_expired_token"
    NOT_FOUND = "not_found"


ERROR_MESSAGES = {
    AuthError.DUPLICATE_EMAIL: "Email already registered",
    AuthError.INVALID_CREDENTIALS: "Invalid email or password",
    AuthError.USER_NOT_FOUND: "No user registered with that email",
    AuthError.INVALID_OR_EXPIRED_TOKEN: "Invalid or expired reset token",
    AuthError.NOT_FOUND: "User not found",
}


@dataclass
class AuthResult:
    """Result of an authentication operation."""

    success: bool
    error: str | None = None
    error_kind: AuthError | None = None
    user_id: int | None = None
    name: str | None = None
    email: str | None = None
    role: str | None = None
    token: str | None = None
    reset_token: str | None = None
    user: User | None = None

    @classmethod
    def failure(cls, kind: AuthError) -> "AuthResult":
        return cls(success=False, error=ERROR_MESSAGES[kind], error_kind=kind)

    @classmethod
    def for_user(cls, user: User, token: str | None = None) -> "AuthResult":
        return cls(
            success=True,
            user_id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            token=token,
            user=user,
        )


class AuthService:
    """Handles registration, login, password recovery and profile updates.

    Emails are matched exactly as stored; "A@x.com" and "a@x.com" are
    different accounts.
    """

    def __init__(self, jwt_service: JWTService | None = None) -> None:
        self._jwt_service = jwt_service

    @property
    def jwt_service(self) -> JWTService:
        if self._jwt_service is None:
            self._jwt_service = get_jwt_service()
        return self._jwt_service

    def _find_by_email(self, db: Session, email: str) -> User | None:
        return db.query(User).filter(User.email == email).first()

    def register(
        self, db: Session, name: str, email: str, password: str, role: UserRole | None = None
    ) -> AuthResult:
        """Register a new user and issue a token for it."""
        email = email.strip()
        if self._find_by_email(db, email):
            return AuthResult.failure(AuthError.DUPLICATE_EMAIL)

        user = User(
            name=name.strip(),
            email=email,
            password_hash=hash_password(password),
            role=(role or UserRole.AGENT).value,
            is_active=True,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            db.rollback()
            return AuthResult.failure(AuthError.DUPLICATE_EMAIL)
        db.refresh(user)

        logger.info("Registered user %s with role %s", user.id, user.role)
        return AuthResult.for_user(user, token=self.jwt_service.create_token(user.id))

    def authenticate(self, db: Session, email: str, password: str) -> AuthResult:
        """Authenticate a user by email and password.

        Unknown email and wrong password produce the same failure.
        """
        user = self._find_by_email(db, email.strip())
        if not user or not verify_password(password, user.password_hash):
            return AuthResult.failure(AuthError.INVALID_CREDENTIALS)

        result = AuthResult.for_user(user, token=self.jwt_service.create_token(user.id))

        user.last_login_at = datetime.utcnow()
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Could not record last login for user %s", result.user_id, exc_info=True)

        return result

    def request_password_reset(self, db: Session, email: str) -> AuthResult:
        """Issue a reset token for the given email.

        Only the token's hash is stored; the plaintext is returned once, in
        ``reset_token``, for the caller to deliver.
        """
        user = self._find_by_email(db, email.strip())
        if not user:
            return AuthResult.failure(AuthError.USER_NOT_FOUND)

        settings = get_settings()
        token, token_hash = generate_reset_token()
        user.reset_token_hash = token_hash
        user.reset_token_expires_at = datetime.utcnow() + timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
        db.commit()

        result = AuthResult.for_user(user)
        result.reset_token = token
        return result

    def reset_password(self, db: Session, token: str, new_password: str) -> AuthResult:
        """Set a new password using an unexpired reset token. Tokens are single use."""
        user = (
            db.query(User)
            .filter(
                User.reset_token_hash == hash_reset_token(token),
                User.reset_token_expires_at > datetime.utcnow(),
            )
            .first()
        )
        if not user:
            return AuthResult.failure(AuthError.INVALID_OR_EXPIRED_TOKEN)

        user.password_hash = hash_password(new_password)
        user.reset_token_hash = None
        user.reset_token_expires_at = None
        db.commit()

        logger.info("Password reset for user %s", user.id)
        return AuthResult.for_user(user)

    def get_profile(self, db: Session, user_id: int) -> AuthResult:
        user = db.get(User, user_id)
        if not user:
            return AuthResult.failure(AuthError.NOT_FOUND)
        return AuthResult.for_user(user)

    def update_profile(
        self,
        db: Session,
        user_id: int,
        name: str | None = None,
        email: str | None = None,
        password: str | None = None,
        profile_picture: str | None = None,
    ) -> AuthResult:
        """Update the acting user's own profile. Only supplied fields change."""
        user = db.get(User, user_id)
        if not user:
            return AuthResult.failure(AuthError.NOT_FOUND)

        if email is not None:
            email = email.strip()
            if email != user.email:
                if self._find_by_email(db, email):
                    return AuthResult.failure(AuthError.DUPLICATE_EMAIL)
                user.email = email
        if name:
            user.name = name.strip()
        if profile_picture is not None:
            user.profile_picture = profile_picture
        if password:
            user.password_hash = hash_password(password)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return AuthResult.failure(AuthError.DUPLICATE_EMAIL)
        db.refresh(user)

        return AuthResult.for_user(user)


_auth_service: AuthService | None = None


def get_auth_service() -> AuthService:
    """Get singleton auth service instance."""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
