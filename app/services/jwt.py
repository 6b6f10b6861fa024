"""JWT Token Service."""

from datetime import datetime, timedelta

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import get_settings


class TokenError(Exception):
    """Base class for token verification failures."""


class InvalidTokenError(TokenError):
    """Bad signature or malformed payload."""


class ExpiredTokenError(TokenError):
    """Token is past its expiry."""


class JWTService:
    """Handles JWT token creation and validation."""

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        expire_minutes: int | None = None,
    ) -> None:
        settings = get_settings()
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.expire_minutes = expire_minutes if expire_minutes is not None else settings.JWT_EXPIRE_MINUTES

    def create_token(self, user_id: int, expires_delta: timedelta | None = None) -> str:
        """Create a JWT token for the given user."""
        expire = datetime.utcnow() + (expires_delta or timedelta(minutes=self.expire_minutes))
        payload = {"sub": str(user_id), "exp": expire}
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> int:
        """Verify a token and return the user id it carries.

        Raises ExpiredTokenError past expiry and InvalidTokenError for anything
        else that is wrong with the token.
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise ExpiredTokenError("Token has expired") from e
        except JWTError as e:
            raise InvalidTokenError("Token could not be decoded") from e

        subject = payload.get("sub")
        if subject is None or "exp" not in payload:
            raise InvalidTokenError("Token payload is incomplete")
        try:
            return int(subject)
        except (TypeError, ValueError) as e:
            raise InvalidTokenError("Token subject is not a user id") from e


_jwt_service: JWTService | None = None


def get_jwt_service() -> JWTService:
    """Get singleton JWT service instance."""
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JWTService()
    return _jwt_service
