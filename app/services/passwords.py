"""Password hashing and reset token helpers."""

import hashlib
import secrets

import bcrypt

from app.config import get_settings

RESET_TOKEN_BYTES = 20


def hash_password(password: str) -> str:
    rounds = get_settings().BCRYPT_ROUNDS
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Over-long candidate or corrupt stored hash
        return False


def generate_reset_token() -> tuple[str, str]:
    """Return a new reset token and the hash to persist for it."""
    token = secrets.token_hex(RESET_TOKEN_BYTES)
    return token, hash_reset_token(token)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
