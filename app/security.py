"""Password hashing and session token primitives."""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import settings

# PBKDF2 for new hashes; bcrypt hashes (e.g. imported accounts) still verify.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(plain_password, password_hash)
    except ValueError:
        # Unknown or malformed hash format.
        return False


def create_access_token(claims: Dict[str, Any], expires_in: Optional[int] = None) -> str:
    """
    Sign *claims* into a JWT, adding ``iat`` and ``exp``.

    *expires_in* is in seconds and defaults to ``settings.JWT_EXPIRES_IN``.
    """
    issued_at = datetime.now(timezone.utc)
    lifetime = settings.JWT_EXPIRES_IN if expires_in is None else expires_in
    to_encode = dict(claims)
    to_encode.update({"iat": issued_at, "exp": issued_at + timedelta(seconds=lifetime)})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Return the verified payload of *token*, or None when the signature is
    invalid, the token is malformed or it has expired.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
