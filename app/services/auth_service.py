"""
Auth service: registration, login and token resolution.

Tokens carry the user's id as ``sub``; resolving a token always re-reads the
user so role and identity reflect the database, not stale claims.
"""
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import ForbiddenError, UnauthorizedError
from app.models import User, UserRole
from app.schemas import LoginRequest, RegisterRequest
from app.security import create_access_token, decode_access_token, verify_password
from app.services import user_service

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


def issue_token(user: User) -> str:
    return create_access_token(
        {
            "sub": str(user.id),
            "username": user.email,
            "role": user.role.value,
            "firstName": user.first_name,
            "lastName": user.last_name,
        }
    )


def _auth_response(user: User) -> dict:
    return {"accessToken": issue_token(user), "user": user_service.user_to_dict(user)}


async def register(db: AsyncSession, data: RegisterRequest) -> dict:
    """Create the account and log it in straight away."""
    if data.role is UserRole.ADMIN and not settings.ALLOW_ADMIN_SIGNUP:
        raise ForbiddenError("Self-registration as admin is not allowed.")

    user = await user_service.create_user(
        db,
        email=data.email,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
    )
    return _auth_response(user)


async def authenticate(db: AsyncSession, email: str, password: str) -> User | None:
    user = await user_service.get_user_by_email(db, email)
    if user is None:
        logger.warning("Login failed: unknown email")
        return None
    if not verify_password(password, user.password_hash):
        logger.warning("Login failed: bad password for user %s", user.id)
        return None
    return user


async def login(db: AsyncSession, data: LoginRequest) -> dict:
    # Same error for unknown email and wrong password (no user enumeration).
    user = await authenticate(db, data.email, data.password)
    if user is None:
        raise UnauthorizedError(INVALID_CREDENTIALS)
    return _auth_response(user)


async def get_user_from_token(db: AsyncSession, token: str) -> User | None:
    """
    Verify *token* (signature, expiry) and return its user, or None when
    the token is invalid or the user no longer exists.
    """
    payload = decode_access_token(token)
    if payload is None:
        return None
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        return None
    return await user_service.get_user_by_id(db, user_id)
