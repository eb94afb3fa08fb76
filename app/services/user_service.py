"""
User service: the credential store.

Owns user records and their password hashes.  Email uniqueness is checked
up front for a clear 409 and is also enforced by the database constraint;
a violation that slips past the check (concurrent registration) surfaces as
an ``IntegrityError`` and is translated to 409 by the global handler.
"""
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, UnauthorizedError, ValidationError
from app.models import User, UserRole
from app.schemas import ChangePasswordRequest, UpdateProfileRequest
from app.security import hash_password, verify_password

logger = logging.getLogger(__name__)


def user_to_dict(user: User) -> dict:
    """Serialise a User ORM instance to its wire dict (never the hash)."""
    return {
        "id": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "updatedAt": user.updated_at.isoformat() if user.updated_at else None,
    }


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: UserRole = UserRole.USER,
) -> User:
    """Hash *password* and persist a new user; 409 if *email* is taken."""
    if await get_user_by_email(db, email) is not None:
        raise ConflictError(f'User with email "{email}" already exists.')

    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        first_name=first_name,
        last_name=last_name,
    )
    db.add(user)
    await db.flush()
    logger.info("Created %s user %s", role.value, user.id)
    return user


async def update_profile(db: AsyncSession, user: User, data: UpdateProfileRequest) -> User:
    """
    Apply the fields of *data* that differ from *user*.

    A changed email is re-checked against other accounts.  When nothing
    differs no write is issued.
    """
    changes: dict = {}
    if data.first_name is not None and data.first_name != user.first_name:
        changes["first_name"] = data.first_name
    if data.last_name is not None and data.last_name != user.last_name:
        changes["last_name"] = data.last_name
    if data.email is not None and data.email != user.email:
        existing = await get_user_by_email(db, data.email)
        if existing is not None and existing.id != user.id:
            raise ConflictError(f'Email "{data.email}" is already in use by another account.')
        changes["email"] = data.email

    if not changes:
        logger.debug("No profile changes to persist for user %s", user.id)
        return user

    for field, value in changes.items():
        setattr(user, field, value)
    await db.flush()
    await db.refresh(user)
    logger.info("Updated profile fields %s for user %s", sorted(changes), user.id)
    return user


async def change_password(db: AsyncSession, user: User, data: ChangePasswordRequest) -> None:
    if not verify_password(data.current_password, user.password_hash):
        raise UnauthorizedError("Incorrect current password.")
    if verify_password(data.new_password, user.password_hash):
        raise ValidationError("New password cannot be the same as the old password.")

    user.password_hash = hash_password(data.new_password)
    await db.flush()
    logger.info("Password changed for user %s", user.id)

