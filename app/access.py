"""
Access policy.

Every route picks exactly one policy dependency:

- ``public_viewer``: anonymous allowed; yields a ``Viewer`` whose
  ``user_id`` is None unless a valid bearer token was sent.
- ``get_current_user``: a valid bearer token is required (401 otherwise).
- ``require_roles(*roles)``: authenticated and the user's role is in the
  allow-list (403 otherwise).  With no roles it only requires
  authentication.
"""
import logging
import uuid
from dataclasses import dataclass

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.exceptions import ForbiddenError, UnauthorizedError
from app.models import User, UserRole
from app.services import auth_service

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login", auto_error=False)


@dataclass(frozen=True)
class Viewer:
    """Optional caller identity for routes that also serve anonymous users."""

    user_id: uuid.UUID | None = None
    role: UserRole | None = None

    @classmethod
    def of(cls, user: User | None) -> "Viewer":
        if user is None:
            return cls()
        return cls(user_id=user.id, role=user.role)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not token:
        raise UnauthorizedError("Not authenticated")
    user = await auth_service.get_user_from_token(db, token)
    if user is None:
        raise UnauthorizedError("Could not validate credentials")
    return user


async def public_viewer(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Viewer:
    # An invalid token on a public route degrades to anonymous, not 401.
    if not token:
        return Viewer()
    return Viewer.of(await auth_service.get_user_from_token(db, token))


def require_roles(*roles: UserRole):
    allowed = frozenset(roles)

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if allowed and current_user.role not in allowed:
            logger.warning("User %s with role %s denied; requires %s",
                           current_user.id, current_user.role.value, sorted(r.value for r in allowed))
            raise ForbiddenError(
                "You do not have the necessary permissions. "
                f"Required role(s): {', '.join(sorted(r.value for r in allowed))}."
            )
        return current_user

    return role_checker


require_admin = require_roles(UserRole.ADMIN)
