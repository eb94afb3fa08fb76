from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator
from pydantic.alias_generators import to_camel

from app.models import ArticleCategory, UserRole


class CamelModel(BaseModel):
    """Wire models use camelCase field names; snake_case is accepted too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Auth / User ---

class RegisterRequest(CamelModel):
    email: EmailStr = Field(max_length=255)
    password: str = Field(min_length=8, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: UserRole = UserRole.USER


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UpdateProfileRequest(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = Field(None, max_length=255)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=50)


class UserResponse(CamelModel):
    id: UUID
    email: str
    role: UserRole
    first_name: str
    last_name: str
    created_at: datetime
    updated_at: datetime


class AuthResponse(CamelModel):
    access_token: str
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


# --- Article ---

def _clean_tags(tags: list[str]) -> list[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags:
        name = tag.strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)


def _url_to_str(value: HttpUrl) -> str:
    url = str(value)
    if len(url) > 512:
        raise ValueError("image URL must be at most 512 characters")
    return url


ImageUrl = Annotated[HttpUrl, AfterValidator(_url_to_str)]


class ArticleCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    body: str = Field(min_length=1)
    image_url: Optional[ImageUrl] = None
    category: ArticleCategory
    tags: list[str] = Field(min_length=1)
    is_published: bool = True

    @field_validator("tags")
    @classmethod
    def _tags_not_blank(cls, value: list[str]) -> list[str]:
        cleaned = _clean_tags(value)
        if not cleaned:
            raise ValueError("tags must contain at least one non-empty tag")
        return cleaned


class ArticleUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    body: Optional[str] = Field(None, min_length=1)
    image_url: Optional[ImageUrl] = None
    category: Optional[ArticleCategory] = None
    tags: Optional[list[str]] = Field(None, min_length=1)
    is_published: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def _tags_not_blank(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return value
        cleaned = _clean_tags(value)
        if not cleaned:
            raise ValueError("tags must contain at least one non-empty tag")
        return cleaned


# --- Pagination ---

class PaginatedResponse(CamelModel):
    data: list  # Article dicts, already in wire format
    total: int
    page: int
    limit: int
    total_pages: int
