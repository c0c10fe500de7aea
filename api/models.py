"""
API request and response models for the accounts REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py and catalog/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire names: token fields and product stock use camelCase on the wire
(accessToken, refreshToken, inStock) via aliases; populate_by_name lets Python
code build the models with snake_case names. FastAPI serializes responses by
alias.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User
from auth.tokens import MAX_PASSWORD_BYTES
from catalog.models import Product
from core.pagination import page_count

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


def _check_password_bytes(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    pages: int
    current: int

    @classmethod
    def build(cls, total: int, limit: int, page: int) -> "Pagination":
        return cls(total=total, pages=page_count(total, limit), current=page)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken", min_length=1)


class LogoutRequest(RefreshRequest):
    """Request body for POST /api/v1/auth/logout -- the refresh token to revoke."""


class IdentityResponse(BaseModel):
    """Public identity fields, as embedded in the login response and /auth/me."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    user: IdentityResponse


class AccessTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="accessToken")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users (admin only)."""

    # No str_strip_whitespace here: leading/trailing spaces in a password are significant.
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1)
    role: RoleEnum = RoleEnum.user

    check_password_bytes = field_validator("password")(_check_password_bytes)


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Every field is optional.

    role is honoured only when the caller is an admin.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=1)
    role: Optional[RoleEnum] = None

    check_password_bytes = field_validator("password")(_check_password_bytes)


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method: domain User -> API contract. Never exposes password_hash."""
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            created_at=user.created_at or "",
        )


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: list[UserResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


class ProductCreate(BaseModel):
    """Request body for POST /api/v1/products (admin only)."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: float = Field(ge=0)
    category: str = Field(min_length=1, max_length=100)
    in_stock: bool = Field(default=True, alias="inStock")


class ProductUpdate(BaseModel):
    """Request body for PUT /api/v1/products/{id}. Every field is optional."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    price: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    in_stock: Optional[bool] = Field(default=None, alias="inStock")


class ProductResponse(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str
    description: Optional[str]
    price: float
    category: str
    in_stock: bool = Field(alias="inStock")
    created_at: str

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        return cls(
            id=product.id,
            name=product.name,
            description=product.description,
            price=product.price,
            category=product.category,
            in_stock=product.in_stock,
            created_at=product.created_at or "",
        )


class ProductListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: list[ProductResponse]
    pagination: Pagination
