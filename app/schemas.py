"""
Pydantic Schemas

Data model shared by the session authority, the identity providers, the
tenant/role stores and the HTTP layer:
    - Identity, Tenant, RoleAssignment (domain records)
    - Request schemas for login, signup and password reset
    - Response schemas for the session snapshot and health check
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


# =============================================================================
# ENUMS
# =============================================================================

class AppRole(str, Enum):
    """Fixed permission classes a user can hold within a tenant."""
    OWNER = "owner"
    MANAGER = "manager"
    KITCHEN = "kitchen"
    WAITER = "waiter"
    DELIVERY = "delivery"
    CUSTOMER = "customer"


class TenantStatus(str, Enum):
    """Tenant lifecycle."""
    ONBOARDING = "onboarding"
    ACTIVE = "active"
    SUSPENDED = "suspended"


# =============================================================================
# HELPERS
# =============================================================================

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


def derive_slug(name: str) -> str:
    """
    Build the URL-safe slug for a restaurant name.

    >>> derive_slug("My Awesome Restaurant!")
    'my-awesome-restaurant'
    >>> derive_slug("  --Foo--  ")
    'foo'
    """
    return _SLUG_SEPARATORS.sub("-", name.lower()).strip("-")


# =============================================================================
# DOMAIN RECORDS
# =============================================================================

class Identity(BaseModel):
    """
    An authenticated user as reported by the identity provider.

    Frozen: re-authentication replaces the whole object.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class Tenant(BaseModel):
    """A single restaurant account."""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., min_length=1)
    name: str = ""
    slug: str = ""
    cuisine_type: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    logo_url: Optional[str] = None
    status: TenantStatus
    settings: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def fill_slug(self) -> "Tenant":
        if not self.slug and self.name:
            self.slug = derive_slug(self.name)
        return self


class TenantCreate(BaseModel):
    """Fields needed to create a tenant record."""
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = ""
    cuisine_type: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    logo_url: Optional[str] = None
    status: TenantStatus = TenantStatus.ONBOARDING
    settings: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def fill_slug(self) -> "TenantCreate":
        self.slug = derive_slug(self.slug or self.name)
        if not self.slug:
            raise ValueError("Restaurant name must contain at least one letter or digit")
        return self


class RoleAssignment(BaseModel):
    """Binds an identity to a tenant with exactly one role."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    user_id: str
    tenant_id: str
    role: AppRole
    id: Optional[str] = None
    created_at: Optional[datetime] = None


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class LoginRequest(BaseModel):
    """Credentials for password login."""
    email: EmailStr = Field(..., examples=["owner@restaurant.com"])
    password: str = Field(..., min_length=1)

    @field_validator("password")
    @classmethod
    def password_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Password is required")
        return v


class SignupRequest(LoginRequest):
    """Credentials plus display name for a new account."""
    full_name: str = Field(..., min_length=1, max_length=100, examples=["Priya Sharma"])

    @field_validator("full_name")
    @classmethod
    def full_name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Full name is required")
        return v


class PasswordResetRequest(BaseModel):
    """Request a password reset email."""
    email: EmailStr


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class SessionResponse(BaseModel):
    """Read-only projection of the session state."""
    user: Optional[Identity] = None
    tenant: Optional[Tenant] = None
    roles: list[AppRole] = Field(default_factory=list)
    is_loading: bool = False
    is_authenticated: bool = False
    needs_onboarding: bool = False


class RoleCheckResponse(BaseModel):
    role: str
    granted: bool


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    detail: str
    code: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    identity_provider: str
    store_backend: str
    database: str
    timestamp: datetime
