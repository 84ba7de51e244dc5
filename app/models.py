"""
SQLAlchemy Database Models

Tenant and role records backing the SQL stores:
    - tenants: one row per restaurant
    - user_roles: identity ↔ tenant ↔ role assignments
"""

import uuid

from sqlalchemy import Column, String, DateTime, JSON, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from app.database import Base
from app.schemas import AppRole, TenantStatus


def _new_id() -> str:
    return str(uuid.uuid4())


class TenantRecord(Base):
    """
    A restaurant account.

    Created at the end of onboarding; ``slug`` is unique platform-wide.
    """
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=_new_id)

    # =========================================================================
    # IDENTITY
    # =========================================================================
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True, index=True)
    cuisine_type = Column(String(50), nullable=True)
    logo_url = Column(String(500), nullable=True)

    # =========================================================================
    # CONTACT
    # =========================================================================
    address = Column(String(500), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================
    status = Column(
        Enum(TenantStatus, values_callable=lambda e: [m.value for m in e]),
        default=TenantStatus.ONBOARDING,
        nullable=False,
        index=True,
    )
    settings = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Tenant {self.slug} - {self.status.value}>"


class UserRoleRecord(Base):
    """Role held by an identity within a tenant."""
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", "role", name="uq_user_roles_assignment"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(64), nullable=False, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(
        Enum(AppRole, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<UserRole {self.user_id} - {self.tenant_id} - {self.role.value}>"
