"""
Record Store Abstract Base Classes

Interfaces for the two record collections the auth flow touches:
    - BaseRoleStore: role assignments, read by the session authority
    - BaseTenantStore: tenants, written by onboarding only

Role lookups never raise: no match and backend errors both yield an
empty list, so a user without a resolvable role still reaches onboarding.
"""

from abc import ABC, abstractmethod
from typing import Optional

from app.schemas import AppRole, RoleAssignment, Tenant, TenantCreate


class BaseRoleStore(ABC):
    """Abstract base class for role assignment stores."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the store backend name (e.g., "memory", "sql")."""
        pass

    @abstractmethod
    async def list_role_assignments(self, user_id: str) -> list[RoleAssignment]:
        """
        List every role assignment held by an identity.

        Args:
            user_id: Identity id from the identity provider

        Returns:
            list[RoleAssignment]: Empty on no match or backend error
        """
        pass

    @abstractmethod
    async def assign_role(self, user_id: str, tenant_id: str, role: AppRole) -> RoleAssignment:
        """
        Grant a role within a tenant. Granting an existing role is a no-op.

        Returns:
            RoleAssignment: The stored (new or existing) assignment
        """
        pass

    async def health_check(self) -> bool:
        """Verify connectivity to the store."""
        return True


class BaseTenantStore(ABC):
    """Abstract base class for tenant stores."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        pass

    @abstractmethod
    async def create_tenant(self, data: TenantCreate) -> Tenant:
        """
        Persist a new tenant.

        Raises:
            OnboardingError: slug already taken
        """
        pass

    @abstractmethod
    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        pass

    @abstractmethod
    async def get_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        pass

    @abstractmethod
    async def delete_tenant(self, tenant_id: str) -> None:
        """Remove a tenant; unknown ids are ignored."""
        pass
