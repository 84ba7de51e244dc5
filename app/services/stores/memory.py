"""
In-Memory Record Stores

Dictionary-backed tenant and role stores for development and tests.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from app.core.exceptions import OnboardingError
from app.schemas import AppRole, RoleAssignment, Tenant, TenantCreate
from app.services.stores.base import BaseRoleStore, BaseTenantStore

logger = logging.getLogger(__name__)


class InMemoryRoleStore(BaseRoleStore):
    """
    Role store kept in a plain list.

    Example:
        >>> store = InMemoryRoleStore()
        >>> await store.assign_role("usr_1", "t1", AppRole.OWNER)
        >>> [a.role for a in await store.list_role_assignments("usr_1")]
        [<AppRole.OWNER: 'owner'>]
    """

    def __init__(self, assignments: Optional[list[RoleAssignment]] = None):
        self._assignments: list[RoleAssignment] = list(assignments or [])

    @property
    def backend_name(self) -> str:
        return "memory"

    async def list_role_assignments(self, user_id: str) -> list[RoleAssignment]:
        return [a for a in self._assignments if a.user_id == user_id]

    async def assign_role(self, user_id: str, tenant_id: str, role: AppRole) -> RoleAssignment:
        for existing in self._assignments:
            if (existing.user_id, existing.tenant_id, existing.role) == (user_id, tenant_id, role):
                return existing

        assignment = RoleAssignment(
            id=str(uuid.uuid4()),
            user_id=user_id,
            tenant_id=tenant_id,
            role=role,
            created_at=datetime.now(timezone.utc),
        )
        self._assignments.append(assignment)
        logger.info(f"Role {role.value} granted to {user_id} in tenant {tenant_id}")
        return assignment


class InMemoryTenantStore(BaseTenantStore):
    """Tenant store kept in a dict keyed by id."""

    def __init__(self):
        self._tenants: dict[str, Tenant] = {}

    @property
    def backend_name(self) -> str:
        return "memory"

    async def create_tenant(self, data: TenantCreate) -> Tenant:
        if await self.get_tenant_by_slug(data.slug) is not None:
            raise OnboardingError(
                f"The URL '{data.slug}' is already taken",
                code="slug_taken",
            )

        now = datetime.now(timezone.utc)
        tenant = Tenant(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        self._tenants[tenant.id] = tenant
        logger.info(f"Tenant created - {tenant.slug}")
        return tenant

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        return self._tenants.get(tenant_id)

    async def get_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        for tenant in self._tenants.values():
            if tenant.slug == slug:
                return tenant
        return None

    async def delete_tenant(self, tenant_id: str) -> None:
        if self._tenants.pop(tenant_id, None) is not None:
            logger.info(f"Tenant deleted - {tenant_id}")
