"""
SQL Record Stores

Tenant and role stores on the SQLAlchemy async engine (PostgreSQL in
production, SQLite in tests). Each call opens its own short-lived session.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import OnboardingError
from app.models import TenantRecord, UserRoleRecord
from app.schemas import AppRole, RoleAssignment, Tenant, TenantCreate
from app.services.stores.base import BaseRoleStore, BaseTenantStore

logger = logging.getLogger(__name__)


class SqlRoleStore(BaseRoleStore):
    """Role assignments in the ``user_roles`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @property
    def backend_name(self) -> str:
        return "sql"

    async def list_role_assignments(self, user_id: str) -> list[RoleAssignment]:
        try:
            async with self._session_maker() as db:
                result = await db.execute(
                    select(UserRoleRecord)
                    .where(UserRoleRecord.user_id == user_id)
                    .order_by(UserRoleRecord.created_at)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Role lookup failed for {user_id}: {e}")
            return []

        return [RoleAssignment.model_validate(row) for row in rows]

    async def assign_role(self, user_id: str, tenant_id: str, role: AppRole) -> RoleAssignment:
        async with self._session_maker() as db:
            result = await db.execute(
                select(UserRoleRecord).where(
                    UserRoleRecord.user_id == user_id,
                    UserRoleRecord.tenant_id == tenant_id,
                    UserRoleRecord.role == role,
                )
            )
            existing = result.scalar_one_or_none()
            if existing is not None:
                return RoleAssignment.model_validate(existing)

            record = UserRoleRecord(user_id=user_id, tenant_id=tenant_id, role=role)
            db.add(record)
            await db.commit()
            await db.refresh(record)

        logger.info(f"Role {role.value} granted to {user_id} in tenant {tenant_id}")
        return RoleAssignment.model_validate(record)

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as db:
                await db.execute(select(1))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Role store health check failed: {e}")
            return False


class SqlTenantStore(BaseTenantStore):
    """Tenants in the ``tenants`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @property
    def backend_name(self) -> str:
        return "sql"

    async def create_tenant(self, data: TenantCreate) -> Tenant:
        if await self.get_tenant_by_slug(data.slug) is not None:
            raise OnboardingError(
                f"The URL '{data.slug}' is already taken",
                code="slug_taken",
            )

        record = TenantRecord(**data.model_dump())
        async with self._session_maker() as db:
            db.add(record)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise OnboardingError(
                    f"The URL '{data.slug}' is already taken",
                    code="slug_taken",
                ) from e
            await db.refresh(record)

        logger.info(f"Tenant created - {record.slug}")
        return Tenant.model_validate(record)

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        async with self._session_maker() as db:
            record = await db.get(TenantRecord, tenant_id)
        return Tenant.model_validate(record) if record is not None else None

    async def get_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        async with self._session_maker() as db:
            result = await db.execute(select(TenantRecord).where(TenantRecord.slug == slug))
            record = result.scalar_one_or_none()
        return Tenant.model_validate(record) if record is not None else None

    async def delete_tenant(self, tenant_id: str) -> None:
        async with self._session_maker() as db:
            record = await db.get(TenantRecord, tenant_id)
            if record is None:
                return
            await db.delete(record)
            await db.commit()
        logger.info(f"Tenant deleted - {tenant_id}")
