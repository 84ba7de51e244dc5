"""
Record Store Factory

Selects SQL or in-memory tenant/role stores based on STORE_BACKEND.

Usage:
    from app.services.stores import get_role_store, get_tenant_store

    roles = await get_role_store().list_role_assignments(identity.id)
"""

import logging
from functools import lru_cache

from app.core.config import StoreBackend, get_settings
from app.services.stores.base import BaseRoleStore, BaseTenantStore
from app.services.stores.memory import InMemoryRoleStore, InMemoryTenantStore
from app.services.stores.sql import SqlRoleStore, SqlTenantStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_role_store() -> BaseRoleStore:
    """
    Get the configured role store.

    Stores are stateless views over shared records, so one instance serves
    every session.
    """
    settings = get_settings()

    if settings.store_backend == StoreBackend.MEMORY:
        logger.info("Role Store: Using InMemoryRoleStore")
        return InMemoryRoleStore()

    from app.database import async_session_maker

    logger.info("Role Store: Using SqlRoleStore")
    return SqlRoleStore(async_session_maker)


@lru_cache()
def get_tenant_store() -> BaseTenantStore:
    """Get the configured tenant store."""
    settings = get_settings()

    if settings.store_backend == StoreBackend.MEMORY:
        logger.info("Tenant Store: Using InMemoryTenantStore")
        return InMemoryTenantStore()

    from app.database import async_session_maker

    logger.info("Tenant Store: Using SqlTenantStore")
    return SqlTenantStore(async_session_maker)


def reset_stores() -> None:
    """
    Clear the cached store instances.

    Useful for testing or when configuration changes at runtime.
    """
    get_role_store.cache_clear()
    get_tenant_store.cache_clear()
    logger.debug("Store cache cleared")


__all__ = [
    "get_role_store",
    "get_tenant_store",
    "reset_stores",
    "BaseRoleStore",
    "BaseTenantStore",
    "InMemoryRoleStore",
    "InMemoryTenantStore",
    "SqlRoleStore",
    "SqlTenantStore",
]
