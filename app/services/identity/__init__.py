"""
Identity Provider Factory

Provides a single entry point for obtaining an identity provider.
Selects Mock, Supabase or Appwrite based on ENV_MODE and AUTH_PROVIDER.

Unlike the other services, providers are NOT cached: each one holds a live
session, so every session authority needs its own instance.

Usage:
    from app.services.identity import create_identity_provider

    provider = create_identity_provider()
    session = await provider.create_session("owner@restaurant.com", "secret")

Environment Switching:
    - ENV_MODE=development → MockIdentityProvider
    - ENV_MODE=staging/production, AUTH_PROVIDER=supabase → SupabaseIdentityProvider
    - ENV_MODE=staging/production, AUTH_PROVIDER=appwrite → AppwriteIdentityProvider
"""

import logging
from typing import Optional

from app.core.config import AuthProvider, Settings, get_settings
from app.services.identity.base import BaseIdentityProvider, Session
from app.services.identity.mock import MockIdentityProvider, MockUserDirectory
from app.services.identity.supabase import SupabaseIdentityProvider
from app.services.identity.appwrite import AppwriteIdentityProvider

logger = logging.getLogger(__name__)


def create_identity_provider(
    settings: Optional[Settings] = None,
    directory: Optional[MockUserDirectory] = None,
) -> BaseIdentityProvider:
    """
    Build a new identity provider for one session.

    Args:
        settings: Settings to use (defaults to get_settings())
        directory: Account registry shared by mock providers

    Returns:
        BaseIdentityProvider: Fresh provider instance

    Raises:
        ValueError: If the selected backend is not configured
    """
    settings = settings or get_settings()
    backend = settings.effective_auth_provider

    if backend == AuthProvider.MOCK:
        logger.debug("Identity Provider: Using MockIdentityProvider (development mode)")
        return MockIdentityProvider(
            directory=directory,
            failure_rate=settings.mock_failure_rate,
            min_latency=settings.mock_min_latency,
            max_latency=settings.mock_max_latency,
        )

    if backend == AuthProvider.APPWRITE:
        logger.debug(
            f"Identity Provider: Using AppwriteIdentityProvider "
            f"({settings.env_mode.value} mode)"
        )
        return AppwriteIdentityProvider(
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id or "",
            timeout=settings.auth_timeout_seconds,
        )

    logger.debug(
        f"Identity Provider: Using SupabaseIdentityProvider "
        f"({settings.env_mode.value} mode)"
    )
    return SupabaseIdentityProvider(
        url=settings.supabase_url or "",
        anon_key=settings.supabase_anon_key or "",
        timeout=settings.auth_timeout_seconds,
    )


__all__ = [
    "create_identity_provider",
    "BaseIdentityProvider",
    "Session",
    "MockIdentityProvider",
    "MockUserDirectory",
    "SupabaseIdentityProvider",
    "AppwriteIdentityProvider",
]
