"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from app.core.config import (
    get_settings,
    setup_logging,
    Settings,
    EnvironmentMode,
    AuthProvider,
    StoreBackend,
)
from app.core.exceptions import (
    RestaurantAuthError,
    AuthenticationError,
    ResolutionError,
    OnboardingError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "AuthProvider",
    "StoreBackend",
    "RestaurantAuthError",
    "AuthenticationError",
    "ResolutionError",
    "OnboardingError",
]
