"""
FastAPI Application Entry Point

RestaurantOS auth service - one session authority per browser session,
wired to the mock identity provider (development) or Supabase/Appwrite
(production).

Endpoints:
    - GET  /api/auth/session: Current session snapshot
    - POST /api/auth/login: Password sign-in
    - POST /api/auth/signup: Create account and sign in
    - POST /api/auth/logout: Sign out
    - POST /api/auth/password-reset: Email a reset link
    - GET  /api/auth/roles/{role}: Role check for the active tenant
    - POST /api/onboarding: Create the restaurant and bind the session
    - GET  /health: System health check
"""

import asyncio
import sys
import logging
from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from app.core.config import StoreBackend, get_settings, setup_logging
from app.core.exceptions import AuthenticationError, register_exception_handlers
from app.database import init_db, engine
from app.middleware import SessionCookieMiddleware
from app.schemas import (
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    MessageResponse,
    PasswordResetRequest,
    RoleCheckResponse,
    SessionResponse,
    SignupRequest,
)
from app.services.identity import MockUserDirectory, create_identity_provider
from app.services.onboarding import OnboardingForm, OnboardingService
from app.services.registry import SessionRegistry
from app.services.session import SessionAuthority, SessionState, create_session_authority
from app.services.stores import get_role_store, get_tenant_store

settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

# Accounts created against the mock provider, shared by every session
user_directory = MockUserDirectory()


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Identity provider: {settings.effective_auth_provider.value}")
    logger.info(f"   Store backend: {settings.store_backend.value}")
    logger.info("=" * 60)

    if settings.store_backend == StoreBackend.SQL:
        await init_db()
        logger.info("Database initialized")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    yield

    logger.info("Shutting down...")
    await app.state.registry.aclose()
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Session, tenant and role authority for the RestaurantOS platform. "
        "Runs against a mock identity provider in development and "
        "Supabase or Appwrite in production."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    SessionCookieMiddleware,
    cookie_name=settings.session_cookie_name,
    secure=settings.is_production,
)

register_exception_handlers(app)

app.state.registry = SessionRegistry(
    factory=lambda: create_session_authority(settings, directory=user_directory),
)


# =============================================================================
# DEPENDENCIES & HELPERS
# =============================================================================

async def get_authority(request: Request) -> SessionAuthority:
    """
    Authority for the caller's browser session, created on first use.

    SessionCookieMiddleware sends the key back, also on error responses.
    """
    registry: SessionRegistry = request.app.state.registry
    key, authority = await registry.get_or_create(
        request.cookies.get(settings.session_cookie_name)
    )
    request.state.session_key = key
    return authority


def to_session_response(state: SessionState) -> SessionResponse:
    return SessionResponse(
        user=state.identity,
        tenant=state.tenant,
        roles=sorted(state.roles, key=lambda role: role.value),
        is_loading=state.is_loading,
        is_authenticated=state.is_authenticated,
        needs_onboarding=state.needs_onboarding,
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "session": "/api/auth/session",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check() -> HealthResponse:
    """Verify the identity provider and record stores are reachable."""
    provider = create_identity_provider(settings, directory=user_directory)
    try:
        provider_ok = await provider.health_check()
    finally:
        await provider.aclose()

    store_ok = await get_role_store().health_check()

    return HealthResponse(
        status="operational" if provider_ok and store_ok else "degraded",
        identity_provider=f"{provider.provider_name}: {'healthy' if provider_ok else 'unhealthy'}",
        store_backend=settings.store_backend.value,
        database="healthy" if store_ok else "unhealthy",
        timestamp=datetime.now(),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.get(
    "/api/auth/session",
    response_model=SessionResponse,
    tags=["Auth"],
    summary="Current Session",
)
async def current_session(
    authority: SessionAuthority = Depends(get_authority),
) -> SessionResponse:
    return to_session_response(authority.state)


@app.post(
    "/api/auth/login",
    response_model=SessionResponse,
    responses={401: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Sign In",
)
async def login(
    credentials: LoginRequest,
    authority: SessionAuthority = Depends(get_authority),
) -> SessionResponse:
    state = await authority.login(credentials.email, credentials.password)
    return to_session_response(state)


@app.post(
    "/api/auth/signup",
    response_model=SessionResponse,
    status_code=201,
    responses={401: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Create Account",
)
async def signup(
    details: SignupRequest,
    authority: SessionAuthority = Depends(get_authority),
) -> SessionResponse:
    state = await authority.signup(details.email, details.password, details.full_name)
    return to_session_response(state)


@app.post(
    "/api/auth/logout",
    response_model=MessageResponse,
    tags=["Auth"],
    summary="Sign Out",
)
async def logout(
    authority: SessionAuthority = Depends(get_authority),
) -> MessageResponse:
    """Always clears the local session; reports whether the backend agreed."""
    try:
        await authority.logout()
    except AuthenticationError as e:
        logger.warning(f"Logout completed locally only: {e.message}")
        return MessageResponse(success=False, message="Signed out locally; remote sign-out failed")
    return MessageResponse(message="Signed out")


@app.post(
    "/api/auth/password-reset",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Send Password Reset Link",
)
async def password_reset(
    body: PasswordResetRequest,
    authority: SessionAuthority = Depends(get_authority),
) -> MessageResponse:
    await authority.request_password_reset(body.email, settings.password_reset_redirect_url)
    return MessageResponse(
        message=(
            f"If an account exists for {body.email}, "
            "you'll receive a password reset link shortly."
        )
    )


@app.get(
    "/api/auth/roles/{role}",
    response_model=RoleCheckResponse,
    tags=["Auth"],
    summary="Role Check",
)
async def check_role(
    role: str,
    authority: SessionAuthority = Depends(get_authority),
) -> RoleCheckResponse:
    return RoleCheckResponse(role=role, granted=authority.has_role(role))


# =============================================================================
# ONBOARDING
# =============================================================================

@app.post(
    "/api/onboarding",
    response_model=SessionResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
    tags=["Onboarding"],
    summary="Create Restaurant",
)
async def complete_onboarding(
    form: OnboardingForm,
    authority: SessionAuthority = Depends(get_authority),
) -> SessionResponse:
    service = OnboardingService(get_tenant_store(), get_role_store())
    await service.complete(authority, form)
    return to_session_response(authority.state)
