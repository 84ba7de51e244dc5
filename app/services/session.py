"""
Session / Tenant Authority

Single source of truth for "who is signed in, for which restaurant, with
which roles". One SessionAuthority exists per user session; it is built
with create_session_authority() and handed explicitly to whoever needs it.

Lifecycle:
    Pending ──resolve_existing_session──▶ Unauthenticated
                                        ▶ NeedsOnboarding (no roles)
                                        ▶ Active (roles found)
    Unauthenticated ──login/signup──▶ NeedsOnboarding | Active
    NeedsOnboarding ──bind_tenant──▶ Active
    any ──logout──▶ Unauthenticated

Only the most recently started login/signup/resolve/logout may commit
state; results of superseded calls are dropped.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from app.core.config import Settings, get_settings
from app.core.exceptions import AuthenticationError, ResolutionError
from app.schemas import (
    AppRole,
    Identity,
    LoginRequest,
    PasswordResetRequest,
    RoleAssignment,
    SignupRequest,
    Tenant,
)
from app.services.identity import BaseIdentityProvider, MockUserDirectory, Session, create_identity_provider
from app.services.stores import BaseRoleStore, get_role_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    """
    Immutable snapshot of the authority's state.

    ``is_authenticated`` is derived from ``identity`` so the two can never
    disagree.
    """
    identity: Optional[Identity] = None
    tenant: Optional[Tenant] = None
    roles: frozenset = field(default_factory=frozenset)
    is_loading: bool = False
    needs_onboarding: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @classmethod
    def pending(cls) -> "SessionState":
        """State before the first resolution."""
        return cls(is_loading=True)

    @classmethod
    def unauthenticated(cls) -> "SessionState":
        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "user": self.identity.model_dump() if self.identity else None,
            "tenant": self.tenant.model_dump(mode="json") if self.tenant else None,
            "roles": sorted(role.value for role in self.roles),
            "is_loading": self.is_loading,
            "is_authenticated": self.is_authenticated,
            "needs_onboarding": self.needs_onboarding,
        }


class SessionAuthority:
    """
    Owns identity, tenant binding and roles for one user session.

    Args:
        identity_provider: Backend that creates and reports sessions
        role_store: Source of role assignments
        timeout: Upper bound in seconds for each remote call

    Example:
        >>> authority = create_session_authority()
        >>> await authority.resolve_existing_session()
        >>> await authority.login("owner@restaurant.com", "secret123")
        >>> authority.state.needs_onboarding
        True
    """

    def __init__(
        self,
        identity_provider: BaseIdentityProvider,
        role_store: BaseRoleStore,
        timeout: float = 10.0,
    ):
        self._provider = identity_provider
        self._role_store = role_store
        self.timeout = timeout
        self._state = SessionState.pending()
        self._assignments: tuple[RoleAssignment, ...] = ()
        self._session: Optional[Session] = None
        self._generation = 0

    # ==========================================================================
    # READ-ONLY PROJECTION
    # ==========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    def snapshot(self) -> dict[str, Any]:
        return self._state.to_dict()

    @property
    def provider_name(self) -> str:
        return self._provider.provider_name

    # ==========================================================================
    # INTERNALS
    # ==========================================================================

    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _call(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def _call_active(self, awaitable, action: str):
        """Run a remote call whose failure the caller must see."""
        try:
            return await self._call(awaitable)
        except asyncio.TimeoutError as e:
            logger.warning(f"{action} timed out after {self.timeout}s")
            raise AuthenticationError(
                "The authentication service did not respond in time",
                code="timeout",
            ) from e

    @staticmethod
    def _validate(model: type[BaseModel], **values: Any) -> Any:
        try:
            return model(**values)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            message = first.get("msg", "Invalid input")
            raise AuthenticationError(
                f"{location}: {message}" if location else message,
                code="invalid_input",
            ) from e

    async def _load_assignments(self, identity: Identity) -> list[RoleAssignment]:
        """Role lookup; every failure degrades to no roles."""
        try:
            return list(await self._call(self._role_store.list_role_assignments(identity.id)))
        except asyncio.TimeoutError:
            logger.warning(f"Role lookup for {identity.id} timed out; continuing without roles")
        except Exception as e:
            logger.warning(f"Role lookup for {identity.id} failed; continuing without roles - {e}")
        return []

    async def _sign_in(self, generation: int, email: str, password: str, action: str) -> Session:
        """
        Create a provider session, keeping the provider on the session
        owned by the current call.
        """
        session = await self._call_active(self._provider.create_session(email, password), action)
        if self._is_current(generation):
            self._session = session
        else:
            logger.debug(f"{action} superseded; restoring the live provider session")
            self._provider.restore_session(self._session)
        return session

    async def _adopt(self, generation: int, session: Session) -> SessionState:
        """Resolve roles for a fresh session and commit if still current."""
        assignments = await self._load_assignments(session.identity)

        if not self._is_current(generation):
            logger.debug(f"Dropping superseded session result for {session.identity.id}")
            return self._state

        roles = frozenset(a.role for a in assignments)
        self._assignments = tuple(assignments)
        self._state = SessionState(
            identity=session.identity,
            tenant=None,
            roles=roles,
            is_loading=False,
            needs_onboarding=not roles,
        )
        logger.info(
            f"Session resolved for {session.identity.id} "
            f"(roles={sorted(r.value for r in roles)}, needs_onboarding={not roles})"
        )
        return self._state

    def _settle(self, generation: int) -> None:
        """Clear the loading flag after a failed call that is still current."""
        if self._is_current(generation) and self._state.is_loading:
            self._state = replace(self._state, is_loading=False)

    # ==========================================================================
    # OPERATIONS
    # ==========================================================================

    async def resolve_existing_session(self) -> SessionState:
        """
        Pick up a session the provider already holds.

        Never raises: any failure leaves the state unauthenticated.
        """
        generation = self._begin()
        try:
            session = await self._call(self._provider.get_current_session())
        except asyncio.TimeoutError:
            logger.warning("Session lookup timed out; treating as signed out")
            session = None
        except ResolutionError as e:
            logger.warning(f"Session lookup failed; treating as signed out - {e.message}")
            session = None
        except Exception as e:
            logger.warning(f"Session lookup failed; treating as signed out - {e}")
            session = None

        if not self._is_current(generation):
            logger.debug("Dropping superseded session lookup")
            return self._state

        self._session = session
        if session is None:
            self._assignments = ()
            self._state = SessionState.unauthenticated()
            return self._state

        return await self._adopt(generation, session)

    async def login(self, email: str, password: str) -> SessionState:
        """
        Sign in with email and password.

        Raises:
            AuthenticationError: invalid input, rejected credentials,
                unreachable provider or timeout
        """
        credentials = self._validate(LoginRequest, email=email, password=password)
        generation = self._begin()

        try:
            session = await self._sign_in(generation, credentials.email, credentials.password, "Login")
        except AuthenticationError as e:
            logger.info(f"Login rejected ({e.code})")
            self._settle(generation)
            raise

        return await self._adopt(generation, session)

    async def signup(self, email: str, password: str, full_name: str) -> SessionState:
        """
        Register a new account and sign it in.

        Raises:
            AuthenticationError: invalid input, duplicate email, rejected
                input, unreachable provider or timeout
        """
        details = self._validate(SignupRequest, email=email, password=password, full_name=full_name)
        generation = self._begin()

        try:
            await self._call_active(
                self._provider.create_identity(details.email, details.password, details.full_name),
                "Signup",
            )
            if not self._is_current(generation):
                logger.debug("Signup superseded before sign-in; skipping session creation")
                return self._state
            session = await self._sign_in(generation, details.email, details.password, "Signup sign-in")
        except AuthenticationError as e:
            logger.info(f"Signup rejected ({e.code})")
            self._settle(generation)
            raise

        return await self._adopt(generation, session)

    async def logout(self) -> None:
        """
        Sign out.

        Local state is reset before the remote call, so it ends up
        unauthenticated even when the provider fails.

        Raises:
            AuthenticationError: the provider could not invalidate the session
        """
        self._begin()
        self._session = None
        self._assignments = ()
        self._state = SessionState.unauthenticated()

        try:
            await self._call(self._provider.destroy_session())
        except AuthenticationError as e:
            logger.warning(f"Remote sign-out failed; local session cleared - {e.message}")
            raise
        except Exception as e:
            logger.warning(f"Remote sign-out failed; local session cleared - {e!r}")
            raise AuthenticationError("Remote sign-out failed", code="logout_failed") from e

        logger.info("Signed out")

    def bind_tenant(
        self,
        tenant: Union[Tenant, Mapping[str, Any]],
        roles: Optional[Iterable[Union[AppRole, str]]] = None,
    ) -> SessionState:
        """
        Bind the session to a tenant, completing onboarding.

        Args:
            tenant: Tenant, or a mapping validated into one
            roles: Roles just granted in this tenant

        Raises:
            ValueError: tenant status is not a known lifecycle value
        """
        if not isinstance(tenant, Tenant):
            tenant = Tenant.model_validate(tenant)

        granted = [AppRole(role) for role in roles or ()]
        identity = self._state.identity
        if identity is not None:
            known = {(a.tenant_id, a.role) for a in self._assignments}
            extra = tuple(
                RoleAssignment(user_id=identity.id, tenant_id=tenant.id, role=role)
                for role in dict.fromkeys(granted)
                if (tenant.id, role) not in known
            )
            self._assignments += extra

        scoped = frozenset(a.role for a in self._assignments if a.tenant_id == tenant.id)
        self._state = replace(self._state, tenant=tenant, roles=scoped, needs_onboarding=False)
        logger.info(f"Session bound to tenant {tenant.id} (roles={sorted(r.value for r in scoped)})")
        return self._state

    def has_role(self, role: Union[AppRole, str]) -> bool:
        """True iff the role is held in the current binding. Never raises."""
        try:
            role = AppRole(role)
        except (ValueError, TypeError):
            return False
        return self._state.is_authenticated and role in self._state.roles

    async def request_password_reset(self, email: str, redirect_to: Optional[str] = None) -> None:
        """
        Ask the provider to email a reset link. Session state is untouched.

        Raises:
            AuthenticationError: invalid email, provider failure or timeout
        """
        request = self._validate(PasswordResetRequest, email=email)
        await self._call_active(
            self._provider.request_password_reset(request.email, redirect_to),
            "Password reset",
        )

    async def aclose(self) -> None:
        await self._provider.aclose()


def create_session_authority(
    settings: Optional[Settings] = None,
    *,
    identity_provider: Optional[BaseIdentityProvider] = None,
    role_store: Optional[BaseRoleStore] = None,
    directory: Optional[MockUserDirectory] = None,
) -> SessionAuthority:
    """
    Build a new, independent SessionAuthority.

    Args:
        settings: Settings to use (defaults to get_settings())
        identity_provider: Injected provider; built from settings when omitted
        role_store: Injected role store; configured store when omitted
        directory: Shared account registry for mock providers

    Returns:
        SessionAuthority: Pending authority; call resolve_existing_session() next
    """
    settings = settings or get_settings()
    return SessionAuthority(
        identity_provider=identity_provider or create_identity_provider(settings, directory=directory),
        role_store=role_store or get_role_store(),
        timeout=settings.auth_timeout_seconds,
    )
