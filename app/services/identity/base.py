"""
Identity Provider Abstract Base Class

Defines the interface contract for every identity backend the session
authority can be wired to. MockIdentityProvider, SupabaseIdentityProvider
and AppwriteIdentityProvider all implement these methods, so the authority
never knows which backend is active.

Error contract:
    - Active calls (create_session, create_identity, destroy_session,
      request_password_reset) raise AuthenticationError on rejection or
      when the backend is unreachable.
    - get_current_session returns None when there is no live session and
      raises ResolutionError when the backend cannot answer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.schemas import Identity


@dataclass(frozen=True)
class Session:
    """
    A live session as reported by the identity provider.

    Attributes:
        identity: The authenticated user
        access_token: Bearer token, when the backend issues one
        expires_at: Token expiry, when known
        cookies: (name, value, domain, path) of cookie-based backends
    """
    identity: Identity
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    cookies: tuple[tuple[str, str, str, str], ...] = ()


class BaseIdentityProvider(ABC):
    """
    Abstract base class for identity providers.

    One instance holds at most one live session, so each session authority
    gets its own provider instance.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the identity provider.

        Returns:
            str: Provider name (e.g., "mock", "supabase", "appwrite")
        """
        pass

    @abstractmethod
    async def get_current_session(self) -> Optional[Session]:
        """
        Fetch the live session, if any.

        Returns:
            Session, or None when nobody is signed in

        Raises:
            ResolutionError: backend unreachable or response malformed
        """
        pass

    @abstractmethod
    async def create_session(self, email: str, password: str) -> Session:
        """
        Sign in with email and password.

        Raises:
            AuthenticationError: credentials rejected or backend unreachable
        """
        pass

    @abstractmethod
    async def create_identity(self, email: str, password: str, full_name: str) -> Identity:
        """
        Register a new account.

        Does not sign the account in; callers follow up with create_session.

        Raises:
            AuthenticationError: duplicate email, rejected input or backend unreachable
        """
        pass

    @abstractmethod
    async def destroy_session(self) -> None:
        """
        Invalidate the live session on the backend.

        Raises:
            AuthenticationError: backend refused or could not be reached
        """
        pass

    @abstractmethod
    def restore_session(self, session: Optional[Session]) -> None:
        """
        Make a previously returned session (or none) the live one again.

        Local only: nothing is sent to the backend. Used when a sign-in that
        was superseded has replaced the live session under the caller.
        """
        pass

    @abstractmethod
    async def request_password_reset(self, email: str, redirect_to: Optional[str] = None) -> None:
        """
        Ask the backend to email a password reset link.

        Backends answer identically for unknown addresses.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify connectivity to the identity backend.

        Returns:
            bool: True if the backend is reachable
        """
        pass

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None
