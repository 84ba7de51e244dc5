"""
Mock Identity Provider Implementation

Simulates a hosted auth backend without making network calls.
Used in development mode (ENV_MODE=development) to:
    - Exercise signup, login and onboarding locally
    - Run the API test-suite without backend credentials

Behavior:
    - Accounts live in a MockUserDirectory, shared by every provider
      instance created from the same directory (like a real backend)
    - The live session is per provider instance (like a browser)
    - Simulates network latency and an optional failure rate
"""

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.core.exceptions import AuthenticationError, ResolutionError
from app.core.security import get_password_hash, verify_password
from app.schemas import Identity
from app.services.identity.base import BaseIdentityProvider, Session

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@dataclass
class _Account:
    identity: Identity
    password_hash: str


class MockUserDirectory:
    """
    In-memory account registry standing in for the backend's user table.

    Example:
        >>> directory = MockUserDirectory()
        >>> directory.register("a@x.com", "secret123", "Ana")
        Identity(id='usr_mock_...', email='a@x.com', full_name='Ana', avatar_url=None)
    """

    def __init__(self):
        self._accounts: dict[str, _Account] = {}
        self.reset_requests: list[str] = []

    def __len__(self) -> int:
        return len(self._accounts)

    @staticmethod
    def _key(email: str) -> str:
        return email.strip().lower()

    def register(self, email: str, password: str, full_name: Optional[str] = None) -> Identity:
        key = self._key(email)
        if key in self._accounts:
            raise AuthenticationError("User already registered", code="user_already_exists")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthenticationError(
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters",
                code="weak_password",
            )
        identity = Identity(
            id=f"usr_mock_{uuid.uuid4().hex[:20]}",
            email=key,
            full_name=full_name,
        )
        self._accounts[key] = _Account(identity=identity, password_hash=get_password_hash(password))
        return identity

    def authenticate(self, email: str, password: str) -> Identity:
        account = self._accounts.get(self._key(email))
        if account is None or not verify_password(password, account.password_hash):
            raise AuthenticationError("Invalid login credentials", code="invalid_credentials")
        return account.identity

    def contains(self, email: str) -> bool:
        return self._key(email) in self._accounts

    def clear(self) -> None:
        self._accounts.clear()
        self.reset_requests.clear()


class MockIdentityProvider(BaseIdentityProvider):
    """
    Mock implementation of the identity provider.

    Attributes:
        directory: Shared account registry
        failure_rate: Probability of a simulated outage (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds

    Example:
        >>> provider = MockIdentityProvider(MockUserDirectory())
        >>> await provider.create_identity("a@x.com", "secret123", "Ana")
        >>> session = await provider.create_session("a@x.com", "secret123")
        >>> session.identity.email
        'a@x.com'
    """

    SESSION_LIFETIME = timedelta(hours=1)

    def __init__(
        self,
        directory: Optional[MockUserDirectory] = None,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
    ):
        self.directory = directory if directory is not None else MockUserDirectory()
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max(max_latency, min_latency)
        self._session: Optional[Session] = None

        logger.debug(
            f"MockIdentityProvider initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{self.max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    async def _simulate_latency(self) -> float:
        """
        Simulate network latency.

        Returns:
            float: Latency in milliseconds
        """
        latency = random.uniform(self.min_latency, self.max_latency)
        if latency > 0:
            await asyncio.sleep(latency)
        return latency * 1000

    def _should_fail(self) -> bool:
        """Determine if this request should simulate an outage."""
        return random.random() < self.failure_rate

    def _check_available(self) -> None:
        if self._should_fail():
            logger.debug("Mock: Simulated identity service outage")
            raise AuthenticationError(
                "Identity service temporarily unavailable",
                code="service_unavailable",
            )

    async def get_current_session(self) -> Optional[Session]:
        await self._simulate_latency()
        if self._should_fail():
            raise ResolutionError("Identity service temporarily unavailable")

        session = self._session
        if session is None:
            return None
        if session.expires_at and session.expires_at <= datetime.now(timezone.utc):
            logger.debug("Mock: Session expired")
            self._session = None
            return None
        return session

    async def create_session(self, email: str, password: str) -> Session:
        await self._simulate_latency()
        self._check_available()

        identity = self.directory.authenticate(email, password)
        self._session = Session(
            identity=identity,
            access_token=f"mock_{uuid.uuid4().hex}",
            expires_at=datetime.now(timezone.utc) + self.SESSION_LIFETIME,
        )
        logger.info(f"Mock: Session created for {identity.id}")
        return self._session

    async def create_identity(self, email: str, password: str, full_name: str) -> Identity:
        await self._simulate_latency()
        self._check_available()

        identity = self.directory.register(email, password, full_name)
        logger.info(f"Mock: Identity created - {identity.id}")
        return identity

    async def destroy_session(self) -> None:
        await self._simulate_latency()
        self._check_available()

        self._session = None
        logger.debug("Mock: Session destroyed")

    def restore_session(self, session: Optional[Session]) -> None:
        self._session = session

    async def request_password_reset(self, email: str, redirect_to: Optional[str] = None) -> None:
        await self._simulate_latency()
        self._check_available()

        # Same answer for unknown addresses; only known ones are recorded
        if self.directory.contains(email):
            self.directory.reset_requests.append(email.strip().lower())
        logger.info("Mock: Password reset requested")

    async def health_check(self) -> bool:
        """Mock health check always returns True."""
        logger.debug("Mock: Identity health check passed")
        return True
