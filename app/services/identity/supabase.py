"""
Supabase Identity Provider Implementation

Talks to the Supabase Auth (GoTrue) REST API directly over httpx.
Used when ENV_MODE is production/staging and AUTH_PROVIDER=supabase.

Requirements:
    - SUPABASE_URL and SUPABASE_ANON_KEY must be set in environment

Endpoints used:
    POST /auth/v1/token?grant_type=password   sign in
    POST /auth/v1/signup                      register
    GET  /auth/v1/user                        current user for a token
    POST /auth/v1/logout                      revoke the token
    POST /auth/v1/recover                     password reset email
    GET  /auth/v1/health                      connectivity
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from app.core.exceptions import AuthenticationError, ResolutionError
from app.schemas import Identity
from app.services.identity.base import BaseIdentityProvider, Session

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> tuple[str, str]:
    """Pull (message, code) out of either GoTrue error shape."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = (
        body.get("msg")
        or body.get("error_description")
        or body.get("message")
        or body.get("error")
        or f"Auth request failed with status {response.status_code}"
    )
    code = body.get("error_code") or body.get("error") or str(response.status_code)
    return str(message), str(code)


def _identity_from_user(user: Any) -> Identity:
    if not isinstance(user, dict) or not user.get("id") or not user.get("email"):
        raise ResolutionError("Malformed user payload from Supabase")
    metadata = user.get("user_metadata") or {}
    try:
        return Identity(
            id=str(user["id"]),
            email=str(user["email"]),
            full_name=metadata.get("full_name") or metadata.get("name"),
            avatar_url=metadata.get("avatar_url"),
        )
    except ValidationError as e:
        raise ResolutionError("Malformed user payload from Supabase") from e


class SupabaseIdentityProvider(BaseIdentityProvider):
    """
    Supabase Auth identity provider.

    Holds the access token of the session it created; one instance per
    session authority.

    Example:
        >>> provider = SupabaseIdentityProvider(
        ...     url="https://abc.supabase.co", anon_key="eyJ..."
        ... )
        >>> session = await provider.create_session("owner@restaurant.com", "pw")
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Supabase provider.

        Args:
            url: Project URL, e.g. https://<ref>.supabase.co
            anon_key: Public anon key sent as the ``apikey`` header
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        if not url or not anon_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_ANON_KEY are required for the Supabase provider. "
                "Set them in your .env file or environment variables."
            )
        self.base_url = f"{url.rstrip('/')}/auth/v1"
        self.anon_key = anon_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._session: Optional[Session] = None

        logger.info("SupabaseIdentityProvider initialized")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "supabase"

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "apikey": self.anon_key,
                },
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _bearer(self) -> dict[str, str]:
        if self._session is None or not self._session.access_token:
            return {}
        return {"Authorization": f"Bearer {self._session.access_token}"}

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._get_client().request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Supabase: Request to {path} failed - {e}")
            raise AuthenticationError(
                "Unable to reach the authentication service",
                code="service_unavailable",
            ) from e

    @staticmethod
    def _session_from_token_response(body: Any) -> Session:
        if not isinstance(body, dict) or not body.get("access_token"):
            raise AuthenticationError("Malformed token response from Supabase", code="bad_response")
        try:
            identity = _identity_from_user(body.get("user"))
        except ResolutionError as e:
            raise AuthenticationError(e.message, code="bad_response") from e

        expires_at = None
        if body.get("expires_at"):
            try:
                expires_at = datetime.fromtimestamp(int(body["expires_at"]), tz=timezone.utc)
            except (TypeError, ValueError, OverflowError, OSError) as e:
                raise AuthenticationError("Malformed token expiry from Supabase", code="bad_response") from e
        return Session(
            identity=identity,
            access_token=body["access_token"],
            expires_at=expires_at,
        )

    async def get_current_session(self) -> Optional[Session]:
        if self._session is None:
            return None

        try:
            response = await self._get_client().get("/user", headers=self._bearer())
        except httpx.RequestError as e:
            raise ResolutionError(f"Unable to reach Supabase: {e}") from e

        if response.status_code in (401, 403):
            logger.info("Supabase: Stored access token is no longer valid")
            self._session = None
            return None
        if response.status_code >= 400:
            message, _ = _error_message(response)
            raise ResolutionError(f"Supabase user lookup failed: {message}")

        try:
            identity = _identity_from_user(response.json())
        except ValueError as e:
            raise ResolutionError("Malformed user payload from Supabase") from e

        self._session = Session(
            identity=identity,
            access_token=self._session.access_token,
            expires_at=self._session.expires_at,
        )
        return self._session

    async def create_session(self, email: str, password: str) -> Session:
        logger.debug("Supabase: Password sign-in")
        response = await self._send(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code >= 400:
            message, code = _error_message(response)
            logger.warning(f"Supabase: Sign-in rejected ({code})")
            raise AuthenticationError(message, code=code)

        try:
            body = response.json()
        except ValueError as e:
            raise AuthenticationError("Malformed token response from Supabase", code="bad_response") from e

        self._session = self._session_from_token_response(body)
        logger.info(f"Supabase: Session created for {self._session.identity.id}")
        return self._session

    async def create_identity(self, email: str, password: str, full_name: str) -> Identity:
        response = await self._send(
            "POST",
            "/signup",
            json={
                "email": email,
                "password": password,
                "data": {"full_name": full_name},
            },
        )
        if response.status_code >= 400:
            message, code = _error_message(response)
            logger.warning(f"Supabase: Signup rejected ({code})")
            raise AuthenticationError(message, code=code)

        try:
            body = response.json()
        except ValueError as e:
            raise AuthenticationError("Malformed signup response from Supabase", code="bad_response") from e

        # With email confirmation on, GoTrue returns the bare user; otherwise a session
        user = body.get("user", body) if isinstance(body, dict) else None
        try:
            identity = _identity_from_user(user)
        except ResolutionError as e:
            raise AuthenticationError(e.message, code="bad_response") from e

        logger.info(f"Supabase: Identity created - {identity.id}")
        return identity

    async def destroy_session(self) -> None:
        if self._session is None:
            return

        headers = self._bearer()
        self._session = None
        response = await self._send("POST", "/logout", headers=headers)
        if response.status_code >= 400 and response.status_code != 401:
            message, code = _error_message(response)
            raise AuthenticationError(message, code=code)
        logger.debug("Supabase: Session revoked")

    def restore_session(self, session: Optional[Session]) -> None:
        self._session = session

    async def request_password_reset(self, email: str, redirect_to: Optional[str] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        response = await self._send("POST", "/recover", params=params, json={"email": email})
        if response.status_code >= 400:
            message, code = _error_message(response)
            raise AuthenticationError(message, code=code)
        logger.info("Supabase: Password reset requested")

    async def health_check(self) -> bool:
        try:
            response = await self._get_client().get("/health")
        except httpx.RequestError as e:
            logger.error(f"Supabase: Health check failed - {e}")
            return False
        return response.status_code == 200
