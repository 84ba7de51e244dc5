"""
Appwrite Identity Provider Implementation

Talks to the Appwrite Account REST API over httpx.
Used when ENV_MODE is production/staging and AUTH_PROVIDER=appwrite.

Appwrite keeps the session in a cookie, so the httpx client's cookie jar
is the session store; one provider instance per session authority.

Endpoints used:
    POST   /account/sessions/email     sign in
    GET    /account                    current user
    POST   /account                    register
    DELETE /account/sessions/current   sign out
    POST   /account/recovery           password reset email
"""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from app.core.exceptions import AuthenticationError, ResolutionError
from app.schemas import Identity
from app.services.identity.base import BaseIdentityProvider, Session

logger = logging.getLogger(__name__)


def _error(response: httpx.Response) -> tuple[str, str]:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or f"Appwrite request failed with status {response.status_code}"
    code = body.get("type") or str(response.status_code)
    return str(message), str(code)


def _identity_from_account(account: Any) -> Identity:
    if not isinstance(account, dict) or not account.get("$id") or not account.get("email"):
        raise ResolutionError("Malformed account payload from Appwrite")
    prefs = account.get("prefs") or {}
    try:
        return Identity(
            id=str(account["$id"]),
            email=str(account["email"]),
            full_name=account.get("name") or None,
            avatar_url=prefs.get("avatar_url"),
        )
    except ValidationError as e:
        raise ResolutionError("Malformed account payload from Appwrite") from e


def _parse_expire(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class AppwriteIdentityProvider(BaseIdentityProvider):
    """
    Appwrite Account identity provider.

    Example:
        >>> provider = AppwriteIdentityProvider(
        ...     endpoint="https://cloud.appwrite.io/v1", project_id="restaurantos"
        ... )
        >>> session = await provider.create_session("owner@restaurant.com", "pw")
    """

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not project_id:
            raise ValueError(
                "APPWRITE_PROJECT_ID is required for the Appwrite provider. "
                "Set it in your .env file or environment variables."
            )
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._expires_at: Optional[datetime] = None

        logger.info("AppwriteIdentityProvider initialized")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "appwrite"

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.endpoint,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "X-Appwrite-Project": self.project_id,
                },
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._get_client().request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Appwrite: Request to {path} failed - {e}")
            raise AuthenticationError(
                "Unable to reach the authentication service",
                code="service_unavailable",
            ) from e

    def _cookie_snapshot(self) -> tuple[tuple[str, str, str, str], ...]:
        return tuple(
            (cookie.name, cookie.value or "", cookie.domain, cookie.path)
            for cookie in self._get_client().cookies.jar
        )

    async def _fetch_account(self) -> Optional[Identity]:
        try:
            response = await self._get_client().get("/account")
        except httpx.RequestError as e:
            raise ResolutionError(f"Unable to reach Appwrite: {e}") from e

        # Guests get 401; that simply means nobody is signed in
        if response.status_code == 401:
            return None
        if response.status_code >= 400:
            message, _ = _error(response)
            raise ResolutionError(f"Appwrite account lookup failed: {message}")
        try:
            return _identity_from_account(response.json())
        except ValueError as e:
            raise ResolutionError("Malformed account payload from Appwrite") from e

    async def get_current_session(self) -> Optional[Session]:
        identity = await self._fetch_account()
        if identity is None:
            return None
        return Session(identity=identity, expires_at=self._expires_at, cookies=self._cookie_snapshot())

    async def create_session(self, email: str, password: str) -> Session:
        logger.debug("Appwrite: Email session sign-in")
        response = await self._send(
            "POST",
            "/account/sessions/email",
            json={"email": email, "password": password},
        )
        if response.status_code >= 400:
            message, code = _error(response)
            logger.warning(f"Appwrite: Sign-in rejected ({code})")
            raise AuthenticationError(message, code=code)

        try:
            body = response.json()
        except ValueError:
            body = {}
        self._expires_at = _parse_expire(body.get("expire") if isinstance(body, dict) else None)

        try:
            identity = await self._fetch_account()
        except ResolutionError as e:
            raise AuthenticationError(e.message, code="bad_response") from e
        if identity is None:
            raise AuthenticationError("Session was not established", code="session_missing")

        logger.info(f"Appwrite: Session created for {identity.id}")
        return Session(identity=identity, expires_at=self._expires_at, cookies=self._cookie_snapshot())

    async def create_identity(self, email: str, password: str, full_name: str) -> Identity:
        response = await self._send(
            "POST",
            "/account",
            json={
                "userId": "unique()",
                "email": email,
                "password": password,
                "name": full_name,
            },
        )
        if response.status_code >= 400:
            message, code = _error(response)
            logger.warning(f"Appwrite: Signup rejected ({code})")
            raise AuthenticationError(message, code=code)

        try:
            identity = _identity_from_account(response.json())
        except (ValueError, ResolutionError) as e:
            raise AuthenticationError("Malformed signup response from Appwrite", code="bad_response") from e

        logger.info(f"Appwrite: Identity created - {identity.id}")
        return identity

    async def destroy_session(self) -> None:
        self._expires_at = None
        try:
            response = await self._send("DELETE", "/account/sessions/current")
        finally:
            self._get_client().cookies.clear()
        if response.status_code >= 400 and response.status_code != 401:
            message, code = _error(response)
            raise AuthenticationError(message, code=code)
        logger.debug("Appwrite: Session deleted")

    def restore_session(self, session: Optional[Session]) -> None:
        cookies = self._get_client().cookies
        cookies.clear()
        self._expires_at = session.expires_at if session else None
        for name, value, domain, path in (session.cookies if session else ()):
            cookies.set(name, value, domain=domain, path=path)

    async def request_password_reset(self, email: str, redirect_to: Optional[str] = None) -> None:
        payload = {"email": email}
        if redirect_to:
            payload["url"] = redirect_to
        response = await self._send("POST", "/account/recovery", json=payload)
        if response.status_code >= 400:
            message, code = _error(response)
            raise AuthenticationError(message, code=code)
        logger.info("Appwrite: Password reset requested")

    async def health_check(self) -> bool:
        try:
            response = await self._get_client().get("/account")
        except httpx.RequestError as e:
            logger.error(f"Appwrite: Health check failed - {e}")
            return False
        return response.status_code < 500
