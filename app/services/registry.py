"""
Session Registry

Keeps one SessionAuthority per browser session for the HTTP layer.
Keys are random, server-issued tokens carried in a cookie; a key the
registry has never issued gets a brand new authority, never someone
else's.
"""

import logging
import secrets
from collections import OrderedDict
from typing import Callable, Optional

from app.services.session import SessionAuthority

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    LRU map of session key → SessionAuthority.

    Args:
        factory: Builds a new pending authority
        max_sessions: Oldest sessions are evicted beyond this count
    """

    def __init__(self, factory: Callable[[], SessionAuthority], max_sessions: int = 10_000):
        self._factory = factory
        self.max_sessions = max_sessions
        self._authorities: "OrderedDict[str, SessionAuthority]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._authorities)

    def __contains__(self, key: str) -> bool:
        return key in self._authorities

    async def get_or_create(self, key: Optional[str]) -> tuple[str, SessionAuthority]:
        """
        Look up the authority for a key, creating and resolving a new one
        when the key is missing or unknown.

        Returns:
            (key, authority): key may differ from the one passed in
        """
        if key and key in self._authorities:
            self._authorities.move_to_end(key)
            return key, self._authorities[key]

        key = secrets.token_urlsafe(32)
        authority = self._factory()
        await authority.resolve_existing_session()
        self._authorities[key] = authority
        logger.debug(f"Session registry: new session ({len(self._authorities)} active)")

        while len(self._authorities) > self.max_sessions:
            _, evicted = self._authorities.popitem(last=False)
            await evicted.aclose()

        return key, authority

    async def discard(self, key: str) -> None:
        authority = self._authorities.pop(key, None)
        if authority is not None:
            await authority.aclose()

    async def aclose(self) -> None:
        """Close every provider; used at application shutdown."""
        while self._authorities:
            _, authority = self._authorities.popitem()
            await authority.aclose()
