"""
Session cookie middleware.

Issues the browser-session cookie on every response, error responses
from the exception handlers included.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp


class SessionCookieMiddleware(BaseHTTPMiddleware):
    """
    Sets the cookie for the session key a request was served under.

    The key is placed on ``request.state.session_key`` by the
    ``get_authority`` dependency; requests that never touch a session get
    no cookie.
    """

    def __init__(self, app: ASGIApp, cookie_name: str, secure: bool = False):
        super().__init__(app)
        self.cookie_name = cookie_name
        self.secure = secure

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        key = getattr(request.state, "session_key", None)
        if key is not None:
            response.set_cookie(
                self.cookie_name,
                key,
                httponly=True,
                samesite="lax",
                secure=self.secure,
            )
        return response
