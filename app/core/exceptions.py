"""
Error taxonomy and FastAPI exception handlers.

    - AuthenticationError: bad credentials, duplicate account, invalid input,
      unreachable provider or timeout. Raised to the caller, never retried.
    - ResolutionError: passive session/role lookup failures. Always recovered
      inside the session authority by degrading to an unauthenticated or
      empty-role state.
    - OnboardingError: tenant creation could not be completed.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class RestaurantAuthError(Exception):
    """Base class for session, identity and onboarding errors."""

    default_code = "error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {"success": False, "detail": self.message, "code": self.code}


class AuthenticationError(RestaurantAuthError):
    """The identity provider rejected or could not serve an active request."""

    default_code = "authentication_failed"


class ResolutionError(RestaurantAuthError):
    """A passive session or role lookup failed."""

    default_code = "resolution_failed"


class OnboardingError(RestaurantAuthError):
    """Tenant creation or binding failed."""

    default_code = "onboarding_failed"


async def _authentication_error_handler(_request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(status_code=401, content=exc.to_dict())


async def _onboarding_error_handler(_request: Request, exc: OnboardingError) -> JSONResponse:
    return JSONResponse(status_code=400, content=exc.to_dict())


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "detail": "Internal database error"},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "detail": "An unexpected error occurred"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(AuthenticationError, _authentication_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(OnboardingError, _onboarding_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
