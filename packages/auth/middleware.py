"""FastAPI identity middleware.

Integrates the identity source into the request lifecycle, injecting the
caller's Actor into request.state.actor.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from packages.auth.models import AuthenticationError
from packages.auth.providers.base import IdentityProvider

logger = logging.getLogger(__name__)


class IdentityMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for caller identity.

    Every request gets an Actor in request.state.actor: authenticated when
    the provider verifies credentials, anonymous when none are presented.
    Invalid credentials are rejected with 401.

    Usage:
        from packages.auth import IdentityMiddleware, DevHeaderProvider

        app.add_middleware(IdentityMiddleware, provider=DevHeaderProvider())

    Then in endpoints:
        @app.get("/projects/{project_id}")
        async def get_project(request: Request):
            actor = request.state.actor  # Actor
    """

    def __init__(self, app, provider: IdentityProvider):
        """Initialize identity middleware.

        Args:
            app: FastAPI application
            provider: Identity provider to use
        """
        super().__init__(app)
        self.provider = provider

        logger.info(
            "IdentityMiddleware initialized with provider: %s (secure: %s)",
            provider.provider_name,
            provider.is_secure
        )

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Process request through identification."""
        path = request.url.path

        try:
            actor = await self.provider.identify(request)
        except AuthenticationError as e:
            logger.warning(
                "Identification failed for path %s: %s",
                path, e.message
            )
            return JSONResponse(
                status_code=401,
                content={
                    "error": "authentication_failed",
                    "message": e.message,
                    "code": e.code
                },
                headers={"WWW-Authenticate": "Bearer"}
            )
        except Exception:
            logger.exception("Unexpected identity error for path %s", path)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": "Identity system error",
                    "code": "identity_internal_error"
                }
            )

        request.state.actor = actor
        logger.debug("Identified request: actor=%s path=%s", actor, path)

        return await call_next(request)
