"""Identity source for the authorization engine.

Turns incoming requests into Actor values:
- Pluggable identity providers
- Environment-gated development header identity

Usage:
    from packages.auth import get_identity_provider, IdentityMiddleware

    # Get configured provider
    provider = get_identity_provider(settings)

    # Add middleware to FastAPI
    app.add_middleware(IdentityMiddleware, provider=provider)
"""

from packages.auth.middleware import IdentityMiddleware
from packages.auth.models import AuthenticationError, InvalidCredentialsError
from packages.auth.providers.base import IdentityProvider
from packages.auth.providers.dev_header import DevHeaderProvider
from packages.authz.config import AuthzSettings

__all__ = [
    "AuthenticationError",
    "DevHeaderProvider",
    "IdentityMiddleware",
    "IdentityProvider",
    "InvalidCredentialsError",
    "get_identity_provider",
]


def get_identity_provider(settings: AuthzSettings) -> IdentityProvider:
    """Get the appropriate identity provider based on configuration."""
    from packages.authz.defaults import DB_INIT_ACTOR_ID

    if settings.allow_header_auth and not settings.is_production:
        return DevHeaderProvider.from_settings(
            settings, blocked_actors=[DB_INIT_ACTOR_ID]
        )
    raise ValueError("No valid identity provider configured")
