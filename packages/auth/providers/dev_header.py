"""Development-only header-based identity.

WARNING: This provider is NOT SECURE and must NEVER be used in production.
It exists only to simplify development and testing workflows.

In development mode, this provider accepts:
- X-Actor-ID: Actor identifier (absent means anonymous)
"""

import logging
from typing import Any

from packages.auth.models import InvalidCredentialsError
from packages.auth.providers.base import IdentityProvider
from packages.authz.config import AuthzSettings
from packages.authz.models import Actor

logger = logging.getLogger(__name__)

ACTOR_HEADER = "X-Actor-ID"


class DevHeaderProvider(IdentityProvider):
    """Development-only header-based identity.

    SECURITY WARNING:
    This provider trusts client-provided headers without verification.
    It must NEVER be enabled in production environments.

    Usage in development:
        curl -H "X-Actor-ID: 7f0c..." ...
    """

    def __init__(
        self,
        actor_allowlist: list[str] | None = None,
        blocked_actors: list[str] | None = None,
    ):
        """Initialize dev header provider.

        Args:
            actor_allowlist: If set, only these actor IDs are accepted
            blocked_actors: Actor IDs that may never be claimed by header
                (e.g. the bootstrap identity)
        """
        self.actor_allowlist = actor_allowlist
        self.blocked_actors = set(blocked_actors or [])

        logger.warning(
            "DevHeaderProvider is ACTIVE: actor identity is taken from the %s "
            "header without verification. Never enable in production.",
            ACTOR_HEADER
        )

    @classmethod
    def from_settings(cls, settings: AuthzSettings, **kwargs) -> "DevHeaderProvider":
        """Create the provider, refusing when settings forbid header identity."""
        if settings.is_production or not settings.allow_header_auth:
            raise RuntimeError(
                "Header identity is disabled. Set AUTHZ_ALLOW_HEADER_AUTH=true "
                "outside production to enable it."
            )
        return cls(**kwargs)

    @property
    def provider_name(self) -> str:
        return "dev_header"

    @property
    def is_secure(self) -> bool:
        return False  # NEVER secure

    async def identify(self, request: Any) -> Actor:
        """Identify the caller from the X-Actor-ID header."""
        actor_id = request.headers.get(ACTOR_HEADER, "").strip()
        if not actor_id:
            return Actor.anonymous()

        if actor_id in self.blocked_actors:
            raise InvalidCredentialsError(f"Actor '{actor_id}' cannot be claimed by header")

        if self.actor_allowlist is not None and actor_id not in self.actor_allowlist:
            raise InvalidCredentialsError(
                f"Actor '{actor_id}' not in development allowlist"
            )

        return Actor.from_identity(actor_id)
