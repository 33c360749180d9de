"""Abstract base class for identity providers.

All identity sources must implement this interface.
"""

from abc import ABC, abstractmethod
from typing import Any

from packages.authz.models import Actor


class IdentityProvider(ABC):
    """Abstract identity provider.

    Turns an incoming request into an Actor. Requests without credentials
    yield an anonymous actor; what anonymous actors may do is decided by
    the authorization gateway, not here.

    Implementations:
    - DevHeaderProvider: Development-only header identity
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier (e.g., 'dev_header')."""
        pass

    @property
    @abstractmethod
    def is_secure(self) -> bool:
        """Return whether this provider is secure for production."""
        pass

    @abstractmethod
    async def identify(self, request: Any) -> Actor:
        """Identify the caller of a request.

        Args:
            request: The incoming HTTP request (FastAPI Request object)

        Returns:
            Authenticated Actor, or an anonymous one if no credentials

        Raises:
            InvalidCredentialsError: If credentials are present but invalid
        """
        pass
