"""Identity providers.

Pluggable identity backends:
- DevHeader: Development-only header-based identity
"""

from packages.auth.providers.base import IdentityProvider
from packages.auth.providers.dev_header import DevHeaderProvider

__all__ = [
    "IdentityProvider",
    "DevHeaderProvider",
]
