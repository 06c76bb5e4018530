"""
Identity providers for Mall Core.

The core never reads ambient session state: every operation takes the
owner id explicitly. Identity providers sit at the edge (HTTP surface,
scripts) and turn "whoever is calling" into that explicit id.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional, Protocol, runtime_checkable

from .errors import AuthenticationRequired

logger = logging.getLogger(__name__)


@runtime_checkable
class IdentityProvider(Protocol):
    """Yields the current user id, or None when unauthenticated."""

    async def current_user_id(self) -> Optional[str]:
        ...


class StaticIdentityProvider:
    """Always returns the same user id (scripts, tests)."""

    def __init__(self, user_id: Optional[str]) -> None:
        self.user_id = user_id

    async def current_user_id(self) -> Optional[str]:
        return self.user_id


class HeaderIdentityProvider:
    """Reads the user id from request headers.

    The upstream auth proxy is responsible for setting the header; this
    provider only trusts it.
    """

    def __init__(self, headers: Mapping[str, str], header_name: str = "X-User-ID") -> None:
        self._headers = headers
        self.header_name = header_name

    async def current_user_id(self) -> Optional[str]:
        value = self._headers.get(self.header_name)
        return value.strip() if value and value.strip() else None


async def require_owner(provider: IdentityProvider) -> str:
    """Resolve the current user id or fail.

    Raises:
        AuthenticationRequired: If the provider yields no user
    """
    user_id = await provider.current_user_id()
    if not user_id:
        logger.debug("No current user available")
        raise AuthenticationRequired()
    return user_id
