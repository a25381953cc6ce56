"""Bearer token verification against Supabase Auth."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

import aiohttp

from depo.config.settings import AppConfig
from depo.payments.errors import AuthenticationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    """Authenticated caller identity."""

    id: str
    email: Optional[str]


def bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer ...`` header."""
    auth = headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    return token or None


class SupabaseAuth:
    """Exchanges a Supabase access token for the user it belongs to."""

    def __init__(self, project_url: str, api_key: str, timeout: float = 10.0):
        if not project_url:
            raise ValueError("supabase_url not configured")
        self._user_url = f"{project_url.rstrip('/')}/auth/v1/user"
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @classmethod
    def from_config(cls, config: AppConfig) -> "SupabaseAuth":
        return cls(config.supabase_url, config.supabase_service_key.get_secret_value())

    async def get_user(self, token: Optional[str]) -> Caller:
        """
        Resolve the caller behind a bearer token.

        Raises:
            AuthenticationError: Token missing, rejected, or the auth service
                could not be reached
        """
        if not token:
            raise AuthenticationError("User not authenticated")

        headers = {"Authorization": f"Bearer {token}", "apikey": self._api_key}
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(self._user_url, headers=headers) as response:
                    if response.status in (401, 403):
                        raise AuthenticationError("User not authenticated")
                    response.raise_for_status()
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Auth lookup failed: {e}")
            raise AuthenticationError("User not authenticated") from e

        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            raise AuthenticationError("User not authenticated")

        return Caller(id=user_id, email=data.get("email"))
