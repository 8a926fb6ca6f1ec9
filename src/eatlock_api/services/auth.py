"""Bearer token resolution against the identity provider."""

import logging
from functools import lru_cache

import httpx

from eatlock_api.core.config import get_settings
from eatlock_api.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str:
    """
    Pull a structurally valid JWT out of an Authorization header.

    Raises:
        AuthenticationError: If the header is missing, not a bearer header,
            or the token is not three dot-separated segments
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationError("Missing or invalid Authorization header")

    token = authorization[len(BEARER_PREFIX):].strip()
    if len(token.split(".")) != 3:
        raise AuthenticationError()
    return token


class IdentityClient:
    """Resolves access tokens to user ids via ``GET /auth/v1/user``."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the identity client.

        Args:
            base_url: Identity provider base URL
            service_key: Project key sent as the ``apikey`` header
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def resolve_user_id(self, token: str) -> str:
        """
        Resolve a token to the caller's user id.

        Raises:
            AuthenticationError: If the provider rejects the token, is
                unreachable, or returns no id
        """
        logger.debug(f"Resolving token {token[:12]}... (len {len(token)})")

        try:
            response = await self._get_client().get(
                "/auth/v1/user",
                headers={
                    "apikey": self.service_key,
                    "Authorization": f"Bearer {token}",
                },
            )
        except httpx.HTTPError as e:
            logger.warning(f"Identity provider request failed: {e}")
            raise AuthenticationError() from e

        if not response.is_success:
            raise AuthenticationError()

        try:
            data = response.json()
        except ValueError:
            data = None

        user_id = data.get("id") if isinstance(data, dict) else None

        if not user_id or not isinstance(user_id, str):
            raise AuthenticationError()
        return user_id


@lru_cache
def get_identity_client() -> IdentityClient:
    """Get a cached identity client configured from settings."""
    settings = get_settings()
    return IdentityClient(
        base_url=settings.auth_base_url,
        service_key=settings.auth_service_key,
        timeout=settings.auth_timeout,
    )
