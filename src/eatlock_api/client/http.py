"""Authenticated HTTP client for the EatLock backend."""

import logging
from typing import Any

import httpx

from eatlock_api.client.auth import TokenProvider, looks_like_jwt
from eatlock_api.client.errors import (
    RequestTimeout,
    Unauthorized,
    UpstreamError,
    UpstreamUnavailable,
    error_for_response,
)

logger = logging.getLogger(__name__)


class ApiClient:
    """Sends authenticated requests and maps failures to the client error taxonomy."""

    def __init__(
        self,
        base_url: str,
        tokens: TokenProvider,
        timeout: float = 45.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the API client.

        Args:
            base_url: Backend base URL (e.g., "https://api.eatlock.app")
            tokens: Source of bearer tokens
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.tokens = tokens
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
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

    def _auth_header(self, token: str | None) -> dict[str, str]:
        if not looks_like_jwt(token):
            raise Unauthorized("Auth token invalid. Please sign in again.", status_code=401)
        return {"Authorization": f"Bearer {token}"}

    async def _send(
        self,
        method: str,
        url: str,
        token: str | None,
        *,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        request_headers = {**(headers or {}), **self._auth_header(token)}
        try:
            return await client.request(
                method, url, json=json, content=content, headers=request_headers
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {url} timed out after {self.timeout}s")
            raise RequestTimeout("Request timed out. Please try again.") from e
        except httpx.RequestError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise UpstreamUnavailable("Could not reach the server. Check your connection.") from e

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Send one logical request.

        A 401 triggers exactly one token refresh and a retry of the same
        request; a second 401 is returned to the caller as ``Unauthorized``.

        Raises:
            VisionError: Any non-success response, timeout or transport failure
        """
        token = await self.tokens.get_token()
        response = await self._send(method, url, token, json=json, content=content, headers=headers)

        if response.status_code == 401:
            logger.info(f"401 on {method} {url}; refreshing token and retrying once")
            token = await self.tokens.refresh()
            if token is None:
                raise Unauthorized("Sign-in expired. Please sign in again.", status_code=401)
            response = await self._send(method, url, token, json=json, content=content, headers=headers)

        if not response.is_success:
            raise error_for_response(response)
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"Non-JSON body from {response.request.url} ({response.status_code}): {e}")
            raise UpstreamError(
                "Unexpected response from server. Please try again.",
                status_code=response.status_code,
            ) from e

    async def post_json(self, path: str, body: dict[str, Any]) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        response = await self.request("POST", path, json=body)
        return self._decode(response)

    async def put_bytes(self, url: str, data: bytes, content_type: str = "image/jpeg") -> Any:
        """PUT raw bytes to an absolute or relative URL and return the decoded JSON response."""
        response = await self.request(
            "PUT", url, content=data, headers={"Content-Type": content_type}
        )
        return self._decode(response)
