"""Bearer token sources for the API client."""

from abc import ABC, abstractmethod


class TokenProvider(ABC):
    """Supplies the current access token and can force one refresh."""

    @abstractmethod
    async def get_token(self) -> str | None:
        """Return the current access token, or None when signed out."""
        ...

    @abstractmethod
    async def refresh(self) -> str | None:
        """Refresh the session and return the new token (None if refresh failed)."""
        ...


class StaticTokenProvider(TokenProvider):
    """Fixed token, optionally followed by a sequence of refreshed tokens."""

    def __init__(self, token: str | None, refreshed: list[str] | None = None):
        self._token = token
        self._refreshed = list(refreshed or [])
        self.refresh_count = 0

    async def get_token(self) -> str | None:
        return self._token

    async def refresh(self) -> str | None:
        self.refresh_count += 1
        if self._refreshed:
            self._token = self._refreshed.pop(0)
            return self._token
        return None


def looks_like_jwt(token: str | None) -> bool:
    return bool(token) and len(token.split(".")) == 3
