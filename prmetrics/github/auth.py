"""GitHub authentication handlers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from .exceptions import GitHubAuthenticationError


@dataclass
class AuthToken:
    """Authentication token with metadata."""

    token: str
    token_type: str = "Bearer"

    def to_header(self) -> dict[str, str]:
        """Convert to authorization header."""
        if not self.token:
            return {}
        return {"Authorization": f"{self.token_type} {self.token}"}


class AuthProvider(ABC):
    """Abstract base class for authentication providers."""

    @abstractmethod
    async def get_token(self) -> AuthToken:
        """Get authentication token."""
        pass

    @property
    @abstractmethod
    def is_authenticated(self) -> bool:
        """Whether requests carry credentials."""
        pass


class PersonalAccessTokenAuth(AuthProvider):
    """Personal Access Token authentication provider."""

    def __init__(self, token: str):
        """Initialize PAT authentication.

        Args:
            token: GitHub Personal Access Token
        """
        if not token:
            raise GitHubAuthenticationError("Personal Access Token is required")
        self._token = AuthToken(token=token, token_type="token")  # nosec B106

    async def get_token(self) -> AuthToken:
        """Get authentication token."""
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return True


class AnonymousAuth(AuthProvider):
    """Unauthenticated access (60 requests/hour on github.com)."""

    async def get_token(self) -> AuthToken:
        """Return an empty token that produces no header."""
        return AuthToken(token="")

    @property
    def is_authenticated(self) -> bool:
        return False


def auth_from_token(token: str | None) -> AuthProvider:
    """Pick the auth provider for an optional token."""
    if token:
        return PersonalAccessTokenAuth(token)
    return AnonymousAuth()
