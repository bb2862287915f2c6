"""GitHub API client exceptions."""

from typing import Any


class GitHubError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict[str, Any] | None = None,
    ):
        """Initialize GitHub error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from GitHub API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}


class GitHubAuthenticationError(GitHubError):
    """Raised when authentication fails."""

    pass


class GitHubRateLimitError(GitHubError):
    """Raised when the primary rate limit is exhausted."""

    def __init__(
        self,
        message: str,
        reset_time: int | None = None,
        remaining: int = 0,
        limit: int = 0,
        status_code: int | None = 403,
    ):
        """Initialize rate limit error.

        Args:
            message: Error message
            reset_time: Unix timestamp when rate limit resets
            remaining: Remaining API calls
            limit: Total rate limit
            status_code: HTTP status code of the response
        """
        super().__init__(message, status_code)
        self.reset_time = reset_time
        self.remaining = remaining
        self.limit = limit


class GitHubAbuseRateLimitError(GitHubError):
    """Raised when GitHub's secondary (abuse detection) limit triggers."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        status_code: int | None = 403,
    ):
        """Initialize abuse rate limit error.

        Args:
            message: Error message
            retry_after: Seconds the server asked us to wait, if provided
            status_code: HTTP status code of the response
        """
        super().__init__(message, status_code)
        self.retry_after = retry_after


class GitHubNotFoundError(GitHubError):
    """Raised when resource is not found."""

    pass


class GitHubValidationError(GitHubError):
    """Raised when request validation fails."""

    pass


class GitHubServerError(GitHubError):
    """Raised when GitHub server returns 5xx error."""

    pass


class GitHubConnectionError(GitHubError):
    """Raised when connection to GitHub fails."""

    pass


class GitHubTimeoutError(GitHubError):
    """Raised when request times out."""

    pass


class GitHubGraphQLError(GitHubError):
    """Raised when a GraphQL response carries an ``errors`` array."""

    def __init__(self, errors: list[dict[str, Any]]):
        """Initialize GraphQL error.

        Args:
            errors: Error objects from the response body
        """
        self.errors = errors
        messages = [str(err.get("message", "Unknown error")) for err in errors]
        super().__init__(f"GraphQL errors: {'; '.join(messages)}")


class GitHubNotConfiguredError(GitHubError):
    """Raised when a remote call is attempted without an initialized client."""

    pass


class OperationCancelledError(Exception):
    """Raised when an external cancellation signal interrupts a wait.

    Not a GitHubError subclass; job-level isolation must let it through.
    """

    pass
