"""GitHub API client package."""

from .auth import (
    AnonymousAuth,
    AuthProvider,
    AuthToken,
    PersonalAccessTokenAuth,
    auth_from_token,
)
from .backoff import (
    DEFAULT_POLICY,
    BackoffDecision,
    BackoffHint,
    BackoffPolicy,
    ErrorKind,
    RateLimitInfo,
    classify_error,
    classify_error_message,
    compute_backoff,
    compute_bulk_backoff,
)
from .client import GitHubClient, GitHubClientConfig
from .exceptions import (
    GitHubAbuseRateLimitError,
    GitHubAuthenticationError,
    GitHubConnectionError,
    GitHubError,
    GitHubGraphQLError,
    GitHubNotConfiguredError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubServerError,
    GitHubTimeoutError,
    GitHubValidationError,
    OperationCancelledError,
)
from .gateway import APIGateway, cancellable_sleep, race_cancel
from .pagination import AsyncPaginator, LinkHeader, PaginatedResponse

__all__ = [
    "DEFAULT_POLICY",
    "APIGateway",
    "AnonymousAuth",
    "AsyncPaginator",
    "AuthProvider",
    "AuthToken",
    "BackoffDecision",
    "BackoffHint",
    "BackoffPolicy",
    "ErrorKind",
    "GitHubAbuseRateLimitError",
    "GitHubAuthenticationError",
    "GitHubClient",
    "GitHubClientConfig",
    "GitHubConnectionError",
    "GitHubError",
    "GitHubGraphQLError",
    "GitHubNotConfiguredError",
    "GitHubNotFoundError",
    "GitHubRateLimitError",
    "GitHubServerError",
    "GitHubTimeoutError",
    "GitHubValidationError",
    "LinkHeader",
    "OperationCancelledError",
    "PaginatedResponse",
    "PersonalAccessTokenAuth",
    "RateLimitInfo",
    "auth_from_token",
    "cancellable_sleep",
    "classify_error",
    "classify_error_message",
    "compute_backoff",
    "compute_bulk_backoff",
    "race_cancel",
]
