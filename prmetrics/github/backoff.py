"""Backoff policy for GitHub API calls.

The policy is a set of pure functions: given the kind of failure, how many
attempts have already failed and whatever timing hint the server sent, they
decide whether to retry and how long to wait. Nothing here sleeps or talks to
the network; :mod:`prmetrics.github.gateway` applies the decisions.
"""

import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exceptions import (
    GitHubAbuseRateLimitError,
    GitHubConnectionError,
    GitHubRateLimitError,
    GitHubServerError,
    GitHubTimeoutError,
)


class ErrorKind(str, Enum):
    """Classification of a failed remote call."""

    RATE_LIMITED = "rate_limited"
    THROTTLED = "throttled"
    SERVER_ERROR = "server_error"
    FATAL = "fatal"

    @property
    def is_transient(self) -> bool:
        return self is not ErrorKind.FATAL


@dataclass
class RateLimitInfo:
    """Rate limit information from GitHub API."""

    limit: int
    remaining: int
    reset: int
    used: int = 0
    resource: str = "core"

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "RateLimitInfo | None":
        """Parse ``X-RateLimit-*`` headers, or return None when absent."""
        lowered = {key.lower(): value for key, value in headers.items()}
        if "x-ratelimit-limit" not in lowered:
            return None

        try:
            return cls(
                limit=int(lowered.get("x-ratelimit-limit", 5000)),
                remaining=int(lowered.get("x-ratelimit-remaining", 0)),
                reset=int(lowered.get("x-ratelimit-reset", 0)),
                used=int(lowered.get("x-ratelimit-used", 0)),
                resource=lowered.get("x-ratelimit-resource", "core"),
            )
        except (ValueError, TypeError):
            return None


@dataclass(frozen=True)
class BackoffHint:
    """Timing information the server attached to a failure."""

    reset_time: float | None = None
    retry_after: float | None = None


@dataclass(frozen=True)
class BackoffDecision:
    """Outcome of the backoff policy for one failed attempt."""

    retry: bool
    wait_seconds: float = 0.0

    @classmethod
    def give_up(cls) -> "BackoffDecision":
        return cls(retry=False)


@dataclass(frozen=True)
class BackoffPolicy:
    """Tunable constants of the retry policy.

    Primary and secondary rate limits are retried for as long as the server
    keeps publishing a schedule. Server errors are retried a bounded number
    of times with a fixed wait. The bulk variant uses capped exponential
    backoff with a linear jitter term and a hard attempt limit.
    """

    rate_limit_floor: float = 5.0
    rate_limit_margin: float = 1.0
    abuse_default_wait: float = 10.0
    server_error_wait: float = 3.0
    max_server_error_retries: int = 5
    bulk_base_wait: float = 0.5
    bulk_max_wait: float = 10.0
    bulk_jitter_step: float = 0.05
    bulk_max_attempts: int = 6


DEFAULT_POLICY = BackoffPolicy()

# Last resort for transports that only hand us an error string.
_THROTTLE_MARKERS = ("secondary rate limit", "abuse")
_RATE_LIMIT_MARKERS = ("rate limit", "ratelimit", "rate_limited")
_SERVER_ERROR_PATTERN = re.compile(r"\b50[234]\b")


def classify_error(error: BaseException) -> ErrorKind:
    """Map a structured GitHub exception onto an :class:`ErrorKind`."""
    if isinstance(error, GitHubRateLimitError):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, GitHubAbuseRateLimitError):
        return ErrorKind.THROTTLED
    if isinstance(
        error, (GitHubServerError, GitHubConnectionError, GitHubTimeoutError)
    ):
        return ErrorKind.SERVER_ERROR
    return ErrorKind.FATAL


def classify_error_message(message: str) -> ErrorKind:
    """Classify an unstructured error description by its text.

    Only used for GraphQL bodies, which report throttling and gateway
    failures as free-form messages.
    """
    text = message.lower()
    if any(marker in text for marker in _THROTTLE_MARKERS):
        return ErrorKind.THROTTLED
    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMITED
    if _SERVER_ERROR_PATTERN.search(text):
        return ErrorKind.SERVER_ERROR
    return ErrorKind.FATAL


def hint_from_error(error: BaseException) -> BackoffHint:
    """Extract the server-provided timing hint from an exception, if any."""
    if isinstance(error, GitHubRateLimitError):
        return BackoffHint(reset_time=error.reset_time)
    if isinstance(error, GitHubAbuseRateLimitError):
        return BackoffHint(retry_after=error.retry_after)
    return BackoffHint()


def compute_backoff(
    kind: ErrorKind,
    attempt: int,
    hint: BackoffHint | None = None,
    policy: BackoffPolicy = DEFAULT_POLICY,
    now: float | None = None,
) -> BackoffDecision:
    """Decide whether and how long to wait after a failed call.

    Args:
        kind: Classification of the failure
        attempt: Zero-based index of the attempt that just failed
        hint: Server-provided reset time or retry-after
        policy: Policy constants
        now: Current unix time, defaults to ``time.time()``

    Returns:
        BackoffDecision with ``retry`` False when the error must propagate
    """
    hint = hint or BackoffHint()

    if kind is ErrorKind.RATE_LIMITED:
        if hint.reset_time is None:
            return BackoffDecision(retry=True, wait_seconds=policy.rate_limit_floor)
        current = time.time() if now is None else now
        wait = hint.reset_time - current + policy.rate_limit_margin
        return BackoffDecision(
            retry=True, wait_seconds=max(wait, policy.rate_limit_floor)
        )

    if kind is ErrorKind.THROTTLED:
        if hint.retry_after is not None:
            return BackoffDecision(retry=True, wait_seconds=float(hint.retry_after))
        return BackoffDecision(retry=True, wait_seconds=policy.abuse_default_wait)

    if kind is ErrorKind.SERVER_ERROR:
        if attempt >= policy.max_server_error_retries:
            return BackoffDecision.give_up()
        return BackoffDecision(retry=True, wait_seconds=policy.server_error_wait)

    return BackoffDecision.give_up()


def compute_bulk_backoff(
    kind: ErrorKind,
    attempt: int,
    hint: BackoffHint | None = None,
    policy: BackoffPolicy = DEFAULT_POLICY,
    now: float | None = None,
) -> BackoffDecision:
    """Backoff for bulk (GraphQL) queries.

    Transient failures wait ``min(base * 2**attempt, cap)`` plus
    ``attempt * jitter_step``, up to ``bulk_max_attempts`` attempts in total.
    An explicit server hint takes precedence over the exponential wait.
    """
    if not kind.is_transient or attempt + 1 >= policy.bulk_max_attempts:
        return BackoffDecision.give_up()

    hint = hint or BackoffHint()
    if hint.reset_time is not None or hint.retry_after is not None:
        return compute_backoff(kind, attempt, hint, policy, now)

    wait = min(policy.bulk_base_wait * (2**attempt), policy.bulk_max_wait)
    return BackoffDecision(
        retry=True, wait_seconds=wait + attempt * policy.bulk_jitter_step
    )


def describe_error(error: BaseException) -> dict[str, Any]:
    """Log-friendly summary of a failed call."""
    return {
        "error_type": type(error).__name__,
        "status_code": getattr(error, "status_code", None),
        "error": str(error),
    }
