"""
Test configuration and fixtures for the metrics scraper.

Provides an in-memory GitHub client serving fixture pages, an in-memory
metric sink and a gateway whose backoff waits are recorded, not slept.
"""

import pytest

from prmetrics.github import APIGateway
from tests.fixtures.fakes import (
    FakeGitHubClient,
    InMemorySink,
    RecordingSleep,
    build_fixture_client,
)


@pytest.fixture
def fake_client() -> FakeGitHubClient:
    """
    Fixture repository served from memory.

    Why: Pipeline tests must not touch the network
    What: Three pull requests with known line deltas and comments
    How: FakeGitHubClient populated for both listing strategies
    """
    return build_fixture_client()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def gateway(fake_client: FakeGitHubClient, recording_sleep: RecordingSleep) -> APIGateway:
    """Gateway over the fake client whose backoff waits are only recorded."""
    return APIGateway(fake_client, sleep=recording_sleep)  # type: ignore[arg-type]


@pytest.fixture
def sink() -> InMemorySink:
    return InMemorySink()
