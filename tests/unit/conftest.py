"""
Shared fixtures for unit tests.
"""

from __future__ import annotations

import os

import pytest

from cloud_helpers.config import get_config


@pytest.fixture(scope="session", autouse=True)
def _env_vars():
    """
    Ensures a deterministic environment for every test run.
    Overwrite *only* the variables the library reads by default.
    """
    original = os.environ.copy()
    os.environ.setdefault("POWERTOOLS_SERVICE_NAME", "cloud-helpers-test")
    os.environ.setdefault("POWERTOOLS_LOG_LEVEL", "INFO")
    yield
    os.environ.clear()
    os.environ.update(original)


@pytest.fixture
def clear_config_cache():
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def app_env(monkeypatch, clear_config_cache):
    """A minimal valid environment, including a project id."""
    monkeypatch.setenv("SERVICE_NAME", "test-service")
    monkeypatch.setenv("PROJECT_ID", "test-project")
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
    for name in (
        "LOG_LEVEL",
        "QUEUE_SERVICE_URL_TEMPLATE",
        "DISPATCH_CEILING_MB",
        "LEGACY_CHUNKING",
        "LEGACY_BYTES_PER_MEGABYTE",
        "OPS_PER_INSTANCE",
        "ENTITIES_PER_REQUEST",
        "REQUEST_TIMEOUT_SECONDS",
        "AWS_REGION",
    ):
        monkeypatch.delenv(name, raising=False)


class RecordingTransport:
    """
    Stand-in transport that records every unit it is asked to send.

    ``fail_on`` maps a 1-based transmission number to the exception raised
    when that transmission is attempted.
    """

    def __init__(self, fail_on: dict[int, Exception] | None = None):
        self.sent: list[tuple[str, list[bytes]]] = []
        self.timeouts: list[float | None] = []
        self.attempts = 0
        self._fail_on = fail_on or {}

    def send(self, request, timeout=None):
        self.attempts += 1
        if self.attempts in self._fail_on:
            raise self._fail_on[self.attempts]
        self.sent.append((request.kind, list(request.entities)))
        self.timeouts.append(timeout)


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()
