"""Shared fixtures for the Rollbar secrets broker test suite."""

from unittest.mock import MagicMock

import pytest

from rollbar_secrets.backend.backend import RollbarBackend
from rollbar_secrets.backend.config_store import RollbarConfig, write_config
from rollbar_secrets.backend.roles import RoleEntry, set_role
from rollbar_secrets.config.settings import get_settings
from rollbar_secrets.rollbar.client import RollbarClient
from rollbar_secrets.storage.memory import InMemoryStorage


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def rollbar_client() -> MagicMock:
    """Mock Rollbar client that hands out token "abc123"."""
    client = MagicMock(spec=RollbarClient)
    client.create_project_access_token.return_value = "abc123"
    return client


@pytest.fixture
def client_factory(rollbar_client) -> MagicMock:
    """Rejects bad config exactly like RollbarClient.from_config, then returns the mock."""
    def factory(config):
        RollbarClient.from_config(config).close()
        return rollbar_client

    return MagicMock(side_effect=factory)


@pytest.fixture
def backend(storage, client_factory) -> RollbarBackend:
    """Backend with no config and no roles."""
    return RollbarBackend(storage, client_factory=client_factory)


@pytest.fixture
def configured_backend(backend, storage) -> RollbarBackend:
    """Backend with an account token and role r1 (project 42, scope read)."""
    write_config(storage, RollbarConfig(account_access_token="acct-token"))
    set_role(storage, RoleEntry(
        name="r1",
        project_id=42,
        project_access_token_scopes="read",
        ttl=0,
        max_ttl=0,
    ))
    return backend


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(STORAGE_BACKEND="memory", LOG_LEVEL="DEBUG")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    # Always clear cache on teardown so other tests get fresh settings
    get_settings.cache_clear()
