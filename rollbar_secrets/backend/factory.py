"""Process-wide backend and lease manager for the configured storage."""

from rollbar_secrets.backend.backend import RollbarBackend
from rollbar_secrets.config.settings import get_settings
from rollbar_secrets.runtime.leases import LeaseManager
from rollbar_secrets.storage.factory import get_storage

_backend: RollbarBackend | None = None
_lease_manager: LeaseManager | None = None


def get_backend() -> RollbarBackend:
    global _backend
    if _backend is None:
        _backend = RollbarBackend(get_storage())
    return _backend


def get_lease_manager() -> LeaseManager:
    global _lease_manager
    if _lease_manager is None:
        default_ttl, max_ttl = get_settings().lease_ttls
        _lease_manager = LeaseManager(
            backend=get_backend(),
            storage=get_storage(),
            default_ttl=default_ttl,
            max_ttl=max_ttl,
        )
    return _lease_manager


def close_backend() -> None:
    """Close the cached Rollbar client on shutdown."""
    if _backend is not None:
        _backend.close()
