"""Factory for storage backends."""

from rollbar_secrets.config.settings import get_settings
from rollbar_secrets.storage.base import Storage
from rollbar_secrets.storage.json_store import JSONFileStorage
from rollbar_secrets.storage.memory import InMemoryStorage

_storage: Storage | None = None


def get_storage() -> Storage:
    """Get the storage singleton for the configured backend."""
    global _storage
    if _storage is not None:
        return _storage

    settings = get_settings()
    backend = settings.storage_backend

    if backend == "memory":
        _storage = InMemoryStorage()
    elif backend == "json":
        _storage = JSONFileStorage(settings.storage_path)
    elif backend == "dynamodb":
        # Lazy import to avoid boto3 dependency when not needed
        from rollbar_secrets.storage.dynamodb_store import DynamoDBStorage
        _storage = DynamoDBStorage(
            table_name=settings.dynamodb_table_name,
            region=settings.aws_region,
        )
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    return _storage
