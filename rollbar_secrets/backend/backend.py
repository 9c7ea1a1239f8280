"""Rollbar secrets backend: one instance per mount.

Owns the mount's storage and the cached Rollbar client. The client is
built lazily from the stored config and dropped whenever the config
changes, so the next request picks up the new account token. The stored
config is re-checked on every lookup, which catches changes made by other
instances sharing the storage.
"""

from collections.abc import Callable
from typing import Any

from rollbar_secrets.backend import config_store, roles
from rollbar_secrets.backend.config_store import CONFIG_STORAGE_PATH, RollbarConfig
from rollbar_secrets.backend.locking import ReadWriteLock
from rollbar_secrets.backend.roles import RoleEntry
from rollbar_secrets.errors import InvalidRequestError
from rollbar_secrets.logging.audit import get_audit_logger
from rollbar_secrets.rollbar.client import RollbarClient
from rollbar_secrets.storage.base import Storage

ClientFactory = Callable[[RollbarConfig | None], RollbarClient]


class RollbarBackend:

    def __init__(self, storage: Storage, client_factory: ClientFactory = RollbarClient.from_config):
        self.storage = storage
        self._client_factory = client_factory
        self._lock = ReadWriteLock()
        self._client: RollbarClient | None = None
        storage.add_invalidation_listener(self.invalidate)

    # --- client cache ---

    def get_client(self) -> RollbarClient:
        """Return the cached client, building it from the stored config on a miss.

        Raises ConfigurationError if no usable account token is stored.
        """
        # Drops the cached client first if another instance changed the config
        self.storage.refresh(CONFIG_STORAGE_PATH)

        with self._lock.read():
            if self._client is not None:
                return self._client

        with self._lock.write():
            # Another thread may have built it while we waited
            if self._client is None:
                config = config_store.read_config(self.storage)
                self._client = self._client_factory(config)
                get_audit_logger().info("Rollbar client configured")
            return self._client

    def reset(self) -> None:
        with self._lock.write():
            self._client = None

    def invalidate(self, key: str) -> None:
        if key == CONFIG_STORAGE_PATH:
            self.reset()

    def close(self) -> None:
        with self._lock.write():
            if self._client is not None:
                self._client.close()
                self._client = None

    # --- config ---

    def read_config(self) -> RollbarConfig | None:
        return config_store.read_config(self.storage)

    def write_config(self, fields: dict[str, Any]) -> RollbarConfig:
        """Create or update the config with the supplied fields."""
        config = config_store.read_config(self.storage)
        if config is None:
            if fields.get("account_access_token") is None:
                raise InvalidRequestError("missing Account Access Token in configuration")
            config = RollbarConfig()

        if fields.get("account_access_token") is not None:
            config.account_access_token = fields["account_access_token"]

        config_store.write_config(self.storage, config)
        self.reset()
        get_audit_logger().info("Config written")
        return config

    def delete_config(self) -> None:
        config_store.delete_config(self.storage)
        self.reset()
        get_audit_logger().info("Config deleted")

    # --- roles ---

    def read_role(self, name: str) -> RoleEntry | None:
        return roles.get_role(self.storage, roles.normalize_role_name(name))

    def write_role(self, name: str, fields: dict[str, Any]) -> RoleEntry:
        """Create a role or merge the supplied fields into an existing one."""
        name = roles.normalize_role_name(name)
        existing = roles.get_role(self.storage, name)
        role = roles.merge_role(existing, name, fields)
        roles.set_role(self.storage, role)
        get_audit_logger().info(
            "Role created" if existing is None else "Role updated",
            extra={"audit_data": {
                "role": role.name,
                "project_id": role.project_id,
                "ttl": role.ttl,
                "max_ttl": role.max_ttl,
            }},
        )
        return role

    def delete_role(self, name: str) -> None:
        name = roles.normalize_role_name(name)
        roles.delete_role(self.storage, name)
        get_audit_logger().info("Role deleted", extra={"audit_data": {"role": name}})

    def list_roles(self) -> list[str]:
        return roles.list_roles(self.storage)
