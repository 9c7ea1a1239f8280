"""Config record: the Rollbar account access token for this mount."""

from dataclasses import asdict, dataclass

from rollbar_secrets.errors import ConfigurationError
from rollbar_secrets.storage.base import Storage

CONFIG_STORAGE_PATH = "config"


@dataclass
class RollbarConfig:
    account_access_token: str = ""


def read_config(storage: Storage) -> RollbarConfig | None:
    """Return the stored config, or None if none has been written."""
    try:
        data = storage.get_json(CONFIG_STORAGE_PATH)
    except ValueError as e:
        raise ConfigurationError(f"error reading root configuration: {e}") from e
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError("error reading root configuration: not an object")
    return RollbarConfig(account_access_token=data.get("account_access_token", ""))


def write_config(storage: Storage, config: RollbarConfig) -> None:
    storage.put_json(CONFIG_STORAGE_PATH, asdict(config))


def delete_config(storage: Storage) -> None:
    storage.delete(CONFIG_STORAGE_PATH)
