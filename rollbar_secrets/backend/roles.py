"""Role records: which project a token is minted for, and its lease policy."""

import re
from dataclasses import asdict, dataclass
from typing import Any

from rollbar_secrets.errors import ConfigurationError, InvalidRequestError
from rollbar_secrets.storage.base import Storage

ROLE_STORAGE_PREFIX = "roles/"

DEFAULT_TTL = 3600
DEFAULT_MAX_TTL = 7200

_NAME_RE = re.compile(r"^\w(([\w.@-]+)?\w)?$")
_DURATION_RE = re.compile(r"(\d+)(h|m|s)")
_DURATION_UNITS = {"h": 3600, "m": 60, "s": 1}


@dataclass
class RoleEntry:
    name: str
    project_id: int
    project_access_token_scopes: str = ""
    ttl: int = DEFAULT_TTL  # seconds
    max_ttl: int = DEFAULT_MAX_TTL  # seconds

    def to_response_data(self) -> dict:
        return {
            "project_id": self.project_id,
            "project_access_token_scopes": self.project_access_token_scopes,
            "ttl": self.ttl,
            "max_ttl": self.max_ttl,
        }


def normalize_role_name(name: str) -> str:
    """Lower-case a role name and reject anything that is not a plain identifier."""
    name = (name or "").strip().lower()
    if not name:
        raise InvalidRequestError("missing role name")
    if not _NAME_RE.match(name):
        raise InvalidRequestError(f"invalid role name {name!r}")
    return name


def parse_duration(value: Any, field: str = "ttl") -> int:
    """Parse integer seconds or a duration string like "90", "30m" or "1h30m"."""
    if isinstance(value, bool):
        raise InvalidRequestError(f"invalid {field}: {value!r}")
    if isinstance(value, int):
        seconds = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if text.isdigit():
            seconds = int(text)
        else:
            parts = _DURATION_RE.findall(text)
            if not parts or "".join(n + u for n, u in parts) != text:
                raise InvalidRequestError(f"invalid {field}: {value!r}")
            seconds = sum(int(n) * _DURATION_UNITS[u] for n, u in parts)
    else:
        raise InvalidRequestError(f"invalid {field}: {value!r}")

    if seconds < 0:
        raise InvalidRequestError(f"{field} cannot be negative")
    return seconds


def get_role(storage: Storage, name: str) -> RoleEntry | None:
    """Load a role by name. Returns None if no such role exists."""
    if not name:
        raise InvalidRequestError("missing role name")
    try:
        data = storage.get_json(ROLE_STORAGE_PREFIX + name)
        if data is None:
            return None
        return RoleEntry(**data)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"error reading role {name!r}: {e}") from e


def set_role(storage: Storage, role: RoleEntry) -> None:
    storage.put_json(ROLE_STORAGE_PREFIX + role.name, asdict(role))


def delete_role(storage: Storage, name: str) -> None:
    storage.delete(ROLE_STORAGE_PREFIX + name)


def list_roles(storage: Storage) -> list[str]:
    return storage.list(ROLE_STORAGE_PREFIX)


def merge_role(existing: RoleEntry | None, name: str, fields: dict[str, Any]) -> RoleEntry:
    """Apply the explicitly supplied fields of a role write.

    Creating a role requires a project ID and starts from the default
    TTLs; updating one only touches the fields present in `fields`.
    Raises InvalidRequestError without side effects if the result
    would be invalid.
    """
    project_id = fields.get("project_id")
    if project_id is not None:
        if isinstance(project_id, bool) or not isinstance(project_id, int) or project_id <= 0:
            raise InvalidRequestError("missing project ID")

    if existing is None:
        if project_id is None:
            raise InvalidRequestError("missing project ID")
        role = RoleEntry(name=name, project_id=project_id)
    else:
        role = RoleEntry(**asdict(existing))
        role.name = name
        if project_id is not None:
            role.project_id = project_id

    scopes = fields.get("project_access_token_scopes")
    if scopes is not None:
        # Scopes are passed through to Rollbar unchecked
        role.project_access_token_scopes = str(scopes)

    if fields.get("ttl") is not None:
        role.ttl = parse_duration(fields["ttl"], "ttl")
    if fields.get("max_ttl") is not None:
        role.max_ttl = parse_duration(fields["max_ttl"], "max_ttl")

    if role.max_ttl != 0 and role.ttl > role.max_ttl:
        raise InvalidRequestError("ttl cannot be greater than max_ttl")

    return role
