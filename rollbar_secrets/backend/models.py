"""Leased secret handed between the lifecycle engine and the lease manager."""

from dataclasses import asdict, dataclass, field

PROJECT_ACCESS_TOKEN_TYPE = "rollbar_project_access_token"


@dataclass
class LeasedSecret:
    secret_type: str
    data: dict = field(default_factory=dict)  # returned to the caller
    internal_data: dict = field(default_factory=dict)  # kept for renew/revoke
    ttl: int = 0  # seconds, 0 = runtime default
    max_ttl: int = 0  # seconds, 0 = runtime default
    renewable: bool = True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LeasedSecret":
        return cls(**data)
