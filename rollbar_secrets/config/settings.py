"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Storage backend
    storage_backend: str = "json"  # "memory" | "json" | "dynamodb"
    storage_path: str = "rollbar-secrets.json"  # path to JSON storage file
    dynamodb_table_name: str = "rollbar-secrets"
    aws_region: str = "us-east-1"

    # Lease defaults applied when a role leaves ttl/max_ttl at 0 (768h)
    default_lease_ttl: int = 2764800
    max_lease_ttl: int = 2764800

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def lease_ttls(self) -> tuple[int, int]:
        """Default and maximum lease TTL, with the default capped by the maximum."""
        return min(self.default_lease_ttl, self.max_lease_ttl), self.max_lease_ttl


@lru_cache
def get_settings() -> Settings:
    return Settings()
