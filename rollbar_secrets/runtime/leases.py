"""Lease bookkeeping for issued secrets.

The lifecycle engine only knows how to issue, renew and revoke a
secret. This module is the runtime around it: it gives each secret a
lease ID, fills in default TTLs, persists the lease, and drives the
renew and revoke callbacks. A failed revocation keeps the lease so
that it can be retried.
"""

import time
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, field

from rollbar_secrets.backend.backend import RollbarBackend
from rollbar_secrets.backend.models import LeasedSecret
from rollbar_secrets.backend.tokens import renew_project_access_token, revoke_project_access_token
from rollbar_secrets.errors import (
    BrokerError,
    InvalidRequestError,
    LeaseExpiredError,
    LeaseNotFoundError,
)
from rollbar_secrets.logging.audit import get_audit_logger
from rollbar_secrets.storage.base import Storage

LEASE_STORAGE_PREFIX = "leases/"


@dataclass
class Lease:
    lease_id: str
    secret: LeasedSecret
    issued_at: float
    expires_at: float
    max_expires_at: float
    last_renewal: float | None = None
    revoke_attempts: int = 0
    last_error: str = ""

    @property
    def role(self) -> str:
        return self.secret.internal_data.get("role", "")

    def ttl_remaining(self, now: float) -> int:
        return max(0, int(self.expires_at - now))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Lease":
        data = dict(data)
        data["secret"] = LeasedSecret.from_dict(data["secret"])
        return cls(**data)


@dataclass
class TidyResult:
    revoked: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class LeaseManager:

    def __init__(
        self,
        backend: RollbarBackend,
        storage: Storage,
        default_ttl: int,
        max_ttl: int,
        clock: Callable[[], float] = time.time,
    ):
        self._backend = backend
        self._storage = storage
        self._default_ttl = default_ttl
        self._max_ttl = max_ttl
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def _save(self, lease: Lease) -> None:
        self._storage.put_json(LEASE_STORAGE_PREFIX + lease.lease_id, lease.to_dict())

    def lookup(self, lease_id: str) -> Lease:
        data = self._storage.get_json(LEASE_STORAGE_PREFIX + lease_id)
        if data is None:
            raise LeaseNotFoundError(lease_id)
        return Lease.from_dict(data)

    def list_leases(self) -> list[str]:
        return self._storage.list(LEASE_STORAGE_PREFIX)

    def _max_ttl_for(self, secret: LeasedSecret) -> int:
        return secret.max_ttl or self._max_ttl

    def _ttl_for(self, secret: LeasedSecret, increment: int = 0) -> int:
        return increment or secret.ttl or self._default_ttl

    def register(self, secret: LeasedSecret) -> Lease:
        """Start tracking a freshly issued secret."""
        now = self._clock()
        max_expires_at = now + self._max_ttl_for(secret)
        lease = Lease(
            lease_id=uuid.uuid4().hex,
            secret=secret,
            issued_at=now,
            expires_at=min(now + self._ttl_for(secret), max_expires_at),
            max_expires_at=max_expires_at,
        )
        self._save(lease)
        get_audit_logger().info(
            "Lease registered",
            extra={"audit_data": {
                "lease_id": lease.lease_id,
                "role": lease.role,
                "lease_duration": lease.ttl_remaining(now),
            }},
        )
        return lease

    def renew(self, lease_id: str, increment: int = 0) -> Lease:
        """Extend a lease, applying the role's current policy.

        The new expiry never passes issue time plus the max TTL.
        """
        lease = self.lookup(lease_id)
        now = self._clock()
        if now >= lease.expires_at:
            raise LeaseExpiredError(lease_id)
        if not lease.secret.renewable:
            raise InvalidRequestError(f"lease {lease_id!r} is not renewable")

        secret = renew_project_access_token(self._backend, lease.secret)

        lease.secret = secret
        lease.max_expires_at = lease.issued_at + self._max_ttl_for(secret)
        lease.expires_at = min(now + self._ttl_for(secret, increment), lease.max_expires_at)
        lease.last_renewal = now
        self._save(lease)
        return lease

    def revoke(self, lease_id: str) -> None:
        """Revoke the secret upstream, then forget the lease.

        On failure the lease is kept with the error recorded and the
        exception is re-raised.
        """
        lease = self.lookup(lease_id)
        try:
            revoke_project_access_token(self._backend, lease.secret)
        except BrokerError as e:
            lease.revoke_attempts += 1
            lease.last_error = str(e)
            self._save(lease)
            get_audit_logger().warning(
                "Lease revocation failed",
                extra={"audit_data": {
                    "lease_id": lease_id,
                    "role": lease.role,
                    "revoke_attempts": lease.revoke_attempts,
                    "error": str(e),
                }},
            )
            raise

        self._storage.delete(LEASE_STORAGE_PREFIX + lease_id)
        get_audit_logger().info(
            "Lease revoked",
            extra={"audit_data": {"lease_id": lease_id, "role": lease.role}},
        )

    def revoke_expired(self) -> TidyResult:
        """Revoke every lease past its expiry. Failures are recorded, not raised."""
        now = self._clock()
        result = TidyResult()
        for lease_id in self.list_leases():
            try:
                lease = self.lookup(lease_id)
            except LeaseNotFoundError:
                continue
            if lease.expires_at > now:
                continue
            try:
                self.revoke(lease_id)
            except BrokerError:
                result.failed.append(lease_id)
            else:
                result.revoked.append(lease_id)
        return result
