"""Error taxonomy for the secrets broker.

The HTTP layer maps each family to a status code; the core never
retries on any of them.
"""


class BrokerError(Exception):
    """Base class for all broker errors."""


class ConfigurationError(BrokerError):
    """Account credential missing or unreadable."""


class InvalidRequestError(BrokerError):
    """Caller input rejected before any persistence or upstream call."""


class RoleNotFoundError(BrokerError):
    """Role lookup during issue, renew or revoke found nothing."""

    def __init__(self, name: str):
        super().__init__(f"error retrieving role: role {name!r} not found")
        self.name = name


class UpstreamError(BrokerError):
    """Rollbar answered with a non-200 status, failed to answer, or sent garbage."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class IssuanceError(BrokerError):
    """Project access token creation failed; the message carries the cause."""


class MalformedSecretError(BrokerError):
    """Secret internal data lacks the keys written at issue time."""


class LeaseError(BrokerError):
    """Lease bookkeeping error."""


class LeaseNotFoundError(LeaseError):
    def __init__(self, lease_id: str):
        super().__init__(f"lease {lease_id!r} not found")
        self.lease_id = lease_id


class LeaseExpiredError(LeaseError):
    def __init__(self, lease_id: str):
        super().__init__(f"lease {lease_id!r} has expired")
        self.lease_id = lease_id
