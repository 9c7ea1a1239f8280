"""Project access token lifecycle: issue, renew and revoke.

Each step reloads the role by name instead of trusting a snapshot taken
at issue time, so TTL changes apply to the next renewal. A role deleted
while tokens are outstanding makes their renew and revoke fail.
"""

import uuid

from rollbar_secrets.backend.backend import RollbarBackend
from rollbar_secrets.backend.models import PROJECT_ACCESS_TOKEN_TYPE, LeasedSecret
from rollbar_secrets.backend.roles import RoleEntry, get_role, normalize_role_name
from rollbar_secrets.errors import (
    IssuanceError,
    MalformedSecretError,
    RoleNotFoundError,
    UpstreamError,
)
from rollbar_secrets.logging.audit import get_audit_logger


def _load_role(backend: RollbarBackend, name: str) -> RoleEntry:
    role = get_role(backend.storage, name)
    if role is None:
        raise RoleNotFoundError(name)
    return role


def _role_from_secret(secret: LeasedSecret) -> str:
    role = secret.internal_data.get("role")
    if role is None:
        raise MalformedSecretError("secret is missing role internal data")
    if not isinstance(role, str) or not role:
        raise MalformedSecretError("invalid value for role in secret internal data")
    return role


def _apply_lease_policy(secret: LeasedSecret, role: RoleEntry) -> None:
    # Zero leaves the runtime default in place
    if role.ttl > 0:
        secret.ttl = role.ttl
    if role.max_ttl > 0:
        secret.max_ttl = role.max_ttl


def issue_project_access_token(backend: RollbarBackend, role_name: str) -> LeasedSecret:
    """Mint a project access token for the role and wrap it as a leased secret."""
    role = _load_role(backend, normalize_role_name(role_name))
    client = backend.get_client()

    token_name = f"{role.name}-{uuid.uuid4()}"
    try:
        token = client.create_project_access_token(
            role.project_access_token_scopes, role.project_id, token_name
        )
    except UpstreamError as e:
        raise IssuanceError(f"error creating project access token: {e}") from e

    if not token:
        raise IssuanceError("error creating project access token: empty token returned")

    secret = LeasedSecret(
        secret_type=PROJECT_ACCESS_TOKEN_TYPE,
        data={"project_access_token": token},
        internal_data={"project_access_token": token, "role": role.name},
    )
    _apply_lease_policy(secret, role)

    get_audit_logger().info(
        "Project access token issued",
        extra={"audit_data": {
            "role": role.name,
            "project_id": role.project_id,
            "token_name": token_name,
            "ttl": secret.ttl,
            "max_ttl": secret.max_ttl,
        }},
    )
    return secret


def renew_project_access_token(backend: RollbarBackend, secret: LeasedSecret) -> LeasedSecret:
    """Reapply the role's current TTLs to the secret."""
    role = _load_role(backend, _role_from_secret(secret))
    _apply_lease_policy(secret, role)

    get_audit_logger().info(
        "Project access token renewed",
        extra={"audit_data": {"role": role.name, "ttl": secret.ttl, "max_ttl": secret.max_ttl}},
    )
    return secret


def revoke_project_access_token(backend: RollbarBackend, secret: LeasedSecret) -> None:
    """Delete the token in Rollbar. Failures propagate so the caller can retry."""
    client = backend.get_client()

    token = secret.internal_data.get("project_access_token", "")
    if not isinstance(token, str):
        raise MalformedSecretError("invalid value for project access token in secret internal data")

    role = _load_role(backend, _role_from_secret(secret))
    client.delete_project_access_token(role.project_id, token)

    get_audit_logger().info(
        "Project access token revoked",
        extra={"audit_data": {"role": role.name, "project_id": role.project_id}},
    )
