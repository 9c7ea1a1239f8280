"""Rollbar Secrets Broker: FastAPI application entry point.

Mints short-lived Rollbar project access tokens from roles, and renews
or revokes them through their leases.

Handlers are plain functions; FastAPI runs them on its thread pool, so
the backend is exercised concurrently.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictInt

from rollbar_secrets.backend.backend import RollbarBackend
from rollbar_secrets.backend.factory import close_backend, get_backend, get_lease_manager
from rollbar_secrets.backend.roles import parse_duration
from rollbar_secrets.backend.models import LeasedSecret
from rollbar_secrets.backend.tokens import issue_project_access_token, revoke_project_access_token
from rollbar_secrets.errors import (
    BrokerError,
    ConfigurationError,
    InvalidRequestError,
    IssuanceError,
    LeaseExpiredError,
    LeaseNotFoundError,
    MalformedSecretError,
    RoleNotFoundError,
    UpstreamError,
)
from rollbar_secrets.logging.audit import (
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from rollbar_secrets.runtime.leases import Lease, LeaseManager

VERSION = "0.1.0"

_ERROR_STATUS: list[tuple[type[BrokerError], int]] = [
    (InvalidRequestError, 400),
    (LeaseExpiredError, 400),
    (RoleNotFoundError, 404),
    (LeaseNotFoundError, 404),
    (ConfigurationError, 500),
    (MalformedSecretError, 500),
    (IssuanceError, 502),
    (UpstreamError, 502),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    get_audit_logger().info("Broker started")
    yield
    close_backend()
    get_audit_logger().info("Broker stopped")


app = FastAPI(
    title="Rollbar Secrets Broker",
    description="Dynamic Rollbar project access tokens with leases",
    version=VERSION,
    lifespan=lifespan,
)


class ConfigWriteRequest(BaseModel):
    account_access_token: str | None = None


class RoleWriteRequest(BaseModel):
    project_id: StrictInt | None = None
    project_access_token_scopes: str | None = None
    ttl: StrictInt | str | None = None
    max_ttl: StrictInt | str | None = None


class LeaseRenewRequest(BaseModel):
    lease_id: str
    increment: StrictInt | str | None = None


class LeaseRevokeRequest(BaseModel):
    lease_id: str


@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    rid = generate_request_id()
    token = request_id_var.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(BrokerError)
async def broker_error_handler(request: Request, exc: BrokerError):
    status_code = next(
        (code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500
    )
    get_audit_logger().warning(
        "Request failed",
        extra={"audit_data": {
            "path": request.url.path,
            "status": status_code,
            "error_type": type(exc).__name__,
            "error": str(exc),
        }},
    )
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


def _lease_response(lease: Lease, manager: LeaseManager, include_data: bool) -> dict:
    body = {
        "lease_id": lease.lease_id,
        "lease_duration": lease.ttl_remaining(manager.now()),
        "renewable": lease.secret.renewable,
    }
    if include_data:
        body["data"] = lease.secret.data
    return body


def _revoke_unleased(backend: RollbarBackend, secret: LeasedSecret) -> None:
    """Delete a token whose lease could not be stored; nothing else would revoke it."""
    logger = get_audit_logger()
    role = secret.internal_data.get("role", "")
    try:
        revoke_project_access_token(backend, secret)
    except BrokerError as e:
        logger.error(
            "Unleased token revocation failed",
            extra={"audit_data": {"role": role, "error": str(e)}},
        )
    else:
        logger.warning("Unleased token revoked", extra={"audit_data": {"role": role}})


@app.get("/health")
def health():
    return {"status": "healthy", "version": VERSION}


# --- config ---

@app.get("/v1/config")
def read_config(backend: RollbarBackend = Depends(get_backend)):
    config = backend.read_config()
    token = config.account_access_token if config is not None else ""
    return {"data": {"account_access_token": token}}


@app.post("/v1/config", status_code=204)
def write_config(body: ConfigWriteRequest, backend: RollbarBackend = Depends(get_backend)):
    backend.write_config(body.model_dump(exclude_unset=True))


@app.delete("/v1/config", status_code=204)
def delete_config(backend: RollbarBackend = Depends(get_backend)):
    backend.delete_config()


# --- roles ---

@app.get("/v1/roles")
def list_roles(backend: RollbarBackend = Depends(get_backend)):
    return {"data": {"keys": backend.list_roles()}}


@app.get("/v1/roles/{name}")
def read_role(name: str, backend: RollbarBackend = Depends(get_backend)):
    role = backend.read_role(name)
    if role is None:
        raise RoleNotFoundError(name)
    return {"data": role.to_response_data()}


@app.post("/v1/roles/{name}", status_code=204)
def write_role(name: str, body: RoleWriteRequest, backend: RollbarBackend = Depends(get_backend)):
    backend.write_role(name, body.model_dump(exclude_unset=True))


@app.delete("/v1/roles/{name}", status_code=204)
def delete_role(name: str, backend: RollbarBackend = Depends(get_backend)):
    backend.delete_role(name)


# --- credentials ---

@app.api_route("/v1/projectaccesstoken/{name}", methods=["GET", "POST"])
def issue_token(
    name: str,
    backend: RollbarBackend = Depends(get_backend),
    manager: LeaseManager = Depends(get_lease_manager),
):
    secret = issue_project_access_token(backend, name)
    try:
        lease = manager.register(secret)
    except Exception:
        _revoke_unleased(backend, secret)
        raise
    return _lease_response(lease, manager, include_data=True)


# --- leases ---

@app.get("/v1/sys/leases")
def list_leases(manager: LeaseManager = Depends(get_lease_manager)):
    return {"data": {"keys": manager.list_leases()}}


@app.get("/v1/sys/leases/{lease_id}")
def lookup_lease(lease_id: str, manager: LeaseManager = Depends(get_lease_manager)):
    lease = manager.lookup(lease_id)
    return {"data": {
        "id": lease.lease_id,
        "role": lease.role,
        "issue_time": lease.issued_at,
        "expire_time": lease.expires_at,
        "last_renewal": lease.last_renewal,
        "ttl": lease.ttl_remaining(manager.now()),
        "renewable": lease.secret.renewable,
        "revoke_attempts": lease.revoke_attempts,
        "last_error": lease.last_error,
    }}


@app.post("/v1/sys/leases/renew")
def renew_lease(body: LeaseRenewRequest, manager: LeaseManager = Depends(get_lease_manager)):
    increment = parse_duration(body.increment, "increment") if body.increment is not None else 0
    lease = manager.renew(body.lease_id, increment)
    return _lease_response(lease, manager, include_data=False)


@app.post("/v1/sys/leases/revoke", status_code=204)
def revoke_lease(body: LeaseRevokeRequest, manager: LeaseManager = Depends(get_lease_manager)):
    manager.revoke(body.lease_id)


@app.post("/v1/sys/leases/tidy")
def tidy_leases(manager: LeaseManager = Depends(get_lease_manager)):
    result = manager.revoke_expired()
    return {"data": {"revoked": result.revoked, "failed": result.failed}}
