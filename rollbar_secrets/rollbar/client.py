"""Rollbar API client: creates and deletes project access tokens."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import httpx

from rollbar_secrets.errors import ConfigurationError, UpstreamError
from rollbar_secrets.logging.audit import RequestTimer, get_audit_logger

if TYPE_CHECKING:
    from rollbar_secrets.backend.config_store import RollbarConfig

HOST_URL = "https://api.rollbar.com/api/1"
REQUEST_TIMEOUT = 10.0


class RollbarClient:
    """Authenticates every request with the account access token."""

    def __init__(
        self,
        account_access_token: str,
        host_url: str = HOST_URL,
        transport: httpx.BaseTransport | None = None,
    ):
        self._account_access_token = account_access_token
        self._host_url = host_url.rstrip("/")
        self._client = httpx.Client(timeout=REQUEST_TIMEOUT, transport=transport)

    @classmethod
    def from_config(cls, config: RollbarConfig | None, **kwargs) -> RollbarClient:
        if config is None:
            raise ConfigurationError("client configuration is nil")
        if not config.account_access_token:
            raise ConfigurationError("client account access token is not defined")
        return cls(config.account_access_token, **kwargs)

    def _do_request(self, method: str, path: str, **kwargs) -> bytes:
        """Send a request and return the body of a 200 response."""
        headers = kwargs.pop("headers", {})
        headers["X-Rollbar-Access-Token"] = self._account_access_token
        headers["accept"] = "application/json"

        logger = get_audit_logger()
        with RequestTimer() as timer:
            try:
                response = self._client.request(
                    method, f"{self._host_url}{path}", headers=headers, **kwargs
                )
            except httpx.HTTPError as e:
                logger.warning(
                    "Rollbar request failed",
                    extra={"audit_data": {
                        "method": method,
                        "error": type(e).__name__,
                    }},
                )
                raise UpstreamError(f"rollbar request failed: {e}") from e

        logger.debug(
            "Rollbar request completed",
            extra={"audit_data": {
                "method": method,
                "upstream_status": response.status_code,
                "latency_ms": timer.elapsed_ms,
            }},
        )

        if response.status_code != 200:
            body = response.text
            raise UpstreamError(
                f"status: {response.status_code}, body: {body}",
                status_code=response.status_code,
                body=body,
            )
        return response.content

    def create_project_access_token(self, scopes: str, project_id: int, name: str) -> str:
        """Create an enabled token with a single scope entry under the project."""
        payload = json.dumps(
            {"status": "enabled", "scopes": [scopes], "name": name},
            separators=(",", ":"),
            ensure_ascii=False,
        ).encode("utf-8")

        body = self._do_request(
            "POST",
            f"/project/{project_id}/access_tokens",
            content=payload,
            headers={"content-type": "application/json"},
        )

        try:
            result = json.loads(body)["result"]
            token = result["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamError(
                f"malformed rollbar response: {e}",
                status_code=200,
                body=body.decode(errors="replace"),
            ) from e

        if not isinstance(token, str):
            raise UpstreamError(
                "malformed rollbar response: access_token is not a string",
                status_code=200,
            )
        return token

    def delete_project_access_token(self, project_id: int, token: str) -> None:
        self._do_request("DELETE", f"/project/{project_id}/access_token/{token}")

    def close(self) -> None:
        self._client.close()
