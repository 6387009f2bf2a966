"""Minimal asynchronous client for the Vault HTTP API.

Only the calls the sidecar needs are implemented:

* token or role based login (``kubernetes`` and ``jwt`` auth methods);
* reading a secret;
* renewing a lease or the client's own token;
* revoking the client's own token.

Every request is logged at DEBUG level through this module's logger, so
client chatter follows the sidecar's logging configuration.
"""
from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType
from typing import Any

import httpx

from vault_env.core.config import VaultEnvConfig
from vault_env.core.errors import ClientCreationFailure, StoreRequestFailure
from vault_env.core.types import Secret

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"  # noqa: S105

DEFAULT_ROLE = "default"
DEFAULT_AUTH_METHOD = "kubernetes"
DEFAULT_TIMEOUT_S = 30.0

# Auth methods that log in with ``{"role": ..., "jwt": ...}``.
_JWT_AUTH_METHODS = frozenset({"kubernetes", "jwt"})


async def _log_request(request: httpx.Request) -> None:
    logger.debug(
        "vault request",
        extra={"method": request.method, "url": str(request.url.copy_with(query=None))},
    )


class VaultClient:
    """Async Vault API client.

    Usage::

        async with await VaultClient.create(config, token=token) as client:
            secret = await client.read("secret/data/app")

    Parameters
    ----------
    addr:
        Base URL of the server, e.g. ``https://vault:8200``.
    token:
        Client token.  ``None`` until :meth:`login` succeeds.
    namespace:
        Optional enterprise namespace.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional ``httpx`` transport (tests use :class:`httpx.MockTransport`).
    """

    def __init__(
        self,
        addr: str,
        *,
        token: str | None = None,
        namespace: str = "",
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers: dict[str, str] = {}
        if namespace:
            headers["X-Vault-Namespace"] = namespace
        self._token = token
        self._auth: Secret | None = None
        self._http = httpx.AsyncClient(
            base_url=f"{addr.rstrip('/')}/v1/",
            headers=headers,
            timeout=timeout,
            transport=transport,
            event_hooks={"request": [_log_request]},
        )

    @classmethod
    async def create(
        cls,
        config: VaultEnvConfig,
        *,
        token: str | None = None,
        jwt_path: str = SERVICE_ACCOUNT_TOKEN_PATH,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> VaultClient:
        """Build a client from *config*, logging in when *token* is ``None``.

        Raises
        ------
        ClientCreationFailure
            If the role based login fails.
        """
        client = cls(
            config.vault_addr,
            token=token,
            namespace=config.namespace,
            transport=transport,
        )
        if token is None:
            method = config.auth_method or DEFAULT_AUTH_METHOD
            try:
                await client.login(
                    role=config.role or DEFAULT_ROLE,
                    path=config.auth_path or method,
                    method=method,
                    jwt_path=jwt_path,
                )
            except Exception:
                await client.close()
                raise
        return client

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def auth_secret(self) -> Secret | None:
        """The login response, when the token came from a role based login."""
        return self._auth

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def login(
        self,
        *,
        role: str,
        path: str,
        method: str = DEFAULT_AUTH_METHOD,
        jwt_path: str = SERVICE_ACCOUNT_TOKEN_PATH,
    ) -> str:
        """Log in against ``auth/<path>/login`` and keep the issued token."""
        if method not in _JWT_AUTH_METHODS:
            raise ClientCreationFailure(
                f"failed to create vault client: unsupported auth method {method!r}",
                details={"auth_method": method},
            )
        try:
            jwt = Path(jwt_path).read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ClientCreationFailure(
                f"failed to create vault client: cannot read service account token: {exc}",
                details={"jwt_path": jwt_path},
            ) from exc

        try:
            secret = await self._call(
                "POST", f"auth/{path.strip('/')}/login",
                json={"role": role, "jwt": jwt},
            )
        except StoreRequestFailure as exc:
            raise ClientCreationFailure(
                f"failed to create vault client: {exc.message}",
                details={"role": role, "path": path},
            ) from exc
        if secret is None or secret.auth is None:
            raise ClientCreationFailure(
                "failed to create vault client: login returned no token",
                details={"role": role, "path": path},
            )
        self._token = secret.auth.client_token
        self._auth = secret
        logger.debug("logged in", extra={"role": role, "path": path})
        return self._token

    async def revoke_self(self) -> None:
        """Revoke the client's own token."""
        await self._call("POST", "auth/token/revoke-self")

    async def renew_self(self, increment: int) -> Secret:
        """Renew the client's own token by *increment* seconds."""
        secret = await self._call(
            "POST", "auth/token/renew-self", json={"increment": increment},
        )
        if secret is None:
            raise StoreRequestFailure("token renewal returned no data")
        return secret

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    async def read(
        self, path: str, *, params: dict[str, str] | None = None,
    ) -> Secret | None:
        """Read the secret at *path*; ``None`` if it does not exist."""
        return await self._call("GET", path.strip("/"), params=params)

    async def renew_lease(self, lease_id: str, increment: int) -> Secret:
        """Renew the lease *lease_id* by *increment* seconds."""
        secret = await self._call(
            "PUT", "sys/leases/renew",
            json={"lease_id": lease_id, "increment": increment},
        )
        if secret is None:
            raise StoreRequestFailure(
                "lease renewal returned no data", details={"lease_id": lease_id},
            )
        return secret

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Secret | None:
        headers = {"X-Vault-Token": self._token} if self._token else {}
        try:
            response = await self._http.request(
                method, path, json=json, params=params, headers=headers,
            )
        except httpx.HTTPError as exc:
            raise StoreRequestFailure(
                f"vault request failed: {exc}",
                details={"method": method, "path": path},
            ) from exc

        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            raise StoreRequestFailure(
                f"vault request failed with status {response.status_code}: "
                f"{_error_text(response)}",
                details={
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                },
            )
        if response.status_code == httpx.codes.NO_CONTENT or not response.content:
            return None
        try:
            return Secret.model_validate(response.json())
        except ValueError as exc:
            raise StoreRequestFailure(
                f"invalid vault response: {exc}",
                details={"method": method, "path": path},
            ) from exc

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> VaultClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    errors = body.get("errors") if isinstance(body, dict) else None
    if isinstance(errors, list):
        return "; ".join(str(e) for e in errors)
    return response.text
