"""Secret reference resolution against the Vault API.

Environment values of the form::

    vault:<path>#<key>
    vault:<path>#<key>#<version>

are replaced with the value stored under ``<key>`` at ``<path>``.  Every
other value, including the ``vault:login`` placeholder, passes through
unchanged.  KV version 2 responses are unwrapped (``data.data``).

Secrets carrying a lease are reported to the renewer, once per path.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from vault_env.core.config import VAULT_LOGIN, parse_list
from vault_env.core.errors import (
    InjectionFailure,
    LeaseWatchFailure,
    SecretNotFound,
)
from vault_env.core.interfaces import InjectFn, SecretRenewer
from vault_env.core.types import Secret
from vault_env.vault.client import VaultClient

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "vault:"


@dataclass(frozen=True, slots=True)
class SecretReference:
    """A parsed ``vault:<path>#<key>[#<version>]`` reference."""

    path: str
    key: str
    version: str | None = None

    @classmethod
    def parse(cls, value: str) -> SecretReference | None:
        """Parse *value*; ``None`` if it is not a reference at all.

        Raises
        ------
        InjectionFailure
            If *value* has the reference prefix but no path or key.
        """
        if not value.startswith(REFERENCE_PREFIX) or value == VAULT_LOGIN:
            return None
        parts = value[len(REFERENCE_PREFIX):].split("#")
        if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
            raise InjectionFailure(
                "invalid secret reference, expected vault:<path>#<key>[#<version>]",
                details={"reference": value},
            )
        version = parts[2] if len(parts) == 3 and parts[2] else None
        return cls(path=parts[0], key=parts[1], version=version)


def _secret_data(secret: Secret) -> dict[str, Any]:
    data = secret.data or {}
    # KV version 2 nests the payload next to its metadata.
    if isinstance(data.get("data"), dict) and "metadata" in data:
        return data["data"]
    return data


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


class VaultSecretInjector:
    """:class:`~vault_env.core.interfaces.SecretInjector` backed by Vault.

    Parameters
    ----------
    client:
        An authenticated :class:`VaultClient`.
    renewer:
        Notified about every leased secret; ``None`` outside daemon mode.
    ignore_missing_secrets:
        Log and skip unresolvable references instead of failing.
    """

    def __init__(
        self,
        client: VaultClient,
        *,
        renewer: SecretRenewer | None = None,
        ignore_missing_secrets: bool = False,
    ) -> None:
        self._client = client
        self._renewer = renewer
        self._ignore_missing = ignore_missing_secrets
        self._cache: dict[tuple[str, str | None], Secret | None] = {}

    async def inject_secrets_from_vault(
        self, env: Mapping[str, str], inject: InjectFn,
    ) -> None:
        for name, value in env.items():
            reference = SecretReference.parse(value)
            if reference is None:
                inject(name, value)
                continue

            data = await self._fetch(reference.path, reference.version)
            if data is None:
                continue
            if reference.key not in data:
                self._missing(
                    f"key '{reference.key}' not found under path '{reference.path}'",
                    path=reference.path,
                )
                continue
            inject(name, _stringify(data[reference.key]))

    async def inject_secrets_from_vault_path(
        self, paths: str, inject: InjectFn,
    ) -> None:
        for path in parse_list(paths):
            data = await self._fetch(path, None)
            if data is None:
                continue
            for name, value in data.items():
                inject(name, _stringify(value))

    async def _fetch(self, path: str, version: str | None) -> dict[str, Any] | None:
        cache_key = (path, version)
        if cache_key not in self._cache:
            params = {"version": version} if version else None
            secret = await self._client.read(path, params=params)
            self._cache[cache_key] = secret
            if secret is not None and secret.has_lease:
                self._watch(path, secret)

        secret = self._cache[cache_key]
        if secret is None:
            self._missing(f"path not found: {path}", path=path)
            return None
        return _secret_data(secret)

    def _watch(self, path: str, secret: Secret) -> None:
        if self._renewer is None:
            return
        try:
            self._renewer.renew(path, secret)
        except LeaseWatchFailure as exc:
            # Injection still succeeded; only the renewal guarantee is lost.
            logger.warning(exc.message, extra={"path": path})

    def _missing(self, message: str, *, path: str) -> None:
        if not self._ignore_missing:
            raise SecretNotFound(message, details={"path": path})
        logger.warning(message, extra={"path": path})
