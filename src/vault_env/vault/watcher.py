"""Lease lifetime watching against the Vault API.

:class:`VaultLifetimeWatcher` renews a secret's lease (or, for login
responses, the client token) at two thirds of each granted duration and
reports every renewal.  The stream ends with a single
:class:`~vault_env.core.types.LeaseDone` when:

* the secret is not renewable (immediately);
* a renewal request fails;
* the store stops extending the lease (zero duration or non-renewable).

:func:`keep_token_alive` runs the same loop over the client's own login
token.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from vault_env.core.errors import LeaseWatchFailure, StoreRequestFailure
from vault_env.core.types import LeaseDone, LeaseEvent, LeaseRenewed, Secret
from vault_env.vault.client import VaultClient

logger = logging.getLogger(__name__)

# Fraction of the lease after which renewal is attempted.
RENEW_FRACTION = 2 / 3


class VaultLifetimeWatcher:
    """Renew one lease for as long as the store allows."""

    def __init__(self, client: VaultClient, secret: Secret) -> None:
        self._client = client
        self._secret = secret
        self._stopped = asyncio.Event()

    @property
    def _is_token(self) -> bool:
        return self._secret.auth is not None

    def _granted(self, secret: Secret) -> tuple[int, bool]:
        if secret.auth is not None:
            return secret.auth.lease_duration, secret.auth.renewable
        return secret.lease_duration, secret.renewable

    async def _renew(self, increment: int) -> Secret:
        if self._is_token:
            return await self._client.renew_self(increment)
        return await self._client.renew_lease(self._secret.lease_id, increment)

    async def events(self) -> AsyncIterator[LeaseEvent]:
        lease_duration, renewable = self._granted(self._secret)
        if not renewable:
            yield LeaseDone(error="secret is not renewable")
            return

        increment = lease_duration
        while not self._stopped.is_set():
            try:
                await asyncio.wait_for(
                    self._stopped.wait(), timeout=lease_duration * RENEW_FRACTION,
                )
            except TimeoutError:
                pass
            else:
                return

            logger.debug(
                "renewing lease",
                extra={"lease_id": self._secret.lease_id, "increment": increment},
            )
            try:
                renewed = await self._renew(increment)
            except StoreRequestFailure as exc:
                yield LeaseDone(error=exc.message)
                return

            lease_duration, renewable = self._granted(renewed)
            if lease_duration <= 0 or not renewable:
                yield LeaseDone(error="lease can no longer be renewed")
                return
            yield LeaseRenewed(lease_duration=lease_duration)

    def stop(self) -> None:
        self._stopped.set()


class VaultLifetimeWatcherFactory:
    """Create a :class:`VaultLifetimeWatcher` per secret, sharing one client."""

    def __init__(self, client: VaultClient) -> None:
        self._client = client

    def new_watcher(self, secret: Secret) -> VaultLifetimeWatcher:
        if secret.auth is None and secret.renewable and not secret.lease_id:
            raise LeaseWatchFailure(
                "failed to create secret watcher: renewable secret has no lease id",
                details={"request_id": secret.request_id},
            )
        return VaultLifetimeWatcher(self._client, secret)


async def keep_token_alive(client: VaultClient) -> None:
    """Renew the token issued by a role based login until it can't be.

    Returns immediately for tokens handed in from outside, which are
    renewed by whoever issued them.  Meant to run as a background task and
    be cancelled once the token is revoked or no longer needed.
    """
    auth = client.auth_secret
    if auth is None or auth.auth is None or not auth.auth.renewable:
        logger.debug("token is not renewable, not watching it")
        return

    watcher = VaultLifetimeWatcher(client, auth)
    try:
        async for event in watcher.events():
            if isinstance(event, LeaseRenewed):
                logger.debug(
                    "token renewed", extra={"lease_duration": f"{event.lease_duration}s"},
                )
            elif isinstance(event, LeaseDone):
                logger.warning("token renewal stopped", extra={"error": event.error})
    finally:
        watcher.stop()
