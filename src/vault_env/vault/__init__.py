"""Vault HTTP API adapter.

Concrete implementations of the collaborator interfaces the supervision
core consumes:

* **VaultClient** -- httpx based API client (login, read, renew, revoke).
* **VaultSecretInjector** -- resolves ``vault:<path>#<key>`` references.
* **VaultLifetimeWatcherFactory** -- lease renewal event streams.
* **keep_token_alive** -- renews the login token in the background.
"""
from __future__ import annotations

from vault_env.vault.client import VaultClient
from vault_env.vault.injector import SecretReference, VaultSecretInjector
from vault_env.vault.watcher import (
    VaultLifetimeWatcher,
    VaultLifetimeWatcherFactory,
    keep_token_alive,
)

__all__ = [
    "SecretReference",
    "VaultClient",
    "VaultLifetimeWatcher",
    "VaultLifetimeWatcherFactory",
    "VaultSecretInjector",
    "keep_token_alive",
]
