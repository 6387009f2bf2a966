"""vault-env collaborator interfaces and in-memory implementations.

This module defines the *structural* interfaces (``typing.Protocol``) for
the collaborators the supervision core consumes, plus lightweight
in-memory implementations suitable for testing and local development:

* :class:`SecretInjector` resolves secret references and reports every
  resulting variable through an inject callback.
* :class:`SecretRenewer` is told about every leased secret the injector
  fetched.
* :class:`LeaseWatcherFactory` turns a secret into a :class:`LeaseWatcher`,
  an async stream of renewal and termination events.

Every Protocol class is decorated with ``@runtime_checkable`` so that
``isinstance`` checks work at run-time in addition to static analysis.
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from typing import Protocol, runtime_checkable

from vault_env.core.config import parse_list
from vault_env.core.errors import LeaseWatchFailure, SecretNotFound
from vault_env.core.types import LeaseDone, LeaseEvent, Secret

InjectFn = Callable[[str, str], None]
"""Callback receiving one ``(name, value)`` pair destined for the child."""


# ===================================================================
# Protocol (interface) definitions
# ===================================================================

@runtime_checkable
class SecretInjector(Protocol):
    """Resolves secret references embedded in environment values."""

    async def inject_secrets_from_vault(
        self, env: Mapping[str, str], inject: InjectFn,
    ) -> None:
        """Call *inject* once per variable of *env*, with references resolved.

        Raises :class:`InjectionFailure` if a reference cannot be resolved.
        """
        ...

    async def inject_secrets_from_vault_path(
        self, paths: str, inject: InjectFn,
    ) -> None:
        """Inject every key stored under each comma separated path."""
        ...


@runtime_checkable
class SecretRenewer(Protocol):
    """Receives the leased secrets fetched during injection."""

    def renew(self, path: str, secret: Secret) -> None:
        """Start watching *secret*.

        Raises :class:`LeaseWatchFailure` if no watcher can be set up.
        """
        ...


@runtime_checkable
class LeaseWatcher(Protocol):
    """Async stream of lease events for one secret."""

    def events(self) -> AsyncIterator[LeaseEvent]:
        """Yield :class:`LeaseRenewed` events, then one :class:`LeaseDone`."""
        ...

    def stop(self) -> None:
        """Stop renewing; the event stream ends."""
        ...


@runtime_checkable
class LeaseWatcherFactory(Protocol):
    """Builds a :class:`LeaseWatcher` for a secret."""

    def new_watcher(self, secret: Secret) -> LeaseWatcher:
        """Raises :class:`LeaseWatchFailure` if the secret cannot be watched."""
        ...


# ===================================================================
# In-memory implementations (testing / development)
# ===================================================================

class StaticSecretInjector:
    """Injector backed by plain dictionaries.

    ``values`` maps a variable name to the value it resolves to; variables
    without an entry pass through unchanged.  ``paths`` maps a bulk path
    to the variables stored under it.  ``leases`` are handed to the
    renewer after injection, as a real injector does for leased secrets.
    """

    def __init__(
        self,
        values: Mapping[str, str] | None = None,
        *,
        paths: Mapping[str, Mapping[str, str]] | None = None,
        leases: Mapping[str, Secret] | None = None,
        renewer: SecretRenewer | None = None,
    ) -> None:
        self._values = dict(values or {})
        self._paths = {k: dict(v) for k, v in (paths or {}).items()}
        self._leases = dict(leases or {})
        self._renewer = renewer

    async def inject_secrets_from_vault(
        self, env: Mapping[str, str], inject: InjectFn,
    ) -> None:
        for name, value in env.items():
            inject(name, self._values.get(name, value))
        if self._renewer is not None:
            for path, secret in self._leases.items():
                self._renewer.renew(path, secret)

    async def inject_secrets_from_vault_path(
        self, paths: str, inject: InjectFn,
    ) -> None:
        for path in parse_list(paths):
            if path not in self._paths:
                raise SecretNotFound(
                    f"secret not found: {path}", details={"path": path},
                )
            for name, value in self._paths[path].items():
                inject(name, value)


class ScriptedLeaseWatcher:
    """Replays a fixed list of events, optionally spaced by *interval* seconds."""

    def __init__(
        self, events: Sequence[LeaseEvent], *, interval: float = 0.0,
    ) -> None:
        self._events = list(events)
        self._interval = interval
        self.stopped = False

    async def events(self) -> AsyncIterator[LeaseEvent]:
        for event in self._events:
            if self._interval:
                await asyncio.sleep(self._interval)
            if self.stopped:
                return
            yield event

    def stop(self) -> None:
        self.stopped = True


class ScriptedLeaseWatcherFactory:
    """Creates :class:`ScriptedLeaseWatcher` instances sharing one script.

    With ``fail=True`` every call raises :class:`LeaseWatchFailure`.
    """

    def __init__(
        self,
        events: Sequence[LeaseEvent] = (LeaseDone(),),
        *,
        interval: float = 0.0,
        fail: bool = False,
    ) -> None:
        self._events = list(events)
        self._interval = interval
        self._fail = fail
        self.watchers: list[ScriptedLeaseWatcher] = []

    def new_watcher(self, secret: Secret) -> ScriptedLeaseWatcher:
        if self._fail:
            raise LeaseWatchFailure(details={"lease_id": secret.lease_id})
        watcher = ScriptedLeaseWatcher(self._events, interval=self._interval)
        self.watchers.append(watcher)
        return watcher
