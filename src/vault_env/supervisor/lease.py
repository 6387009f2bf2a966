"""Lease renewal watching and lease-driven termination.

This module implements the :class:`LeaseRenewalWatcher` state machine,
which ties the lifetime of a leased secret to the lifetime of the child:

.. code-block:: text

    WATCHING ──renewed──> RENEWAL_RECEIVED ──> WATCHING
        |
      done (after the full lease for a non-renewable secret)
        v
    TERMINATION_REQUESTED ──SIGTERM──> (10s) ──> ESCALATED ──SIGKILL

and the :class:`DaemonSecretRenewer` which the injector notifies about
every leased secret it fetched, and which starts watching it right away.

Watchers never signal the child directly: they put
:class:`~vault_env.core.types.TerminationRequest` messages on the queue
consumed by the :class:`~vault_env.supervisor.relay.SignalRelay`.
"""
from __future__ import annotations

import asyncio
import logging
import signal

from vault_env.core.errors import LeaseWatchFailure
from vault_env.core.interfaces import LeaseWatcher, LeaseWatcherFactory
from vault_env.core.types import (
    LeaseDone,
    LeasePhase,
    LeaseRenewed,
    LeaseState,
    Secret,
    TerminationRequest,
)

logger = logging.getLogger(__name__)

# Grace period between SIGTERM and SIGKILL once a lease has ended.
GRACEFUL_SHUTDOWN_S = 10


async def _wait_exited(exited: asyncio.Event, timeout: float) -> bool:
    """Wait up to *timeout* seconds for the child exit; ``True`` if it exited."""
    try:
        await asyncio.wait_for(exited.wait(), timeout=max(timeout, 0.0))
    except TimeoutError:
        return False
    return True


class LeaseRenewalWatcher:
    """Watch one secret's lease and terminate the child when it ends.

    Parameters
    ----------
    path:
        The secret path, used for logging and in termination requests.
    secret:
        The secret as originally fetched.  Its ``renewable`` flag and
        ``lease_duration`` are captured when the watcher is created.
    watcher:
        The event stream for this secret.
    termination_timeout:
        Seconds between the graceful and the forceful termination signal.
    """

    def __init__(
        self,
        path: str,
        secret: Secret,
        watcher: LeaseWatcher,
        *,
        termination_timeout: float = GRACEFUL_SHUTDOWN_S,
    ) -> None:
        self.state = LeaseState(
            secret_path=path,
            renewable=secret.renewable,
            lease_duration_seconds=secret.lease_duration,
        )
        self._watcher = watcher
        self._termination_timeout = termination_timeout

    @property
    def path(self) -> str:
        return self.state.secret_path

    @property
    def phase(self) -> LeasePhase:
        return self.state.phase

    async def run(
        self,
        requests: asyncio.Queue[TerminationRequest | None],
        exited: asyncio.Event,
    ) -> None:
        """Drive the state machine until the lease ends or the child exits.

        Runs as its own task; cancelling it stops the underlying watcher.
        """
        try:
            done = await self._watch()
            await self._terminate(done, requests, exited)
        finally:
            self._watcher.stop()

    async def _watch(self) -> LeaseDone:
        try:
            async for event in self._watcher.events():
                if isinstance(event, LeaseRenewed):
                    self.state.phase = LeasePhase.RENEWAL_RECEIVED
                    logger.info(
                        "secret renewed",
                        extra={
                            "path": self.path,
                            "lease_duration": f"{event.lease_duration}s",
                        },
                    )
                    self.state.phase = LeasePhase.WATCHING
                else:
                    return event
        except Exception as exc:  # noqa: BLE001
            # A broken stream ends the lease just like a done event.
            return LeaseDone(error=str(exc))
        return LeaseDone()

    async def _terminate(
        self,
        done: LeaseDone,
        requests: asyncio.Queue[TerminationRequest | None],
        exited: asyncio.Event,
    ) -> None:
        if not self.state.renewable:
            # The secret stays usable until its natural expiry.
            lease_duration = self.state.lease_duration_seconds
            if await _wait_exited(exited, lease_duration):
                return
            logger.info(
                "secret lease has expired",
                extra={"path": self.path, "lease_duration": f"{lease_duration}s"},
            )

        if exited.is_set():
            return

        logger.info(
            "secret renewal has stopped, sending SIGTERM to process",
            extra={"path": self.path, "done_error": done.error},
        )
        self.state.phase = LeasePhase.TERMINATION_REQUESTED
        await requests.put(
            TerminationRequest.lease_expired(self.path, signal.SIGTERM),
        )

        if await _wait_exited(exited, self._termination_timeout):
            return

        logger.info(
            "killing process due to SIGTERM timeout",
            extra={"path": self.path, "timeout": f"{self._termination_timeout}s"},
        )
        self.state.phase = LeasePhase.ESCALATED
        await requests.put(
            TerminationRequest.lease_expired(self.path, signal.SIGKILL),
        )


class DaemonSecretRenewer:
    """Start a :class:`LeaseRenewalWatcher` for every leased secret.

    Handed to the injector in daemon mode.  Each watcher starts running as
    soon as its secret is registered, so renewals and expiry countdowns
    start when the secret is fetched rather than when the child is spawned.
    Termination requests wait in :attr:`requests` until the supervisor's
    relay has a child to deliver them to.

    Attributes
    ----------
    requests : asyncio.Queue
        Shared with the :class:`~vault_env.supervisor.relay.SignalRelay`.
    exited : asyncio.Event
        Set once the child has exited, or when the renewer is closed.
    """

    def __init__(
        self,
        factory: LeaseWatcherFactory,
        *,
        termination_timeout: float = GRACEFUL_SHUTDOWN_S,
    ) -> None:
        self._factory = factory
        self._termination_timeout = termination_timeout
        self._watchers: dict[str, LeaseRenewalWatcher] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self.requests: asyncio.Queue[TerminationRequest | None] = asyncio.Queue()
        self.exited = asyncio.Event()

    @property
    def watchers(self) -> list[LeaseRenewalWatcher]:
        return list(self._watchers.values())

    def renew(self, path: str, secret: Secret) -> None:
        """Register *secret* and start watching it.

        Must be called with a running event loop.  A path that is already
        watched is ignored.

        Raises
        ------
        LeaseWatchFailure
            If the factory cannot create a watcher for *secret*.
        """
        loop = asyncio.get_running_loop()
        if path in self._watchers:
            logger.debug("secret already watched", extra={"path": path})
            return
        try:
            watcher = self._factory.new_watcher(secret)
        except LeaseWatchFailure:
            raise
        except Exception as exc:
            raise LeaseWatchFailure(
                f"failed to create secret watcher: {exc}",
                details={"path": path},
            ) from exc
        lease = LeaseRenewalWatcher(
            path,
            secret,
            watcher,
            termination_timeout=self._termination_timeout,
        )
        self._watchers[path] = lease
        self._tasks.append(
            loop.create_task(lease.run(self.requests, self.exited)),
        )

    async def aclose(self) -> None:
        """Mark the child as gone and stop every watcher.  Idempotent."""
        self.exited.set()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
