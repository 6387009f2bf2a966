"""Signal relaying from the supervisor to the child.

The :class:`SignalRelay` is the single dispatcher for everything that
signals the child process:

* every catchable signal the supervisor receives becomes a
  ``TerminationRequest.relay(sig)``;
* lease watchers put ``TerminationRequest.lease_expired(path, sig)``
  requests on the same queue.

Requests are delivered one at a time in queue order.  Once the child's
exit has been observed, requests are dropped.  ``None`` on the queue stops
the dispatcher.
"""
from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from vault_env.core.errors import SignalForwardFailure
from vault_env.core.types import RequestKind, TerminationRequest

logger = logging.getLogger(__name__)

# Cannot be caught (KILL, STOP) or belongs to the supervisor itself (CHLD).
_UNRELAYABLE: frozenset[signal.Signals] = frozenset(
    {signal.SIGKILL, signal.SIGSTOP, signal.SIGCHLD},
)

# Urgent-I/O notifications are frequent and uninteresting.
_QUIET_SIGNALS: frozenset[signal.Signals] = frozenset({signal.SIGURG})


class Signalable(Protocol):
    """The part of a process handle the relay needs."""

    @property
    def returncode(self) -> int | None: ...

    def send_signal(self, sig: int) -> None: ...


def relayable_signals() -> list[signal.Signals]:
    """Return every named signal the supervisor can catch and forward."""
    return sorted(
        (
            sig
            for sig in signal.valid_signals()
            if isinstance(sig, signal.Signals) and sig not in _UNRELAYABLE
        ),
        key=int,
    )


class SignalRelay:
    """Forward signals and termination requests to the child process.

    Usage::

        relay = SignalRelay(requests, exited)
        relay.install(loop)
        proc = await asyncio.create_subprocess_exec(...)
        relay.attach(proc)
        task = asyncio.create_task(relay.run())
        ...
        requests.put_nowait(None)
        await task
        relay.uninstall()
    """

    def __init__(
        self,
        requests: asyncio.Queue[TerminationRequest | None],
        exited: asyncio.Event,
    ) -> None:
        self._requests = requests
        self._exited = exited
        self._process: Signalable | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous: dict[signal.Signals, Callable[..., Any] | int | None] = {}

    @property
    def installed(self) -> list[signal.Signals]:
        return list(self._previous)

    def attach(self, process: Signalable) -> None:
        self._process = process

    def install(
        self,
        loop: asyncio.AbstractEventLoop,
        signals: Iterable[signal.Signals] | None = None,
    ) -> None:
        """Register a handler on *loop* for each of *signals*.

        Defaults to :func:`relayable_signals`.  Signals the platform refuses
        to hand over are skipped.
        """
        self._loop = loop
        for sig in relayable_signals() if signals is None else signals:
            previous = signal.getsignal(sig)
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (OSError, RuntimeError, ValueError):
                logger.debug("cannot relay signal", extra={"signal": sig.name})
                continue
            self._previous[sig] = previous

    def uninstall(self) -> None:
        """Remove the handlers and restore the previous dispositions."""
        if self._loop is None:
            return
        for sig, previous in self._previous.items():
            self._loop.remove_signal_handler(sig)
            if previous is not None:
                signal.signal(sig, previous)
        self._previous.clear()
        self._loop = None

    def _on_signal(self, sig: signal.Signals) -> None:
        self._requests.put_nowait(TerminationRequest.relay(sig))

    async def run(self) -> None:
        """Dispatch requests until ``None`` is received."""
        while True:
            request = await self._requests.get()
            if request is None:
                return
            self.dispatch(request)

    def dispatch(self, request: TerminationRequest) -> bool:
        """Deliver one request.  Returns ``True`` if the signal was sent."""
        process = self._process
        # Never signal a reaped or non-existent process.
        if process is None or self._exited.is_set() or process.returncode is not None:
            logger.debug(
                "dropping signal for exited process",
                extra={"signal": request.signal.name},
            )
            return False

        try:
            process.send_signal(request.signal)
        except OSError as exc:
            error = SignalForwardFailure(
                f"failed to signal process: {exc}",
                details={"signal": request.signal.name},
            )
            logger.warning(error.message, extra={"signal": request.signal.name})
            return False

        if request.kind is RequestKind.LEASE_EXPIRED:
            logger.info(
                "signalled process",
                extra={"signal": request.signal.name, "path": request.secret_path},
            )
        elif request.signal in _QUIET_SIGNALS:
            logger.debug("received signal", extra={"signal": request.signal.name})
        else:
            logger.info("received signal", extra={"signal": request.signal.name})
        return True
