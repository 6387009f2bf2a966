"""Launching the child process.

Two mutually exclusive strategies:

* :func:`replace_process` -- the supervisor *becomes* the child through
  ``execve``.  PID carries over; nothing returns.
* :class:`ProcessSupervisor` -- daemon mode.  The child runs as a
  subprocess sharing the supervisor's stdio; signals are relayed, leases
  are watched and the child's exit status becomes the supervisor's.

Exit status handling:
1. A child exiting with code ``N`` yields ``N``.
2. A child killed by a signal, or whose status cannot be read, yields
   :data:`INDETERMINATE_EXIT`.
"""
from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Iterable, Mapping, Sequence
from typing import NoReturn

from vault_env.core.errors import ExecFailure, SpawnFailure
from vault_env.core.types import TerminationRequest
from vault_env.supervisor.lease import DaemonSecretRenewer
from vault_env.supervisor.relay import SignalRelay

logger = logging.getLogger(__name__)

INDETERMINATE_EXIT = -1

# The interpreter ignores these at startup and exec keeps ignored
# dispositions, so they are reset before handing over to the child.
_INTERPRETER_IGNORED: tuple[signal.Signals, ...] = (signal.SIGPIPE, signal.SIGXFSZ)


def exit_status(returncode: int | None) -> int:
    """Map a ``returncode`` to the supervisor's own exit status."""
    if returncode is None or returncode < 0:
        return INDETERMINATE_EXIT
    return returncode


def replace_process(
    binary: str,
    argv: Sequence[str],
    env: Mapping[str, str],
) -> NoReturn:
    """Replace the current process image with *binary*.

    *env* is the complete environment of the new image.  Signals the
    interpreter ignores are restored to their default action first, as
    ``subprocess`` does with ``restore_signals=True``.

    Raises
    ------
    ExecFailure
        If ``execve`` fails; the previous signal dispositions are put back.
        On success this function never returns.
    """
    previous = {sig: signal.signal(sig, signal.SIG_DFL) for sig in _INTERPRETER_IGNORED}
    try:
        os.execve(binary, list(argv), dict(env))
    except OSError as exc:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        raise ExecFailure(
            f"failed to exec process: {exc}",
            details={"entrypoint": list(argv)},
        ) from exc


class ProcessSupervisor:
    """Run the child as a subprocess and supervise it until it exits.

    Parameters
    ----------
    binary:
        Resolved path of the executable.
    argv:
        Full argument vector; ``argv[0]`` is passed to the child unchanged.
    env:
        Sanitized variables, overlaid on *base_env*.
    base_env:
        The inherited environment.  Defaults to ``os.environ``.
    renewer:
        Lease watchers already running for the injected secrets.  Their
        termination requests are relayed to the child, and they are stopped
        once the child exits.
    signals:
        Signals to relay.  Defaults to every catchable signal.
    """

    def __init__(
        self,
        binary: str,
        argv: Sequence[str],
        env: Mapping[str, str],
        *,
        base_env: Mapping[str, str] | None = None,
        renewer: DaemonSecretRenewer | None = None,
        signals: Iterable[signal.Signals] | None = None,
    ) -> None:
        self._binary = binary
        self._argv = list(argv)
        self._env = dict(env)
        self._base_env = base_env
        self._renewer = renewer
        self._signals = None if signals is None else list(signals)

    def child_environ(self) -> dict[str, str]:
        """The child's environment: inherited variables, then sanitized ones."""
        base = os.environ if self._base_env is None else self._base_env
        return {**base, **self._env}

    async def run(self) -> int:
        """Spawn the child, supervise it and return its exit status.

        Raises
        ------
        SpawnFailure
            If the subprocess cannot be started.
        """
        loop = asyncio.get_running_loop()
        requests: asyncio.Queue[TerminationRequest | None]
        if self._renewer is not None:
            requests, exited = self._renewer.requests, self._renewer.exited
        else:
            requests, exited = asyncio.Queue(), asyncio.Event()

        relay = SignalRelay(requests, exited)
        relay.install(loop, self._signals)
        try:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *self._argv,
                    executable=self._binary,
                    env=self.child_environ(),
                )
            except OSError as exc:
                raise SpawnFailure(
                    f"failed to start process: {exc}",
                    details={"entrypoint": self._argv},
                ) from exc

            relay.attach(proc)
            relay_task = asyncio.create_task(relay.run())
            try:
                returncode = await proc.wait()
            finally:
                exited.set()
                requests.put_nowait(None)
                await asyncio.gather(relay_task, return_exceptions=True)
        finally:
            if self._renewer is not None:
                await self._renewer.aclose()
            relay.uninstall()

        status = exit_status(returncode)
        if returncode == 0:
            logger.info("process exited", extra={"exit_code": status})
        else:
            logger.error(
                "process exited with failure",
                extra={
                    "entrypoint": " ".join(self._argv),
                    "returncode": returncode,
                    "exit_code": status,
                },
            )
        return status
