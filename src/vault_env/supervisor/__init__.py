"""Child process supervision.

* **replace_process** -- non-daemon mode: ``execve`` into the child.
* **ProcessSupervisor** -- daemon mode: spawn, relay signals, watch
  leases, mirror the exit status.
* **SignalRelay** -- single dispatcher for relayed signals and
  lease-driven termination requests.
* **LeaseRenewalWatcher** / **DaemonSecretRenewer** -- per-secret lease
  state machine and its registration hook for the injector.
"""
from __future__ import annotations

from vault_env.supervisor.lease import (
    GRACEFUL_SHUTDOWN_S,
    DaemonSecretRenewer,
    LeaseRenewalWatcher,
)
from vault_env.supervisor.process import (
    INDETERMINATE_EXIT,
    ProcessSupervisor,
    exit_status,
    replace_process,
)
from vault_env.supervisor.relay import SignalRelay, relayable_signals

__all__ = [
    "GRACEFUL_SHUTDOWN_S",
    "INDETERMINATE_EXIT",
    "DaemonSecretRenewer",
    "LeaseRenewalWatcher",
    "ProcessSupervisor",
    "SignalRelay",
    "exit_status",
    "relayable_signals",
    "replace_process",
]
