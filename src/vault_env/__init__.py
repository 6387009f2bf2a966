"""vault-env -- secret-injecting process launcher and supervisor.

Resolves secret references from a Vault-compatible store into the
environment of a command, keeps the store's own configuration away from
that command, and either becomes the command or supervises it.

Packages
--------
* :mod:`vault_env.core` -- types, errors, configuration, interfaces.
* :mod:`vault_env.sanitize` -- environment visibility policy.
* :mod:`vault_env.supervisor` -- process replacement and supervision.
* :mod:`vault_env.vault` -- Vault HTTP API adapter.
"""
from __future__ import annotations

__version__ = "1.0.0"

from vault_env.core.config import VAULT_LOGIN, VaultEnvConfig
from vault_env.core.errors import (
    OperationalError,
    SpawnError,
    StartupError,
    VaultEnvError,
)
from vault_env.core.types import (
    LeasePhase,
    Secret,
    TerminationRequest,
    Visibility,
    VisibilityRule,
)
from vault_env.sanitize import (
    EnvironmentClassifier,
    SanitizedEnvironment,
    SanitizePolicy,
)
from vault_env.supervisor import (
    DaemonSecretRenewer,
    LeaseRenewalWatcher,
    ProcessSupervisor,
    SignalRelay,
    replace_process,
)

__all__ = [
    "__version__",
    # Configuration
    "VAULT_LOGIN",
    "VaultEnvConfig",
    # Errors
    "VaultEnvError",
    "StartupError",
    "SpawnError",
    "OperationalError",
    # Types
    "LeasePhase",
    "Secret",
    "TerminationRequest",
    "Visibility",
    "VisibilityRule",
    # Sanitization
    "EnvironmentClassifier",
    "SanitizePolicy",
    "SanitizedEnvironment",
    # Supervision
    "DaemonSecretRenewer",
    "LeaseRenewalWatcher",
    "ProcessSupervisor",
    "SignalRelay",
    "replace_process",
]
