"""vault-env core: shared types, errors, configuration and interfaces."""
from __future__ import annotations

from vault_env.core.config import VAULT_LOGIN, VaultEnvConfig
from vault_env.core.errors import (
    BinaryNotFound,
    ClientCreationFailure,
    ExecFailure,
    InjectionFailure,
    LeaseWatchFailure,
    MissingEntrypoint,
    OperationalError,
    RevocationFailure,
    SecretNotFound,
    SignalForwardFailure,
    SpawnError,
    SpawnFailure,
    StartupError,
    StoreRequestFailure,
    TokenFileUnreadable,
    VaultEnvError,
)
from vault_env.core.interfaces import (
    InjectFn,
    LeaseWatcher,
    LeaseWatcherFactory,
    SecretInjector,
    SecretRenewer,
)
from vault_env.core.types import (
    EnvironmentVariable,
    LeaseDone,
    LeaseEvent,
    LeasePhase,
    LeaseRenewed,
    LeaseState,
    OriginClass,
    RequestKind,
    Secret,
    SecretAuth,
    TerminationRequest,
    Visibility,
    VisibilityRule,
)

__all__ = [
    # Configuration
    "VAULT_LOGIN",
    "VaultEnvConfig",
    # Errors
    "VaultEnvError",
    "StartupError",
    "SpawnError",
    "OperationalError",
    "MissingEntrypoint",
    "BinaryNotFound",
    "TokenFileUnreadable",
    "ClientCreationFailure",
    "InjectionFailure",
    "SecretNotFound",
    "StoreRequestFailure",
    "SpawnFailure",
    "ExecFailure",
    "SignalForwardFailure",
    "RevocationFailure",
    "LeaseWatchFailure",
    # Interfaces
    "InjectFn",
    "SecretInjector",
    "SecretRenewer",
    "LeaseWatcher",
    "LeaseWatcherFactory",
    # Types
    "Visibility",
    "VisibilityRule",
    "OriginClass",
    "EnvironmentVariable",
    "Secret",
    "SecretAuth",
    "LeasePhase",
    "LeaseState",
    "LeaseRenewed",
    "LeaseDone",
    "LeaseEvent",
    "RequestKind",
    "TerminationRequest",
]
