"""vault-env error-code hierarchy.

Every failure the supervisor can report is a concrete exception class
carrying a stable error code and the process exit status the entrypoint
should use when the error is fatal.

Hierarchy
---------
::

    VaultEnvError
    +-- StartupError        (VE-1xx)  fatal, exit 1
    +-- SpawnError          (VE-2xx)  fatal, exit 1
    +-- OperationalError    (VE-3xx)  logged as a warning, execution continues

Usage
-----
Raise concrete subclasses directly::

    raise BinaryNotFound(details={"binary": "nginx"})

Catch by category::

    try:
        ...
    except StartupError as exc:
        logger.error(exc.message)
        sys.exit(exc.exit_code)

A child process exiting non-zero is NOT an error here: its status is
mirrored by the supervisor, never wrapped.
"""
from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class VaultEnvError(Exception):
    """Base exception for all vault-env errors.

    Attributes
    ----------
    code : str
        Error code, e.g. ``"VE-101"``.
    exit_code : int
        Process exit status used when the error terminates the supervisor.
    message : str
        Human-readable description (MUST NOT contain secret values).
    details : dict[str, Any]
        Machine-readable context specific to the error instance.
    """

    code: str = "VE-000"
    exit_code: int = 1
    message: str = "Unknown vault-env error"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.details: dict[str, Any] = details or {}
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


# ===================================================================
# Category base classes
# ===================================================================

class StartupError(VaultEnvError):
    """VE-1xx -- Failures before the child is launched."""

    code = "VE-1XX"


class SpawnError(VaultEnvError):
    """VE-2xx -- The child process could not be started."""

    code = "VE-2XX"


class OperationalError(VaultEnvError):
    """VE-3xx -- Non-fatal failures while supervising."""

    code = "VE-3XX"


# ===================================================================
# VE-1xx  Startup
# ===================================================================

class MissingEntrypoint(StartupError):
    """VE-100 -- No command was given on the command line."""

    code = "VE-100"
    message = (
        "no command is given, vault-env can't determine the entrypoint "
        "(command), please specify it explicitly or let the webhook query it "
        "(see documentation)"
    )


class BinaryNotFound(StartupError):
    """VE-101 -- The entrypoint binary could not be resolved on PATH."""

    code = "VE-101"
    message = "binary not found"


class TokenFileUnreadable(StartupError):
    """VE-102 -- ``VAULT_TOKEN_FILE`` points to an unreadable file."""

    code = "VE-102"
    message = "could not read vault token file"


class ClientCreationFailure(StartupError):
    """VE-103 -- The secret-store client could not be constructed or logged in."""

    code = "VE-103"
    message = "failed to create vault client"


class InjectionFailure(StartupError):
    """VE-104 -- A secret reference could not be resolved."""

    code = "VE-104"
    message = "failed to inject secrets from vault"


class SecretNotFound(InjectionFailure):
    """VE-105 -- The referenced secret or key does not exist."""

    code = "VE-105"
    message = "secret not found"


class StoreRequestFailure(StartupError):
    """VE-106 -- A request to the secret store failed or was refused."""

    code = "VE-106"
    message = "secret store request failed"


# ===================================================================
# VE-2xx  Spawn
# ===================================================================

class SpawnFailure(SpawnError):
    """VE-200 -- Daemon mode: the subprocess failed to start."""

    code = "VE-200"
    message = "failed to start process"


class ExecFailure(SpawnError):
    """VE-201 -- Replace mode: ``execve`` failed."""

    code = "VE-201"
    message = "failed to exec process"


# ===================================================================
# VE-3xx  Operational (non-fatal)
# ===================================================================

class SignalForwardFailure(OperationalError):
    """VE-300 -- A signal could not be delivered to the child."""

    code = "VE-300"
    message = "failed to signal process"


class RevocationFailure(OperationalError):
    """VE-301 -- Self revocation of the client token was refused."""

    code = "VE-301"
    message = "failed to revoke token"


class LeaseWatchFailure(OperationalError):
    """VE-302 -- A lease watcher could not be set up for a secret."""

    code = "VE-302"
    message = "failed to create secret watcher"
