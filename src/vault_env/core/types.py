"""vault-env shared domain types.

This module defines the value types, enums and Pydantic models shared by
the sanitizer, the supervisor and the Vault adapter.  All public symbols
are re-exported from ``vault_env.core``.

Key design decisions:
* Secrets returned by the store are Pydantic models that mirror the Vault
  JSON response so they can be validated straight from ``response.json()``.
* Lease events and termination requests are frozen dataclasses; they only
  travel over in-process queues and never need serialising.
* Enums use *string* values so they render cleanly in structured logs.
"""
from __future__ import annotations

import enum
import signal
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------

class Visibility(enum.StrEnum):
    """Classifier decision for a single environment variable."""

    INCLUDE = "include"
    EXCLUDE = "exclude"


class OriginClass(enum.StrEnum):
    """Where an environment value came from."""

    REGULAR = "regular"
    CREDENTIAL_SENSITIVE = "credential_sensitive"


@dataclass(frozen=True, slots=True)
class VisibilityRule:
    """Policy entry for a well-known variable name.

    ``login_only=True`` rules are connection parameters that are forwarded
    only when the child performs its own login.  ``login_only=False`` rules
    are supervisor-internal and never reach the child.
    """

    name: str
    login_only: bool


@dataclass(frozen=True, slots=True)
class EnvironmentVariable:
    """A collected ``name=value`` pair.  Identity is ``name``."""

    name: str
    value: str
    origin_class: OriginClass = OriginClass.REGULAR

    def __str__(self) -> str:
        return f"{self.name}={self.value}"


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------

class SecretAuth(BaseModel):
    """The ``auth`` block of a login or token response."""

    model_config = ConfigDict(extra="ignore")

    client_token: str
    accessor: str = ""
    policies: list[str] = Field(default_factory=list)
    lease_duration: int = 0
    renewable: bool = False


class Secret(BaseModel):
    """A secret as returned by the store.

    ``lease_duration`` is in seconds.  A secret with an empty ``lease_id``
    and a zero ``lease_duration`` (static KV data) carries no lease.
    """

    model_config = ConfigDict(extra="ignore")

    request_id: str = ""
    lease_id: str = ""
    renewable: bool = False
    lease_duration: int = Field(default=0, ge=0)
    data: dict[str, Any] | None = None
    warnings: list[str] | None = None
    auth: SecretAuth | None = None

    @property
    def has_lease(self) -> bool:
        """Return ``True`` if the secret expires and is worth watching."""
        return bool(self.lease_id) or self.lease_duration > 0


# ---------------------------------------------------------------------------
# Leases
# ---------------------------------------------------------------------------

class LeasePhase(enum.StrEnum):
    """Phases of the lease-renewal state machine.

    .. code-block:: text

        WATCHING <-> RENEWAL_RECEIVED
            |
            v
        TERMINATION_REQUESTED --10s--> ESCALATED
    """

    WATCHING = "watching"
    RENEWAL_RECEIVED = "renewal_received"
    TERMINATION_REQUESTED = "termination_requested"
    ESCALATED = "escalated"


@dataclass(slots=True)
class LeaseState:
    """Mutable state owned by exactly one lease watcher."""

    secret_path: str
    renewable: bool
    lease_duration_seconds: int
    phase: LeasePhase = LeasePhase.WATCHING


@dataclass(frozen=True, slots=True)
class LeaseRenewed:
    """The lease was extended; ``lease_duration`` is the new grant in seconds."""

    lease_duration: int


@dataclass(frozen=True, slots=True)
class LeaseDone:
    """The watch stream ended.  ``error`` describes why, if known."""

    error: str | None = None


LeaseEvent = LeaseRenewed | LeaseDone


# ---------------------------------------------------------------------------
# Termination requests
# ---------------------------------------------------------------------------

class RequestKind(enum.StrEnum):
    """Variant tag of a :class:`TerminationRequest`."""

    RELAY = "relay"
    LEASE_EXPIRED = "lease_expired"


@dataclass(frozen=True, slots=True)
class TerminationRequest:
    """A signal to deliver to the child, tagged with its origin.

    Built through :meth:`relay` for signals received by the supervisor and
    :meth:`lease_expired` for lease-driven termination.
    """

    kind: RequestKind
    signal: signal.Signals
    secret_path: str | None = None

    @classmethod
    def relay(cls, sig: signal.Signals) -> TerminationRequest:
        return cls(kind=RequestKind.RELAY, signal=sig)

    @classmethod
    def lease_expired(
        cls, secret_path: str, sig: signal.Signals,
    ) -> TerminationRequest:
        return cls(
            kind=RequestKind.LEASE_EXPIRED,
            signal=sig,
            secret_path=secret_path,
        )
