"""vault-env runtime configuration.

Defines the validated configuration model consumed by the entrypoint, the
logging setup and the Vault adapter.  Every value is read once from the
process environment at startup by :meth:`VaultEnvConfig.from_environ`.

Environment values are parsed the way the webhook that writes them
expects: booleans follow Go's ``strconv.ParseBool`` and durations follow
Go's ``time.ParseDuration``.  Unparsable values fall back to the zero value
instead of failing startup.
"""
from __future__ import annotations

import re
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

# The special value for VAULT_TOKEN which marks that the login token needs to
# be passed through to the application.
VAULT_LOGIN = "vault:login"

DEFAULT_VAULT_ADDR = "https://127.0.0.1:8200"

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})

_DURATION_UNITS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # micro sign
    "μs": 1e-6,  # greek mu
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART_RE = re.compile(r"(\d*\.?\d*)(ns|us|µs|μs|ms|s|m|h)")


def parse_bool(value: str | None) -> bool:
    """Parse *value* like ``strconv.ParseBool``; anything unparsable is ``False``."""
    if value is None:
        return False
    return value.strip() in _TRUE_VALUES


def parse_duration(value: str | None) -> float:
    """Parse a Go duration string into seconds.

    ``"1m30s"`` -> ``90.0``, ``"250ms"`` -> ``0.25``.  A bare integer is a
    count of nanoseconds.  Invalid input yields ``0.0``.
    """
    if not value:
        return 0.0
    text = value.strip()
    if not any(ch in text for ch in "nsuµμmh"):
        text += "ns"

    sign = 1.0
    if text[:1] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART_RE.match(text, pos)
        if match is None or match.group(1) in ("", "."):
            return 0.0
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0:
        return 0.0
    return sign * total


def parse_list(value: str | None) -> list[str]:
    """Split a comma separated list, trimming entries and dropping empty ones."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class VaultEnvConfig(BaseModel):
    """Configuration for one vault-env run.

    All fields carry defaults so that an empty environment is a valid
    (non-daemon, token-less) configuration.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    vault_token: str = Field(
        default="",
        description="Value of VAULT_TOKEN as found at startup.",
    )
    token_file: str = Field(
        default="",
        description="Path of a file holding the client token (VAULT_TOKEN_FILE).",
    )
    vault_addr: str = Field(
        default=DEFAULT_VAULT_ADDR,
        description="Base URL of the secret store (VAULT_ADDR).",
    )
    namespace: str = Field(
        default="",
        description="Enterprise namespace sent as X-Vault-Namespace.",
    )
    role: str = Field(
        default="",
        description="Role used for role/path based login (VAULT_ROLE).",
    )
    auth_path: str = Field(
        default="",
        description="Mount path of the auth method (VAULT_PATH).",
    )
    auth_method: str = Field(
        default="",
        description="Auth method name (VAULT_AUTH_METHOD).",
    )
    daemon_mode: bool = Field(
        default=False,
        description="Supervise the child instead of replacing the process.",
    )
    passthrough: list[str] = Field(
        default_factory=list,
        description="Variable names exempted from sanitization.",
    )
    delay_exec: float = Field(
        default=0.0,
        description="Seconds to sleep before launching the child.",
    )
    revoke_token: bool = Field(
        default=False,
        description="Revoke the client token once secrets are injected.",
    )
    from_path: str = Field(
        default="",
        description="Comma separated secret paths injected in bulk.",
    )
    ignore_missing_secrets: bool = Field(
        default=False,
        description="Skip references that cannot be resolved instead of failing.",
    )
    log_level: str = Field(
        default="info",
        description="Minimum log level (VAULT_LOG_LEVEL).",
    )
    json_log: bool = Field(
        default=False,
        description="Emit JSON log lines instead of logfmt (VAULT_JSON_LOG).",
    )
    log_server: str = Field(
        default="",
        description="host:port of a UDP syslog server (VAULT_ENV_LOG_SERVER).",
    )

    @property
    def is_login(self) -> bool:
        """Return ``True`` when the child must receive the login token."""
        return self.vault_token == VAULT_LOGIN

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> VaultEnvConfig:
        """Build the configuration from a process environment mapping."""
        return cls(
            vault_token=environ.get("VAULT_TOKEN", ""),
            token_file=environ.get("VAULT_TOKEN_FILE", ""),
            vault_addr=environ.get("VAULT_ADDR") or DEFAULT_VAULT_ADDR,
            namespace=environ.get("VAULT_NAMESPACE", ""),
            role=environ.get("VAULT_ROLE", ""),
            auth_path=environ.get("VAULT_PATH", ""),
            auth_method=environ.get("VAULT_AUTH_METHOD", ""),
            daemon_mode=parse_bool(environ.get("VAULT_ENV_DAEMON")),
            passthrough=parse_list(environ.get("VAULT_ENV_PASSTHROUGH")),
            delay_exec=max(parse_duration(environ.get("VAULT_ENV_DELAY")), 0.0),
            revoke_token=parse_bool(environ.get("VAULT_REVOKE_TOKEN")),
            from_path=environ.get("VAULT_ENV_FROM_PATH", ""),
            ignore_missing_secrets=parse_bool(
                environ.get("VAULT_IGNORE_MISSING_SECRETS"),
            ),
            log_level=environ.get("VAULT_LOG_LEVEL") or "info",
            json_log=parse_bool(environ.get("VAULT_JSON_LOG")),
            log_server=environ.get("VAULT_ENV_LOG_SERVER", ""),
        )
