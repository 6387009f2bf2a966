"""Visibility policy for environment variables reaching the child.

This module implements the :class:`SanitizePolicy` table and the
:class:`EnvironmentClassifier` that consults it.

Key rules:
1. Names without a rule always pass through.
2. ``login_only`` rules (connection parameters) pass through only in login
   mode, when the child performs its own token exchange.
3. Other rules (supervisor-internal settings) never pass through.
4. Names on the passthrough allow-list are removed from the table when the
   policy is built, so they always pass through.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping

from vault_env.core.types import Visibility, VisibilityRule

# Connection parameters: forwarded only when the child logs in itself.
_LOGIN_VARS: tuple[str, ...] = (
    "VAULT_TOKEN",
    "VAULT_ADDR",
    "VAULT_AGENT_ADDR",
    "VAULT_CACERT",
    "VAULT_CAPATH",
    "VAULT_CLIENT_CERT",
    "VAULT_CLIENT_KEY",
    "VAULT_CLIENT_TIMEOUT",
    "VAULT_SRV_LOOKUP",
    "VAULT_SKIP_VERIFY",
    "VAULT_NAMESPACE",
    "VAULT_TLS_SERVER_NAME",
    "VAULT_WRAP_TTL",
    "VAULT_MFA",
    "VAULT_MAX_RETRIES",
)

# Supervisor-internal settings: never forwarded.
_INTERNAL_VARS: tuple[str, ...] = (
    "VAULT_CLUSTER_ADDR",
    "VAULT_REDIRECT_ADDR",
    "VAULT_CLI_NO_COLOR",
    "VAULT_RATE_LIMIT",
    "VAULT_ROLE",
    "VAULT_PATH",
    "VAULT_AUTH_METHOD",
    "VAULT_TRANSIT_KEY_ID",
    "VAULT_TRANSIT_PATH",
    "VAULT_TRANSIT_BATCH_SIZE",
    "VAULT_IGNORE_MISSING_SECRETS",
    "VAULT_ENV_PASSTHROUGH",
    "VAULT_JSON_LOG",
    "VAULT_LOG_LEVEL",
    "VAULT_REVOKE_TOKEN",
    "VAULT_ENV_DAEMON",
    "VAULT_ENV_FROM_PATH",
    "VAULT_ENV_DELAY",
)

DEFAULT_RULES: Mapping[str, VisibilityRule] = {
    **{name: VisibilityRule(name, login_only=True) for name in _LOGIN_VARS},
    **{name: VisibilityRule(name, login_only=False) for name in _INTERNAL_VARS},
}
"""The built-in rule table.  Never mutated; policies copy it."""


class SanitizePolicy:
    """Per-run visibility table.

    Built once at startup from :data:`DEFAULT_RULES` minus the passthrough
    allow-list, then only read.

    Typical usage::

        policy = SanitizePolicy.build(passthrough=["VAULT_ADDR"])
        policy.rule_for("VAULT_ADDR")   # None -> always visible
        policy.rule_for("VAULT_ROLE")   # VisibilityRule(login_only=False)
    """

    __slots__ = ("_rules",)

    def __init__(self, rules: Mapping[str, VisibilityRule] | None = None) -> None:
        self._rules: dict[str, VisibilityRule] = dict(
            DEFAULT_RULES if rules is None else rules,
        )

    @classmethod
    def build(
        cls,
        passthrough: Iterable[str] = (),
        *,
        rules: Mapping[str, VisibilityRule] | None = None,
    ) -> SanitizePolicy:
        """Return a policy with every allow-listed name removed.

        Entries are trimmed; empty entries are ignored.  Removing a name
        that has no rule is a no-op, so the result does not depend on the
        order or repetition of *passthrough*.
        """
        policy = cls(rules)
        for name in passthrough:
            trimmed = name.strip()
            if trimmed:
                policy._rules.pop(trimmed, None)
        return policy

    def rule_for(self, name: str) -> VisibilityRule | None:
        """Return the rule governing *name*, or ``None`` if unmanaged."""
        return self._rules.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __len__(self) -> int:
        return len(self._rules)


class EnvironmentClassifier:
    """Decide whether a variable may reach the child process."""

    __slots__ = ("_policy",)

    def __init__(self, policy: SanitizePolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> SanitizePolicy:
        return self._policy

    def decide(self, name: str, login: bool) -> Visibility:
        """Classify *name* for a run in login mode (*login*) or not.

        Returns
        -------
        Visibility
            ``INCLUDE`` for unmanaged names and for ``login_only`` names in
            login mode, ``EXCLUDE`` otherwise.
        """
        rule = self._policy.rule_for(name)
        if rule is None:
            return Visibility.INCLUDE
        if rule.login_only and login:
            return Visibility.INCLUDE
        return Visibility.EXCLUDE
