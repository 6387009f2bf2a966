"""Tests for environment sanitization.

1. **SanitizePolicy** -- default table contents, allow-list removal,
   idempotence and order independence.
2. **EnvironmentClassifier** -- include/exclude decisions for unmanaged,
   login-only and internal names.
3. **SanitizedEnvironment** -- accumulation of ``name=value`` entries.
4. **Scenarios** -- login and passthrough end-to-end behaviour.
5. **Injection** -- origin classes and injector callbacks.
"""
from __future__ import annotations

import itertools

import pytest

from vault_env.core.config import VAULT_LOGIN
from vault_env.core.errors import SecretNotFound
from vault_env.core.interfaces import SecretInjector, StaticSecretInjector
from vault_env.core.types import OriginClass, Visibility, VisibilityRule
from vault_env.sanitize import (
    DEFAULT_RULES,
    EnvironmentClassifier,
    SanitizedEnvironment,
    SanitizePolicy,
)

LOGIN_ONLY = sorted(name for name, rule in DEFAULT_RULES.items() if rule.login_only)
INTERNAL = sorted(name for name, rule in DEFAULT_RULES.items() if not rule.login_only)


def _classifier(*passthrough: str) -> EnvironmentClassifier:
    return EnvironmentClassifier(SanitizePolicy.build(passthrough))


# ===================================================================
# Policy
# ===================================================================


class TestSanitizePolicy:
    """Test SanitizePolicy construction."""

    def test_default_table_sizes(self) -> None:
        assert len(LOGIN_ONLY) == 15
        assert len(INTERNAL) == 18

    def test_connection_parameters_are_login_only(self) -> None:
        for name in ("VAULT_TOKEN", "VAULT_ADDR", "VAULT_NAMESPACE", "VAULT_CACERT"):
            assert DEFAULT_RULES[name].login_only is True

    def test_internal_settings_are_never_forwarded(self) -> None:
        for name in ("VAULT_ROLE", "VAULT_PATH", "VAULT_ENV_DAEMON", "VAULT_TRANSIT_KEY_ID"):
            assert DEFAULT_RULES[name].login_only is False

    def test_build_without_passthrough_copies_defaults(self) -> None:
        policy = SanitizePolicy.build()
        assert len(policy) == len(DEFAULT_RULES)
        assert policy.rule_for("VAULT_ROLE") == VisibilityRule("VAULT_ROLE", login_only=False)

    def test_passthrough_removes_rule(self) -> None:
        policy = SanitizePolicy.build(["VAULT_ROLE"])
        assert "VAULT_ROLE" not in policy
        assert policy.rule_for("VAULT_ROLE") is None

    def test_passthrough_entries_are_trimmed(self) -> None:
        policy = SanitizePolicy.build(["  VAULT_ADDR ", "", "   "])
        assert "VAULT_ADDR" not in policy
        assert len(policy) == len(DEFAULT_RULES) - 1

    def test_passthrough_of_unmanaged_name_is_noop(self) -> None:
        policy = SanitizePolicy.build(["NOT_MANAGED"])
        assert len(policy) == len(DEFAULT_RULES)

    def test_build_does_not_mutate_defaults(self) -> None:
        SanitizePolicy.build(["VAULT_ROLE", "VAULT_ADDR"])
        assert "VAULT_ROLE" in DEFAULT_RULES
        assert "VAULT_ADDR" in DEFAULT_RULES

    def test_custom_rules(self) -> None:
        rules = {"SECRET_CONF": VisibilityRule("SECRET_CONF", login_only=False)}
        policy = SanitizePolicy.build(rules=rules)
        assert len(policy) == 1
        assert "VAULT_ROLE" not in policy

    def test_allow_list_is_idempotent(self) -> None:
        once = SanitizePolicy.build(["VAULT_ROLE"])
        twice = SanitizePolicy.build(["VAULT_ROLE", "VAULT_ROLE"])
        assert len(once) == len(twice)
        assert all((name in once) == (name in twice) for name in DEFAULT_RULES)

    def test_allow_list_is_order_independent(self) -> None:
        names = ["VAULT_ROLE", "VAULT_ADDR", "VAULT_ENV_DELAY"]
        results = {
            frozenset(n for n in DEFAULT_RULES if n in SanitizePolicy.build(order))
            for order in itertools.permutations(names)
        }
        assert len(results) == 1


# ===================================================================
# Classifier
# ===================================================================


class TestEnvironmentClassifier:
    """Test EnvironmentClassifier.decide."""

    @pytest.mark.parametrize("login", [True, False])
    def test_unmanaged_names_always_included(self, login: bool) -> None:
        classifier = _classifier()
        for name in ("PATH", "HOME", "DB_PASSWORD", "VAULT_SOMETHING_NEW"):
            assert classifier.decide(name, login) is Visibility.INCLUDE

    def test_login_only_names_included_in_login_mode(self) -> None:
        classifier = _classifier()
        for name in LOGIN_ONLY:
            assert classifier.decide(name, True) is Visibility.INCLUDE

    def test_login_only_names_excluded_outside_login_mode(self) -> None:
        classifier = _classifier()
        for name in LOGIN_ONLY:
            assert classifier.decide(name, False) is Visibility.EXCLUDE

    @pytest.mark.parametrize("login", [True, False])
    def test_internal_names_never_included(self, login: bool) -> None:
        classifier = _classifier()
        for name in INTERNAL:
            assert classifier.decide(name, login) is Visibility.EXCLUDE

    @pytest.mark.parametrize("login", [True, False])
    def test_allow_listed_internal_name_always_included(self, login: bool) -> None:
        classifier = _classifier("VAULT_ROLE")
        assert classifier.decide("VAULT_ROLE", login) is Visibility.INCLUDE

    @pytest.mark.parametrize("login", [True, False])
    def test_allow_listed_login_only_name_always_included(self, login: bool) -> None:
        classifier = _classifier("VAULT_ADDR")
        assert classifier.decide("VAULT_ADDR", login) is Visibility.INCLUDE

    def test_exposes_policy(self) -> None:
        policy = SanitizePolicy.build()
        assert EnvironmentClassifier(policy).policy is policy


# ===================================================================
# Sanitized environment
# ===================================================================


class TestSanitizedEnvironment:
    """Test SanitizedEnvironment accumulation."""

    def test_append_included(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        env.append("PATH", "/usr/bin")
        assert env.entries == ["PATH=/usr/bin"]

    def test_append_excluded(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        env.append("VAULT_ROLE", "app")
        assert env.entries == []
        assert len(env) == 0

    def test_preserves_append_order(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        env.append("B", "2")
        env.append("A", "1")
        assert env.entries == ["B=2", "A=1"]

    def test_no_deduplication_of_unmanaged_names(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        env.append("A", "1")
        env.append("A", "2")
        assert env.entries == ["A=1", "A=2"]
        assert env.as_dict() == {"A": "2"}

    def test_value_with_equals_sign(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        env.append("DSN", "user=app password=x")
        assert env.as_dict() == {"DSN": "user=app password=x"}

    def test_entries_returns_copy(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        env.append("A", "1")
        env.entries.append("B=2")
        assert env.entries == ["A=1"]

    def test_contains(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=True)
        env.append("VAULT_ADDR", "https://vault:8200")
        assert "VAULT_ADDR" in env
        assert "VAULT" not in env

    def test_login_property(self) -> None:
        assert SanitizedEnvironment(_classifier(), login=True).login is True


# ===================================================================
# Scenarios
# ===================================================================


class TestScenarios:
    """End-to-end sanitization scenarios."""

    def test_login_mode_hides_role_and_forwards_token_placeholder(self) -> None:
        env = SanitizedEnvironment(_classifier("VAULT_TOKEN"), login=True)
        for name, value in {
            "VAULT_ROLE": "foo",
            "VAULT_TOKEN": VAULT_LOGIN,
            "VAULT_ADDR": "https://vault:8200",
            "APP_MODE": "prod",
        }.items():
            env.append(name, value)

        result = env.as_dict()
        assert "VAULT_ROLE" not in result
        assert result["VAULT_TOKEN"] == VAULT_LOGIN
        assert result["VAULT_ADDR"] == "https://vault:8200"
        assert result["APP_MODE"] == "prod"

    def test_passthrough_exposes_login_only_name_outside_login(self) -> None:
        env = SanitizedEnvironment(_classifier("VAULT_ADDR"), login=False)
        env.append("VAULT_ADDR", "https://vault:8200")
        env.append("VAULT_TOKEN", "s.abc")
        assert env.as_dict() == {"VAULT_ADDR": "https://vault:8200"}

    def test_token_hidden_outside_login_mode(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        env.append("VAULT_TOKEN", "s.abc")
        assert "VAULT_TOKEN" not in env


# ===================================================================
# Injection through the sanitized environment
# ===================================================================


class TestInjection:
    """The sanitized environment as an injector callback."""

    def test_origin_classes(self) -> None:
        env = SanitizedEnvironment(_classifier("VAULT_ADDR"), login=False)
        env.append("VAULT_ADDR", "https://vault:8200")
        env.append("APP_MODE", "prod")

        origins = {v.name: v.origin_class for v in env.variables}
        assert origins == {
            "VAULT_ADDR": OriginClass.CREDENTIAL_SENSITIVE,
            "APP_MODE": OriginClass.REGULAR,
        }

    @pytest.mark.asyncio
    async def test_injected_values_are_classified(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        injector = StaticSecretInjector({"DB_PASS": "s3cret"})

        await injector.inject_secrets_from_vault(
            {"DB_PASS": "vault:secret/db#password", "VAULT_ROLE": "app", "HOME": "/root"},
            env.append,
        )

        assert env.as_dict() == {"DB_PASS": "s3cret", "HOME": "/root"}

    @pytest.mark.asyncio
    async def test_path_injection(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        injector = StaticSecretInjector(paths={"secret/app": {"A": "1", "VAULT_PATH": "x"}})

        await injector.inject_secrets_from_vault_path("secret/app", env.append)

        assert env.as_dict() == {"A": "1"}

    @pytest.mark.asyncio
    async def test_unknown_path(self) -> None:
        env = SanitizedEnvironment(_classifier(), login=False)
        with pytest.raises(SecretNotFound):
            await StaticSecretInjector().inject_secrets_from_vault_path("secret/none", env.append)

    def test_static_injector_satisfies_protocol(self) -> None:
        assert isinstance(StaticSecretInjector(), SecretInjector)
