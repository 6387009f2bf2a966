"""Child environment accumulation.

The :class:`SanitizedEnvironment` collects the variables the child process
will see.  It is the inject callback handed to the
:class:`~vault_env.core.interfaces.SecretInjector`, so every variable the
injector reports flows through the classifier exactly once.
"""
from __future__ import annotations

from vault_env.core.types import EnvironmentVariable, OriginClass, Visibility
from vault_env.sanitize.policy import DEFAULT_RULES, EnvironmentClassifier


def _origin(name: str) -> OriginClass:
    # Store settings stay sensitive even when allow-listed through.
    if name in DEFAULT_RULES:
        return OriginClass.CREDENTIAL_SENSITIVE
    return OriginClass.REGULAR


class SanitizedEnvironment:
    """Append-only list of variables for the child.

    Typical usage::

        sanitized = SanitizedEnvironment(classifier, login=False)
        await injector.inject_secrets_from_vault(environ, sanitized.append)
        os.execve(binary, argv, sanitized.as_dict())
    """

    def __init__(self, classifier: EnvironmentClassifier, *, login: bool) -> None:
        self._classifier = classifier
        self._login = login
        self._variables: list[EnvironmentVariable] = []

    @property
    def login(self) -> bool:
        return self._login

    @property
    def variables(self) -> list[EnvironmentVariable]:
        """A copy of the accumulated variables, in append order."""
        return list(self._variables)

    @property
    def entries(self) -> list[str]:
        """The accumulated variables rendered as ``name=value``."""
        return [str(variable) for variable in self._variables]

    def append(self, name: str, value: str) -> None:
        """Append ``name=value`` if the classifier includes *name*."""
        if self._classifier.decide(name, self._login) is Visibility.INCLUDE:
            self._variables.append(EnvironmentVariable(name, value, _origin(name)))

    def as_dict(self) -> dict[str, str]:
        """Return the variables as a mapping; later entries win."""
        return {variable.name: variable.value for variable in self._variables}

    def __contains__(self, name: object) -> bool:
        return any(variable.name == name for variable in self._variables)

    def __len__(self) -> int:
        return len(self._variables)
