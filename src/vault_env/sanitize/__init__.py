"""Environment sanitization.

* **SanitizePolicy** -- per-run table of visibility rules, minus the
  passthrough allow-list.
* **EnvironmentClassifier** -- include/exclude decision per variable name.
* **SanitizedEnvironment** -- accumulates the child environment from the
  classifier's decisions.

The core guarantee is:

    Variables needed only to *obtain* credentials never reach the process
    that *consumes* them, unless that process performs its own login or
    the operator allow-lists them.
"""
from __future__ import annotations

from vault_env.sanitize.environ import SanitizedEnvironment
from vault_env.sanitize.policy import (
    DEFAULT_RULES,
    EnvironmentClassifier,
    SanitizePolicy,
)

__all__ = [
    "DEFAULT_RULES",
    "EnvironmentClassifier",
    "SanitizePolicy",
    "SanitizedEnvironment",
]
