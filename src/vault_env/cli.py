"""vault-env entrypoint.

``vault-env <command> [args...]`` resolves the secret references found in
its own environment, sanitizes the environment and then either becomes
``<command>`` (default) or, with ``VAULT_ENV_DAEMON=true``, runs it as a
supervised child.

Exit codes
----------
* ``0`` -- success (or the child's code in daemon mode).
* ``1`` -- startup, injection or spawn failure.
* ``N`` -- the child's own exit code in daemon mode.
* ``-1`` -- the child's status could not be determined.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import sys
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from pathlib import Path

import httpx

from vault_env.core.config import VAULT_LOGIN, VaultEnvConfig
from vault_env.core.errors import (
    BinaryNotFound,
    InjectionFailure,
    MissingEntrypoint,
    RevocationFailure,
    StartupError,
    StoreRequestFailure,
    TokenFileUnreadable,
    VaultEnvError,
)
from vault_env.logs import configure_logging
from vault_env.sanitize import EnvironmentClassifier, SanitizedEnvironment, SanitizePolicy
from vault_env.supervisor import DaemonSecretRenewer, ProcessSupervisor, replace_process
from vault_env.vault import (
    VaultClient,
    VaultLifetimeWatcherFactory,
    VaultSecretInjector,
    keep_token_alive,
)
from vault_env.vault.client import SERVICE_ACCOUNT_TOKEN_PATH

logger = logging.getLogger(__name__)

ExecFn = Callable[[str, Sequence[str], Mapping[str, str]], object]


def resolve_binary(command: str, environ: Mapping[str, str]) -> str:
    """Resolve *command* the way a shell would, using ``PATH`` from *environ*."""
    binary = shutil.which(command, path=environ.get("PATH", os.defpath))
    if binary is None:
        raise BinaryNotFound(details={"binary": command})
    return binary


def read_token_file(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise TokenFileUnreadable(details={"file": path}) from exc


async def _cancel(task: asyncio.Task[None]) -> None:
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


async def run(
    entrypoint: Sequence[str],
    config: VaultEnvConfig,
    *,
    environ: MutableMapping[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    jwt_path: str = SERVICE_ACCOUNT_TOKEN_PATH,
    exec_process: ExecFn = replace_process,
) -> int:
    """Inject secrets and launch *entrypoint*.

    In replace mode this only returns if *exec_process* does.

    Raises
    ------
    StartupError
        Missing entrypoint, unknown binary, unreadable token file, client
        or injection failure.
    SpawnError
        The child could not be started.
    """
    environ = os.environ if environ is None else environ
    if not entrypoint:
        raise MissingEntrypoint()
    binary = resolve_binary(entrypoint[0], environ)

    # The login procedure takes the token from a file (Vault Agent or the
    # webhook) or requests one for itself with role/path based auth.
    is_login = config.is_login
    token: str | None
    if config.token_file:
        token = read_token_file(config.token_file)
    elif is_login:
        environ.pop("VAULT_TOKEN", None)
        token = None
    else:
        token = config.vault_token or None

    client = await VaultClient.create(
        config, token=token, jwt_path=jwt_path, transport=transport,
    )
    token_keeper = asyncio.create_task(keep_token_alive(client))
    renewer: DaemonSecretRenewer | None = None
    try:
        passthrough = list(config.passthrough)
        if is_login:
            environ["VAULT_TOKEN"] = VAULT_LOGIN
            passthrough.append("VAULT_TOKEN")

        policy = SanitizePolicy.build(passthrough)
        sanitized = SanitizedEnvironment(EnvironmentClassifier(policy), login=is_login)

        if config.daemon_mode:
            renewer = DaemonSecretRenewer(VaultLifetimeWatcherFactory(client))
        injector = VaultSecretInjector(
            client,
            renewer=renewer,
            ignore_missing_secrets=config.ignore_missing_secrets,
        )

        try:
            await injector.inject_secrets_from_vault(dict(environ), sanitized.append)
        except StartupError as exc:
            raise InjectionFailure(
                f"failed to inject secrets from vault: {exc.message}",
                details=exc.details,
            ) from exc

        if config.from_path:
            try:
                await injector.inject_secrets_from_vault_path(
                    config.from_path, sanitized.append,
                )
            except StartupError as exc:
                raise InjectionFailure(
                    f"failed to inject secrets from vault path: {exc.message}",
                    details=exc.details,
                ) from exc

        if config.revoke_token:
            await _cancel(token_keeper)
            try:
                await client.revoke_self()
            except StoreRequestFailure as exc:
                # Revoking can be denied by policy.
                error = RevocationFailure(details={"error": exc.message})
                logger.warning(error.message, extra={"code": error.code, "error": exc.message})

        if config.delay_exec > 0:
            logger.info(f"sleeping for {config.delay_exec}s...")
            await asyncio.sleep(config.delay_exec)

        logger.info("spawning process", extra={"entrypoint": list(entrypoint)})

        if config.daemon_mode:
            logger.info("in daemon mode...")
            supervisor = ProcessSupervisor(
                binary,
                entrypoint,
                sanitized.as_dict(),
                base_env=environ,
                renewer=renewer,
            )
            return await supervisor.run()
    finally:
        await _cancel(token_keeper)
        if renewer is not None:
            await renewer.aclose()
        await client.close()

    exec_process(binary, entrypoint, sanitized.as_dict())
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Console entrypoint; returns the process exit status."""
    entrypoint = list(sys.argv[1:] if argv is None else argv)
    config = VaultEnvConfig.from_environ(os.environ)
    configure_logging(config)
    try:
        return asyncio.run(run(entrypoint, config))
    except VaultEnvError as exc:
        logger.error(exc.message, extra={"code": exc.code, "detail": exc.details})
        return exc.exit_code
