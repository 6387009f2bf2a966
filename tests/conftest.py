"""Shared fixtures for vault-env tests.

Provides a scriptable fake Vault server (served through
``httpx.MockTransport``), common secrets, and a reset of the package
logger so ``caplog`` keeps working after ``configure_logging`` ran.
"""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator
from typing import Any

import httpx
import pytest

from vault_env.core.types import Secret

VAULT_ADDR = "http://vault.test:8200"


class FakeVault:
    """In-memory Vault API.

    Routes are keyed by ``(method, path)`` where *path* excludes ``/v1/``.
    Each route holds a queue of ``(status, body)`` responses; the last one
    is repeated once the queue is drained.  Unknown routes answer 404.
    Arrival times (``time.monotonic``) are kept alongside the requests.
    """

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], list[tuple[int, Any]]] = {}
        self.requests: list[httpx.Request] = []
        self.times: list[float] = []

    def add(self, method: str, path: str, *responses: tuple[int, Any]) -> None:
        self._routes[(method.upper(), path.strip("/"))] = list(responses)

    def add_secret(self, path: str, data: dict[str, Any], **fields: Any) -> None:
        self.add("GET", path, (200, {"request_id": "req", "data": data, **fields}))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method.upper() and r.url.path == f"/v1/{path.strip('/')}"
        ]

    def call_times(self, method: str, path: str) -> list[float]:
        target = f"/v1/{path.strip('/')}"
        return [
            at for r, at in zip(self.requests, self.times, strict=True)
            if r.method == method.upper() and r.url.path == target
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.times.append(time.monotonic())
        key = (request.method, request.url.path.removeprefix("/v1/"))
        queue = self._routes.get(key)
        if not queue:
            return httpx.Response(404, json={"errors": []})
        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def request_json(request: httpx.Request) -> dict[str, Any]:
    return json.loads(request.content or b"{}")


@pytest.fixture()
def fake_vault() -> FakeVault:
    return FakeVault()


@pytest.fixture()
def renewable_secret() -> Secret:
    return Secret(
        lease_id="database/creds/app/abc",
        renewable=True,
        lease_duration=60,
        data={"username": "app", "password": "pw"},
    )


@pytest.fixture()
def static_secret() -> Secret:
    return Secret(
        lease_id="aws/creds/app/xyz",
        renewable=False,
        lease_duration=1,
        data={"access_key": "AKIA"},
    )


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger("vault_env")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
