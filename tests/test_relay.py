"""Tests for SignalRelay dispatch and handler installation."""
from __future__ import annotations

import asyncio
import logging
import os
import signal

import pytest

from vault_env.core.types import RequestKind, TerminationRequest
from vault_env.supervisor.relay import SignalRelay, relayable_signals


class FakeProcess:
    """Records the signals it receives."""

    def __init__(self, *, fail: bool = False) -> None:
        self.returncode: int | None = None
        self.received: list[int] = []
        self._fail = fail

    def send_signal(self, sig: int) -> None:
        if self._fail:
            raise ProcessLookupError("no such process")
        self.received.append(sig)


def _relay(process: FakeProcess | None = None) -> tuple[SignalRelay, asyncio.Queue, asyncio.Event]:
    requests: asyncio.Queue[TerminationRequest | None] = asyncio.Queue()
    exited = asyncio.Event()
    relay = SignalRelay(requests, exited)
    if process is not None:
        relay.attach(process)
    return relay, requests, exited


class TestRelayableSignals:
    def test_excludes_uncatchable_and_child_status(self) -> None:
        signals = relayable_signals()
        for sig in (signal.SIGKILL, signal.SIGSTOP, signal.SIGCHLD):
            assert sig not in signals

    def test_includes_common_signals(self) -> None:
        signals = relayable_signals()
        for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP, signal.SIGURG):
            assert sig in signals


class TestDispatch:
    """SignalRelay.dispatch delivery rules."""

    def test_forwards_signal(self) -> None:
        proc = FakeProcess()
        relay, _, _ = _relay(proc)

        assert relay.dispatch(TerminationRequest.relay(signal.SIGHUP)) is True
        assert proc.received == [signal.SIGHUP]

    def test_dropped_without_process(self) -> None:
        relay, _, _ = _relay()
        assert relay.dispatch(TerminationRequest.relay(signal.SIGHUP)) is False

    def test_dropped_after_exit_event(self) -> None:
        proc = FakeProcess()
        relay, _, exited = _relay(proc)
        exited.set()

        assert relay.dispatch(TerminationRequest.relay(signal.SIGTERM)) is False
        assert proc.received == []

    def test_dropped_after_reap(self) -> None:
        proc = FakeProcess()
        proc.returncode = 0
        relay, _, _ = _relay(proc)

        assert relay.dispatch(TerminationRequest.lease_expired("db", signal.SIGKILL)) is False
        assert proc.received == []

    def test_forward_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="vault_env")
        relay, _, _ = _relay(FakeProcess(fail=True))

        assert relay.dispatch(TerminationRequest.relay(signal.SIGHUP)) is False
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "failed to signal process" in warnings[0].getMessage()
        assert warnings[0].signal == "SIGHUP"

    def test_urgent_signal_logged_at_debug(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="vault_env")
        relay, _, _ = _relay(FakeProcess())

        relay.dispatch(TerminationRequest.relay(signal.SIGURG))
        relay.dispatch(TerminationRequest.relay(signal.SIGHUP))

        received = [r for r in caplog.records if r.getMessage() == "received signal"]
        assert [(r.signal, r.levelno) for r in received] == [
            ("SIGURG", logging.DEBUG),
            ("SIGHUP", logging.INFO),
        ]

    def test_lease_request_logs_path(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="vault_env")
        relay, _, _ = _relay(FakeProcess())

        relay.dispatch(TerminationRequest.lease_expired("db/creds", signal.SIGTERM))

        record = next(r for r in caplog.records if r.getMessage() == "signalled process")
        assert record.path == "db/creds"
        assert record.signal == "SIGTERM"


class TestRun:
    @pytest.mark.asyncio
    async def test_dispatches_in_order_until_sentinel(self) -> None:
        proc = FakeProcess()
        relay, requests, _ = _relay(proc)
        for sig in (signal.SIGHUP, signal.SIGUSR1, signal.SIGTERM):
            requests.put_nowait(TerminationRequest.relay(sig))
        requests.put_nowait(None)

        await asyncio.wait_for(relay.run(), timeout=2.0)

        assert proc.received == [signal.SIGHUP, signal.SIGUSR1, signal.SIGTERM]

    @pytest.mark.asyncio
    async def test_requests_after_exit_are_dropped(self) -> None:
        proc = FakeProcess()
        relay, requests, exited = _relay(proc)
        requests.put_nowait(TerminationRequest.relay(signal.SIGHUP))
        requests.put_nowait(None)
        exited.set()

        await asyncio.wait_for(relay.run(), timeout=2.0)

        assert proc.received == []


class TestInstall:
    @pytest.mark.asyncio
    async def test_received_signal_becomes_request(self) -> None:
        relay, requests, _ = _relay()
        relay.install(asyncio.get_running_loop(), [signal.SIGUSR2])
        try:
            os.kill(os.getpid(), signal.SIGUSR2)
            request = await asyncio.wait_for(requests.get(), timeout=2.0)
        finally:
            relay.uninstall()

        assert request is not None
        assert request.kind is RequestKind.RELAY
        assert request.signal is signal.SIGUSR2

    @pytest.mark.asyncio
    async def test_uninstall_restores_previous_handler(self) -> None:
        def previous(signum: int, frame: object) -> None:
            pass

        original = signal.signal(signal.SIGUSR2, previous)
        try:
            relay, _, _ = _relay()
            relay.install(asyncio.get_running_loop(), [signal.SIGUSR2])
            assert relay.installed == [signal.SIGUSR2]
            relay.uninstall()

            assert signal.getsignal(signal.SIGUSR2) is previous
            assert relay.installed == []
        finally:
            signal.signal(signal.SIGUSR2, original)

    def test_uninstall_without_install_is_noop(self) -> None:
        relay, _, _ = _relay()
        relay.uninstall()
        assert relay.installed == []
