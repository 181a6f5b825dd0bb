"""Tests for the readiness prober."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from libvirt_ch_harness.config import GuestConfig
from libvirt_ch_harness.exceptions import BootTimeoutError, RemoteCommandError, RemoteConnectionError
from libvirt_ch_harness.readiness import (
    ImageClass,
    ProbeState,
    ReadinessProber,
)
from libvirt_ch_harness.remote import RemoteCommandExecutor


class StubExecutor:
    """Fails the first ``failures`` calls, then succeeds."""

    def __init__(self, failures, error=None):
        self.failures = failures
        self.error = error or RemoteConnectionError("connection refused", attempts=1)
        self.calls = []

    def execute(self, command, address, retries, timeout):
        self.calls.append((command, address, retries, timeout))
        if len(self.calls) <= self.failures:
            raise self.error
        return ""


@pytest.fixture
def sleeps():
    return []


class TestReadinessProber:
    """Tests for ReadinessProber."""

    @pytest.mark.parametrize("failures", [0, 1, 4, 9])
    def test_ready_after_k_plus_one_attempts(self, failures, sleeps):
        executor = StubExecutor(failures)
        prober = ReadinessProber(executor, retries=10, interval=3.0, sleep=sleeps.append)

        result = prober.wait("192.168.1.2")

        assert result.state == ProbeState.READY
        assert result.attempts == failures + 1
        assert prober.state == ProbeState.READY
        assert len(executor.calls) == failures + 1
        assert sleeps == [3.0] * failures

    def test_times_out_after_exactly_retries_attempts(self, sleeps):
        executor = StubExecutor(failures=1000)
        prober = ReadinessProber(executor, retries=5, interval=1.0, sleep=sleeps.append)

        with pytest.raises(BootTimeoutError) as exc_info:
            prober.wait("192.168.1.2")

        assert exc_info.value.attempts == 5
        assert len(executor.calls) == 5
        assert prober.state == ProbeState.TIMED_OUT
        # fixed interval, no sleep after the final attempt
        assert sleeps == [1.0] * 4

    def test_command_failures_count_as_attempts(self, sleeps):
        executor = StubExecutor(failures=2, error=RemoteCommandError("false", exit_status=1))
        prober = ReadinessProber(executor, retries=3, sleep=sleeps.append)

        assert prober.wait("192.168.1.2").attempts == 3

    def test_probe_arguments(self, sleeps):
        executor = StubExecutor(failures=0)
        prober = ReadinessProber(
            executor,
            command="systemctl is-system-running",
            connect_retries=3,
            timeout=4.0,
            sleep=sleeps.append,
        )

        prober.wait("192.168.7.2")

        assert executor.calls == [("systemctl is-system-running", "192.168.7.2", 3, 4.0)]

    def test_unexpected_errors_propagate(self, sleeps):
        """Test only harness errors are treated as failed attempts."""
        executor = StubExecutor(failures=1, error=KeyError("bug"))
        prober = ReadinessProber(executor, retries=3, sleep=sleeps.append)

        with pytest.raises(KeyError):
            prober.wait("192.168.1.2")
        assert len(executor.calls) == 1

    def test_invalid_retries(self):
        with pytest.raises(ValueError):
            ReadinessProber(StubExecutor(0), retries=0)
        with pytest.raises(ValueError):
            ReadinessProber(StubExecutor(0), connect_retries=0)

    def test_connection_failures_absorbed_within_attempt(self, sleeps):
        """Test transient SSH failures do not use up probe attempts."""
        conn = MagicMock()
        conn.run = AsyncMock(return_value=SimpleNamespace(exit_status=0, stdout="", stderr=""))
        conn.wait_closed = AsyncMock()
        connect = AsyncMock(side_effect=[ConnectionRefusedError("refused"), OSError("no route to host"), conn])

        executor = RemoteCommandExecutor("cloud", "cloud123", connect_interval=0.5, sleep=sleeps.append)
        prober = ReadinessProber(executor, retries=1, connect_retries=3, sleep=sleeps.append)

        with patch("libvirt_ch_harness.remote.asyncssh.connect", connect):
            result = prober.wait("192.168.1.2")

        assert result.state == ProbeState.READY
        assert result.attempts == 1
        assert connect.await_count == 3
        assert sleeps == [0.5, 0.5]

    def test_for_image_class(self, sleeps):
        guest = GuestConfig(retries=3, heavy_retries=8, timeout=2.0, interval=0.5, probe_command="id", connect_retries=2)

        standard = ReadinessProber.for_image_class(StubExecutor(0), guest, sleep=sleeps.append)
        heavy = ReadinessProber.for_image_class(StubExecutor(0), guest, ImageClass.HEAVY)
        override = ReadinessProber.for_image_class(StubExecutor(0), guest, ImageClass.HEAVY, retries=2)

        assert standard.retries == 3
        assert standard.command == "id"
        assert standard.timeout == 2.0
        assert standard.interval == 0.5
        assert heavy.retries == 8
        assert override.retries == 2
        assert standard.connect_retries == guest.connect_retries

    def test_prober_can_be_reused(self, sleeps):
        executor = StubExecutor(failures=2)
        prober = ReadinessProber(executor, retries=2, sleep=sleeps.append)

        with pytest.raises(BootTimeoutError):
            prober.wait("192.168.1.2")

        result = prober.wait("192.168.1.2")
        assert result.state == ProbeState.READY
        assert result.attempts == 1
