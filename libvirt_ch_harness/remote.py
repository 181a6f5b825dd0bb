"""
Remote command execution over SSH.

Each call opens a fresh asyncssh session to the guest, runs one command and
returns its trimmed standard output. Failures to establish the session (the
guest network stack not being up yet, sshd not listening) are retried here;
a command that runs and fails is reported immediately.
"""

import asyncio
import time
from typing import Protocol

import asyncssh

from .exceptions import OutputParseError, RemoteCommandError, RemoteConnectionError
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_SSH_RETRIES = 6
DEFAULT_SSH_TIMEOUT = 10.0


def parse_int_output(command: str, output: str) -> int:
    """Parse a command's output as an integer."""
    try:
        return int(output.strip())
    except ValueError:
        raise OutputParseError(f"Expected an integer from {command!r}, got {output!r}", output)


class CommandExecutor(Protocol):
    """Anything that can run a command on a guest address."""

    def execute(self, command: str, address: str, retries: int, timeout: float) -> str:
        ...


class RemoteCommandExecutor:
    """Blocking SSH command runner with its own connection retry budget."""

    def __init__(
        self,
        user: str,
        password: str,
        port: int = 22,
        connect_interval: float = 1.0,
        sleep=time.sleep,
    ):
        self.user = user
        self.password = password
        self.port = port
        self.connect_interval = connect_interval
        self._sleep = sleep

    @classmethod
    def from_config(cls, guest_config) -> "RemoteCommandExecutor":
        return cls(
            user=guest_config.user,
            password=guest_config.password,
            port=guest_config.port,
            connect_interval=guest_config.connect_interval,
        )

    def execute(
        self,
        command: str,
        address: str,
        retries: int = DEFAULT_SSH_RETRIES,
        timeout: float = DEFAULT_SSH_TIMEOUT,
    ) -> str:
        """Run ``command`` on ``address`` and return its trimmed stdout."""
        if retries < 1:
            raise ValueError(f"retries must be at least 1, got {retries}")

        last_error = None
        for attempt in range(1, retries + 1):
            try:
                return asyncio.run(self._execute_once(command, address, timeout))
            except RemoteConnectionError as e:
                last_error = e
                logger.debug(
                    "SSH connection to {} failed (attempt {}/{}): {}",
                    address, attempt, retries, e,
                )
                if attempt < retries:
                    self._sleep(self.connect_interval)

        raise RemoteConnectionError(
            f"Could not connect to {address} after {retries} attempts: {last_error}",
            attempts=retries,
            details={"address": address, "command": command},
        )

    def execute_int(
        self,
        command: str,
        address: str,
        retries: int = DEFAULT_SSH_RETRIES,
        timeout: float = DEFAULT_SSH_TIMEOUT,
    ) -> int:
        """Run ``command`` and parse its output as an integer."""
        return parse_int_output(command, self.execute(command, address, retries, timeout))

    async def _execute_once(self, command: str, address: str, timeout: float) -> str:
        try:
            conn = await asyncssh.connect(
                address,
                port=self.port,
                username=self.user,
                password=self.password,
                known_hosts=None,  # every test guest has a fresh host key
                connect_timeout=timeout,
            )
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
            raise RemoteConnectionError(str(e) or type(e).__name__, attempts=1)

        try:
            try:
                result = await asyncio.wait_for(conn.run(command, check=False), timeout)
            except asyncio.TimeoutError:
                raise RemoteCommandError(f"{command!r} on {address} timed out after {timeout}s", exit_status=-1)

            if result.exit_status != 0:
                raise RemoteCommandError(
                    f"{command!r} on {address} exited with {result.exit_status}",
                    exit_status=result.exit_status,
                    stderr=str(result.stderr or ""),
                )
            return str(result.stdout or "").strip()
        finally:
            conn.close()
            await conn.wait_closed()
