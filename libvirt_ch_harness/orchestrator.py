"""
Lifecycle orchestration of libvirtd and virsh.

The orchestrator spawns the daemon, runs short-lived ``virsh`` invocations
against a fixed connection URI, writes domain descriptors and wipes the
daemon's persisted state so that no test observes another test's residue.

Non-zero ``virsh`` exit codes are data, returned in a ``CommandResult`` for
the test to assert on. Failing to spawn a process at all means the
environment is broken and raises ``ProcessSpawnError``.
"""

import contextlib
import shutil
import subprocess
import time
from pathlib import Path
from typing import Iterator, List, Optional

from .config import Config
from .exceptions import ProcessSpawnError
from .logging import get_logger, log_performance
from .models import CommandResult, DomainDescriptor, DomainListEntry, parse_domain_list

logger = get_logger(__name__)

DESCRIPTOR_FILE_NAME = "domain.xml"


class DaemonProcess:
    """
    Exclusive handle on a spawned daemon.

    Only the owner may stop it. Stopping kills the process, waits for it
    and logs whatever it printed, whether or not the test passed.
    """

    def __init__(self, process: subprocess.Popen, args: List[str]):
        self.args = args
        self.attach(process)

    def attach(self, process: subprocess.Popen) -> None:
        """Take ownership of a freshly spawned process."""
        self.process = process
        self.stdout = ""
        self.stderr = ""
        self._stopped = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return not self._stopped and self.process.poll() is None

    def stop(self) -> Optional[int]:
        """Kill the daemon, wait for it and log its output."""
        if self._stopped:
            return self.process.returncode

        self._stopped = True
        if self.process.poll() is None:
            self.process.kill()
        stdout, stderr = self.process.communicate()
        self.stdout = stdout or ""
        self.stderr = stderr or ""

        logger.info(
            "{} (pid {}) exited with {}\n\nstdout\n\n{}\n\nstderr\n\n{}",
            self.args[0],
            self.process.pid,
            self.process.returncode,
            self.stdout,
            self.stderr,
        )
        return self.process.returncode

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


class ProcessOrchestrator:
    """Runs the daemon and CLI processes of one test."""

    def __init__(self, config: Config, sleep=time.sleep):
        self.config = config
        self._sleep = sleep

    @property
    def connection_uri(self) -> str:
        return self.config.daemon.uri

    def _popen_daemon(self) -> subprocess.Popen:
        args = [self.config.daemon.daemon_binary]
        try:
            process = subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            logger.error("Failed to spawn {}: {}", args[0], e)
            raise ProcessSpawnError(f"Failed to spawn {args[0]}: {e}", {"args": args})

        logger.info("Spawned {} (pid {})", args[0], process.pid)
        return process

    def spawn_daemon(self) -> DaemonProcess:
        """Start the daemon with captured stdout and stderr."""
        return DaemonProcess(self._popen_daemon(), [self.config.daemon.daemon_binary])

    @log_performance(threshold_ms=30000.0)
    def start_daemon(self) -> DaemonProcess:
        """Spawn the daemon and give it time to open its sockets."""
        daemon = self.spawn_daemon()
        self._sleep(self.config.daemon.startup_delay)
        return daemon

    def restart_daemon(self, daemon: DaemonProcess) -> DaemonProcess:
        """
        Kill the daemon and start a fresh one on the same persisted state.

        The new process is attached to the same handle, so whoever owns the
        handle (e.g. ``session()``) still stops it.
        """
        daemon.stop()
        daemon.attach(self._popen_daemon())
        self._sleep(self.config.daemon.startup_delay)
        return daemon

    def virsh(self, *args: str) -> CommandResult:
        """Run one ``virsh`` subcommand and wait for it."""
        argv = [self.config.daemon.client_binary, "-c", self.connection_uri, *[str(a) for a in args]]
        try:
            completed = subprocess.run(argv, capture_output=True, text=True)
        except OSError as e:
            logger.error("Failed to spawn {}: {}", argv[0], e)
            raise ProcessSpawnError(f"Failed to spawn {argv[0]}: {e}", {"args": argv})

        result = CommandResult(
            args=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        logger.debug(
            "{} -> {}\n\nstdout\n\n{}\n\nstderr\n\n{}",
            " ".join(argv),
            result.returncode,
            result.stdout,
            result.stderr,
        )
        return result

    def create(self, descriptor_path: Path) -> CommandResult:
        return self.virsh("create", str(descriptor_path))

    def define(self, descriptor_path: Path) -> CommandResult:
        return self.virsh("define", str(descriptor_path))

    def undefine(self, name: str) -> CommandResult:
        return self.virsh("undefine", name)

    def start(self, name: str) -> CommandResult:
        return self.virsh("start", name)

    def destroy(self, name: str) -> CommandResult:
        return self.virsh("destroy", name)

    def list_all(self) -> CommandResult:
        return self.virsh("list", "--all")

    def setvcpus(self, name: str, count: int) -> CommandResult:
        return self.virsh("setvcpus", name, str(count))

    def uri(self) -> CommandResult:
        return self.virsh("uri")

    def list_domains(self) -> List[DomainListEntry]:
        """Parsed rows of ``virsh list --all``; empty if the command failed."""
        result = self.list_all()
        if not result.success:
            logger.warning("virsh list --all exited with {}", result.returncode)
            return []
        return parse_domain_list(result.stdout)

    def write_descriptor(self, descriptor: DomainDescriptor, directory: Path) -> Path:
        """Write the descriptor into the test's private directory."""
        path = Path(directory) / DESCRIPTOR_FILE_NAME
        with open(path, "w", encoding="utf-8") as f:
            f.write(descriptor.xml)

        logger.debug("Domain {} descriptor written to {}\n{}", descriptor.name, path, descriptor.xml)
        return path

    def cleanup_state(self) -> None:
        """Remove persisted daemon state. Missing paths are fine."""
        for directory in self.config.daemon.state_dirs:
            shutil.rmtree(directory, ignore_errors=True)
        for pid_file in self.config.daemon.pid_files:
            Path(pid_file).unlink(missing_ok=True)

        logger.debug("Daemon state cleaned")

    @contextlib.contextmanager
    def session(self) -> Iterator[DaemonProcess]:
        """
        Run a test body against a fresh daemon.

        State is wiped before the daemon starts and again after it has been
        stopped, also when the body raises.
        """
        self.cleanup_state()
        daemon = self.start_daemon()
        try:
            yield daemon
        finally:
            daemon.stop()
            self.cleanup_state()
