"""
One test's guest: identity, network plan, disks and domain descriptor.

A ``Guest`` allocates its id, derives its network plan, gets its disks from
the configured provisioner inside a private temp directory, and writes its
domain descriptor there. It also wraps the readiness probe and the remote
commands tests run against it.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Optional

from .allocator import ResourceAllocator
from .config import Config
from .logging import LogContext, get_logger
from .models import BootMode, DomainDescriptor, TestIdentity, VcpuTopology
from .network import plan_network
from .orchestrator import ProcessOrchestrator
from .provisioning import BootImageResolver, DiskProvisioner, provisioner_from_config
from .readiness import ImageClass, ProbeResult, ReadinessProber
from .remote import CommandExecutor, RemoteCommandExecutor, parse_int_output
from .xml_templates import DomainXMLGenerator

logger = get_logger(__name__)

DEFAULT_MEMORY_BYTES = 1 << 30
TMP_DIR_PREFIX = "ch"


class Guest:
    """Everything one test needs to boot and talk to a VM."""

    def __init__(
        self,
        config: Config,
        allocator: ResourceAllocator,
        orchestrator: ProcessOrchestrator,
        provisioner: Optional[DiskProvisioner] = None,
        executor: Optional[CommandExecutor] = None,
        identity: Optional[TestIdentity] = None,
        tmp_root: str = "/tmp",
    ):
        self.config = config
        self.orchestrator = orchestrator
        self.identity = identity or allocator.new_identity()
        self.network = plan_network(
            config.network.subnet_class,
            self.identity.numeric_id,
            config.network.base_port,
        )
        self.boot_images = BootImageResolver(config.workloads)
        self.executor = executor or RemoteCommandExecutor.from_config(config.guest)
        self.generator = DomainXMLGenerator()

        self.tmp_dir = Path(tempfile.mkdtemp(prefix=TMP_DIR_PREFIX, dir=tmp_root))
        try:
            self.disks = (provisioner or provisioner_from_config(config)).prepare(self.tmp_dir, self.network)
        except Exception:
            self.cleanup()
            raise

        with self._log_context() as log:
            log.info("{} (id {}) at {} in {}", self.name, self.identity.numeric_id, self.network.guest_ip, self.tmp_dir)

    @property
    def name(self) -> str:
        return self.identity.name

    def _log_context(self) -> LogContext:
        return LogContext(name=__name__, vm=self.identity.name, test_id=self.identity.numeric_id)

    def build_descriptor(
        self,
        memory_bytes: int = DEFAULT_MEMORY_BYTES,
        vcpu: Optional[VcpuTopology] = None,
        boot_mode: Optional[BootMode] = None,
    ) -> DomainDescriptor:
        """Build the domain descriptor; defaults to one vCPU and rust firmware."""
        return self.generator.build(
            self.identity,
            vcpu or VcpuTopology(boot_count=1, max_count=1),
            memory_bytes,
            self.disks,
            self.network,
            boot_mode or self.boot_images.firmware_boot(),
        )

    def create_domain(
        self,
        memory_bytes: int = DEFAULT_MEMORY_BYTES,
        vcpu: Optional[VcpuTopology] = None,
        boot_mode: Optional[BootMode] = None,
    ) -> Path:
        """Write the domain descriptor into the temp dir and return its path."""
        descriptor = self.build_descriptor(memory_bytes, vcpu, boot_mode)
        return self.orchestrator.write_descriptor(descriptor, self.tmp_dir)

    def wait_vm_boot(
        self,
        retries: Optional[int] = None,
        image_class: ImageClass = ImageClass.STANDARD,
    ) -> ProbeResult:
        prober = ReadinessProber.for_image_class(
            self.executor,
            self.config.guest,
            image_class=image_class,
            retries=retries,
        )
        with self._log_context() as log:
            log.info("Waiting for {} to boot ({} attempts)", self.name, prober.retries)
            return prober.wait(self.network.guest_ip)

    def ssh_command(self, command: str) -> str:
        return self.executor.execute(
            command,
            self.network.guest_ip,
            self.config.guest.connect_retries,
            self.config.guest.timeout,
        )

    def _ssh_int(self, command: str) -> int:
        return parse_int_output(command, self.ssh_command(command))

    def get_cpu_count(self) -> int:
        return self._ssh_int("grep -c processor /proc/cpuinfo")

    def get_total_memory_kib(self) -> int:
        return self._ssh_int("grep MemTotal /proc/meminfo | awk '{print $2}'")

    def cleanup(self) -> None:
        logger.debug("Removing {}", self.tmp_dir)
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
