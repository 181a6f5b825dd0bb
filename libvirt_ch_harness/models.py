"""
Data models for libvirt-ch-harness.

This module defines Pydantic models for the per-test resources the harness
hands around: identities, network plans, vCPU topologies, boot modes, disk
sets, domain descriptors and CLI results. All of them are immutable once
built.
"""

from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import CommandFailedError


class TestIdentity(BaseModel):
    """Identity of one test's guest."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(frozen=True)

    numeric_id: int = Field(description="Globally unique id among live tests", ge=1, le=255)
    name: str = Field(description="Domain name")
    uuid: str = Field(description="Domain UUID")


class NetworkPlan(BaseModel):
    """Deterministic addresses and ports assigned to one test."""

    model_config = ConfigDict(frozen=True)

    subnet_class: str = Field(description="First two octets shared by all tests")
    guest_ip: str = Field(description="Primary guest address (<class>.<id>.2)")
    host_ip: str = Field(description="Host side address (<class>.<id>.1)")
    l2_guest_ips: List[str] = Field(description="Secondary guest addresses (.3, .4, .5)")
    guest_mac: str = Field(description="Primary guest MAC")
    l2_guest_macs: List[str] = Field(description="Secondary guest MACs")
    tcp_listener_port: int = Field(description="Host listener port for this test")


class VcpuTopology(BaseModel):
    """Boot and maximum vCPU counts."""

    model_config = ConfigDict(frozen=True)

    boot_count: int = Field(description="vCPUs online at boot", ge=1)
    max_count: int = Field(description="Maximum hotpluggable vCPUs", ge=1)

    @model_validator(mode="after")
    def check_counts(self):
        if self.boot_count > self.max_count:
            raise ValueError(
                f"boot_count ({self.boot_count}) exceeds max_count ({self.max_count})"
            )
        return self


class DirectBoot(BaseModel):
    """Boot a raw kernel image with an explicit command line."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["direct"] = "direct"
    kernel_path: str = Field(description="Resolved kernel image path")
    cmdline: str = Field(description="Kernel command line")


class FirmwareBoot(BaseModel):
    """Boot through a firmware image that finds the boot disk itself."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["firmware"] = "firmware"
    firmware_path: str = Field(description="Resolved firmware image path")


BootMode = Union[DirectBoot, FirmwareBoot]


class DiskSet(BaseModel):
    """Disks produced by a provisioner for one guest."""

    model_config = ConfigDict(frozen=True)

    os_disk_path: str = Field(description="Operating system disk")
    seed_disk_path: str = Field(description="cloud-init seed disk")


class DomainDescriptor(BaseModel):
    """Serialized domain XML submitted to the daemon."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Domain name")
    uuid: str = Field(description="Domain UUID")
    xml: str = Field(description="Domain XML document")


class CommandResult(BaseModel):
    """Exit status and captured output of one CLI invocation."""

    model_config = ConfigDict(frozen=True)

    args: List[str] = Field(description="Full argument vector")
    returncode: int = Field(description="Process exit status")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return self.stdout + self.stderr

    def check(self) -> "CommandResult":
        """Raise CommandFailedError unless the command succeeded."""
        if not self.success:
            raise CommandFailedError(
                f"Command {' '.join(self.args)} exited with {self.returncode}",
                returncode=self.returncode,
                output=self.output,
            )
        return self


class DomainState(str, Enum):
    """Domain states as printed by ``virsh list``."""

    RUNNING = "running"
    IDLE = "idle"
    PAUSED = "paused"
    IN_SHUTDOWN = "in shutdown"
    SHUT_OFF = "shut off"
    CRASHED = "crashed"
    PMSUSPENDED = "pmsuspended"
    UNKNOWN = "unknown"


class DomainListEntry(BaseModel):
    """One row of ``virsh list --all``."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = Field(description="Domain id (None if inactive)")
    name: str = Field(description="Domain name")
    state: DomainState = Field(description="Current domain state")


def parse_domain_list(output: str) -> List[DomainListEntry]:
    """Parse the table printed by ``virsh list``."""
    entries = []
    for line in output.splitlines():
        line = line.strip()
        # header and the dashed rule; inactive rows also start with "-"
        if not line or line.startswith("Id") or set(line) == {"-"}:
            continue

        parts = line.split(None, 2)
        if len(parts) < 3:
            continue

        raw_id, name, raw_state = parts
        try:
            state = DomainState(raw_state.strip())
        except ValueError:
            state = DomainState.UNKNOWN

        entries.append(DomainListEntry(
            id=None if raw_id == "-" else int(raw_id),
            name=name,
            state=state,
        ))
    return entries
