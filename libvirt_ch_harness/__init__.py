"""
libvirt-ch-harness - integration test harness for libvirt's cloud-hypervisor driver

Allocates per-test network resources, builds domain descriptors, drives
libvirtd and virsh, and waits for guests to become reachable over SSH.
"""

__version__ = "0.3.0"
__description__ = "Integration test harness for the libvirt cloud-hypervisor driver"

# Export main classes and functions
from .allocator import ResourceAllocator
from .config import Config
from .exceptions import (
    AllocationExhaustedError,
    BootTimeoutError,
    CommandFailedError,
    ConfigurationError,
    HarnessError,
    OutputParseError,
    ProcessSpawnError,
    ProvisioningError,
    RemoteCommandError,
    RemoteConnectionError,
)
from .guest import Guest
from .models import (
    CommandResult,
    DirectBoot,
    DiskSet,
    DomainDescriptor,
    FirmwareBoot,
    NetworkPlan,
    TestIdentity,
    VcpuTopology,
)
from .network import plan_network
from .orchestrator import DaemonProcess, ProcessOrchestrator
from .readiness import ImageClass, ProbeState, ReadinessProber
from .remote import RemoteCommandExecutor
from .xml_templates import DomainXMLGenerator

__all__ = [
    "__version__",
    "__description__",
    "AllocationExhaustedError",
    "BootTimeoutError",
    "CommandFailedError",
    "CommandResult",
    "Config",
    "ConfigurationError",
    "DaemonProcess",
    "DirectBoot",
    "DiskSet",
    "DomainDescriptor",
    "DomainXMLGenerator",
    "FirmwareBoot",
    "Guest",
    "HarnessError",
    "ImageClass",
    "NetworkPlan",
    "OutputParseError",
    "ProbeState",
    "ProcessOrchestrator",
    "ProcessSpawnError",
    "ProvisioningError",
    "ReadinessProber",
    "RemoteCommandError",
    "RemoteCommandExecutor",
    "RemoteConnectionError",
    "ResourceAllocator",
    "TestIdentity",
    "VcpuTopology",
    "plan_network",
]
