"""
XML template generator for cloud-hypervisor libvirt domains.

This module turns a test's intent (identity, vCPU topology, memory, disks,
network plan and boot mode) into the domain XML consumed by ``virsh``.
It performs no I/O: writing the document is the orchestrator's job.
"""

import xml.etree.ElementTree as ET
from xml.dom import minidom

from .models import (
    BootMode,
    DirectBoot,
    DiskSet,
    DomainDescriptor,
    NetworkPlan,
    TestIdentity,
    VcpuTopology,
)

MAX_MEMORY_BYTES = (1 << 64) - 1


class DomainXMLGenerator:
    """Generator for ``ch`` domain XML descriptors."""

    def __init__(self):
        """Initialize the generator with default settings."""
        self.default_settings = {
            "domain_type": "ch",
            "os_type": "hvm",
            "disk_bus": "virtio",
            "os_disk_target": "vda",
            "seed_disk_target": "vdb",
            "console_target": "virtio",
            "network_model": "virtio",
            "host_prefix": "24",
        }

    def build(
        self,
        identity: TestIdentity,
        vcpu: VcpuTopology,
        memory_bytes: int,
        disks: DiskSet,
        plan: NetworkPlan,
        boot_mode: BootMode,
    ) -> DomainDescriptor:
        """Build the domain descriptor of one test's guest."""
        if not 0 <= memory_bytes <= MAX_MEMORY_BYTES:
            raise ValueError(f"memory_bytes must be an unsigned 64-bit value, got {memory_bytes}")

        domain = ET.Element("domain", type=self.default_settings["domain_type"])

        # Identity
        ET.SubElement(domain, "name").text = identity.name
        ET.SubElement(domain, "uuid").text = identity.uuid
        ET.SubElement(domain, "title").text = f"Test VM {identity.name}"
        ET.SubElement(domain, "description").text = f"Test VM {identity.name}"

        domain.append(self._generate_os_config(boot_mode))

        memory = ET.SubElement(domain, "memory", unit="b")
        memory.text = str(memory_bytes)

        # current= is the boot count, the element text the hotplug maximum
        vcpu_elem = ET.SubElement(domain, "vcpu", placement="static", current=str(vcpu.boot_count))
        vcpu_elem.text = str(vcpu.max_count)

        domain.append(self._generate_devices(disks, plan))

        return DomainDescriptor(
            name=identity.name,
            uuid=identity.uuid,
            xml=self._prettify_xml(domain),
        )

    def _generate_os_config(self, boot_mode: BootMode) -> ET.Element:
        os_elem = ET.Element("os")

        type_elem = ET.SubElement(os_elem, "type")
        type_elem.text = self.default_settings["os_type"]

        kernel = ET.SubElement(os_elem, "kernel")
        if isinstance(boot_mode, DirectBoot):
            kernel.text = boot_mode.kernel_path
            cmdline = ET.SubElement(os_elem, "cmdline")
            cmdline.text = boot_mode.cmdline
        else:
            kernel.text = boot_mode.firmware_path

        return os_elem

    def _generate_devices(self, disks: DiskSet, plan: NetworkPlan) -> ET.Element:
        devices = ET.Element("devices")

        devices.append(self._generate_disk_device(disks.os_disk_path, self.default_settings["os_disk_target"]))
        devices.append(self._generate_disk_device(disks.seed_disk_path, self.default_settings["seed_disk_target"]))
        devices.append(self._generate_console_device())
        devices.append(self._generate_network_device(plan.guest_mac, plan.host_ip))

        return devices

    def _generate_disk_device(self, path: str, target_dev: str) -> ET.Element:
        disk = ET.Element("disk", type="file")
        ET.SubElement(disk, "source", file=path)
        ET.SubElement(disk, "target", dev=target_dev, bus=self.default_settings["disk_bus"])
        return disk

    def _generate_console_device(self) -> ET.Element:
        console = ET.Element("console", type="pty")
        ET.SubElement(console, "target", type=self.default_settings["console_target"], port="0")
        return console

    def _generate_network_device(self, mac: str, host_ip: str) -> ET.Element:
        interface = ET.Element("interface", type="ethernet")
        ET.SubElement(interface, "mac", address=mac)
        ET.SubElement(interface, "model", type=self.default_settings["network_model"])
        source = ET.SubElement(interface, "source")
        ET.SubElement(source, "ip", address=host_ip, prefix=self.default_settings["host_prefix"])
        return interface

    def _prettify_xml(self, element: ET.Element) -> str:
        """Pretty print XML with proper indentation."""
        rough_string = ET.tostring(element, encoding='unicode')
        reparsed = minidom.parseString(rough_string)
        return reparsed.toprettyxml(indent="  ")[23:]  # Remove XML declaration
