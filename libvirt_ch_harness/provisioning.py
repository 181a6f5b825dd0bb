"""
Guest disk provisioning and boot image resolution.

Provisioners turn a network plan into the two disks a guest boots from: the
operating system disk and a cloud-init seed disk carrying the plan's
addresses. Which provisioner runs is a configuration choice.

Host architecture only matters here: ``BootImageResolver`` is the single
place that maps a boot request to a kernel or firmware file, so the
descriptor builder never sees an architecture conditional.
"""

import platform
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Protocol

import yaml

from .config import Config, GuestConfig, WorkloadsConfig
from .exceptions import ConfigurationError, ProvisioningError
from .logging import get_logger
from .models import DirectBoot, DiskSet, FirmwareBoot, NetworkPlan

logger = get_logger(__name__)

DIRECT_KERNEL_BOOT_CMDLINE = "root=/dev/vda1 console=hvc0 rw systemd.journald.forward_to_console=1"

OS_DISK_NAME = "osdisk.img"
SEED_DISK_NAME = "cloudinit.img"


class DiskProvisioner(Protocol):
    """Anything that can produce the disks of one guest."""

    def prepare(self, work_dir: Path, plan: NetworkPlan) -> DiskSet:
        ...


def render_cloud_init(plan: NetworkPlan, guest: GuestConfig, hostname: str) -> dict:
    """Render user-data, meta-data and network-config for a guest."""
    user_data = {
        "users": [{
            "name": guest.user,
            "sudo": "ALL=(ALL) NOPASSWD:ALL",
            "lock_passwd": False,
            "shell": "/bin/bash",
        }],
        "chpasswd": {"expire": False, "list": f"{guest.user}:{guest.password}"},
        "ssh_pwauth": True,
    }
    meta_data = {
        "instance-id": hostname,
        "local-hostname": hostname,
    }
    network_config = {
        "version": 2,
        "ethernets": {
            "eth0": {
                "match": {"macaddress": plan.guest_mac},
                "set-name": "eth0",
                "addresses": [f"{plan.guest_ip}/24"],
                "gateway4": plan.host_ip,
            },
        },
    }
    for index, (mac, ip) in enumerate(zip(plan.l2_guest_macs, plan.l2_guest_ips), start=1):
        network_config["ethernets"][f"eth{index}"] = {
            "match": {"macaddress": mac},
            "set-name": f"eth{index}",
            "addresses": [f"{ip}/24"],
            "optional": True,
        }

    return {
        "user-data": "#cloud-config\n" + yaml.safe_dump(user_data, default_flow_style=False),
        "meta-data": yaml.safe_dump(meta_data, default_flow_style=False),
        "network-config": yaml.safe_dump(network_config, default_flow_style=False),
    }


def _run_tool(args: list) -> None:
    try:
        result = subprocess.run(args, capture_output=True, text=True)
    except OSError as e:
        raise ProvisioningError(f"Failed to run {args[0]}: {e}")

    if result.returncode != 0:
        raise ProvisioningError(
            f"{args[0]} exited with {result.returncode}",
            {"args": args, "stderr": result.stderr},
        )


class CloudImageProvisioner:
    """Copies a prebuilt cloud image and builds a cloud-init seed disk."""

    def __init__(self, workloads: WorkloadsConfig, guest: GuestConfig):
        self.workloads = workloads
        self.guest = guest

    @property
    def source_image(self) -> Path:
        return Path(self.workloads.workloads_dir) / self.workloads.os_image

    def prepare(self, work_dir: Path, plan: NetworkPlan) -> DiskSet:
        work_dir = Path(work_dir)
        source = self.source_image
        if not source.is_file():
            raise ProvisioningError(f"OS image not found: {source}")

        os_disk = work_dir / OS_DISK_NAME
        logger.info("Copying {} to {}", source, os_disk)
        shutil.copyfile(source, os_disk)

        seed_disk = self._build_seed_disk(work_dir, plan)
        return DiskSet(os_disk_path=str(os_disk), seed_disk_path=str(seed_disk))

    def _build_seed_disk(self, work_dir: Path, plan: NetworkPlan) -> Path:
        cloud_init_dir = work_dir / "cloud-init"
        cloud_init_dir.mkdir(exist_ok=True)

        hostname = f"ch-guest-{plan.guest_ip.replace('.', '-')}"
        files = []
        for name, content in render_cloud_init(plan, self.guest, hostname).items():
            path = cloud_init_dir / name
            path.write_text(content, encoding="utf-8")
            files.append(str(path))

        seed_disk = work_dir / SEED_DISK_NAME
        _run_tool(["mkdosfs", "-n", "CIDATA", "-C", str(seed_disk), str(self.workloads.seed_disk_size_kib)])
        _run_tool(["mcopy", "-o", "-i", str(seed_disk), *files, "::"])

        logger.debug("Built cloud-init seed disk {}", seed_disk)
        return seed_disk


class CustomImageProvisioner:
    """Uses disks that were built outside the harness."""

    def __init__(self, os_disk_path: str, seed_disk_path: str):
        self.os_disk_path = os_disk_path
        self.seed_disk_path = seed_disk_path

    def prepare(self, work_dir: Path, plan: NetworkPlan) -> DiskSet:
        for path in (self.os_disk_path, self.seed_disk_path):
            if not Path(path).is_file():
                raise ProvisioningError(f"Disk image not found: {path}")
        return DiskSet(os_disk_path=self.os_disk_path, seed_disk_path=self.seed_disk_path)


def provisioner_from_config(config: Config) -> DiskProvisioner:
    """Select the provisioner named in the configuration."""
    kind = config.workloads.provisioner
    if kind == "cloud-image":
        return CloudImageProvisioner(config.workloads, config.guest)
    if kind == "custom":
        return CustomImageProvisioner(config.workloads.os_disk_path, config.workloads.seed_disk_path)
    raise ConfigurationError(f"Unknown provisioner: {kind}")


class BootImageResolver:
    """Resolves kernel and firmware files for the host architecture."""

    DIRECT_KERNELS = {
        "x86_64": "vmlinux",
        "aarch64": "Image",
    }

    RUST_FIRMWARE = {
        "x86_64": "hypervisor-fw",
        "aarch64": "Image",
    }

    def __init__(self, workloads: WorkloadsConfig, arch: Optional[str] = None):
        self.workloads = workloads
        self.arch = arch or platform.machine()

    def _path(self, name: str) -> str:
        return str(Path(self.workloads.workloads_dir) / name)

    def _lookup(self, table: dict, what: str) -> str:
        try:
            return table[self.arch]
        except KeyError:
            raise ProvisioningError(f"No {what} for architecture {self.arch}")

    def direct_boot(self, cmdline: Optional[str] = None) -> DirectBoot:
        kernel = self._lookup(self.DIRECT_KERNELS, "direct boot kernel")
        return DirectBoot(kernel_path=self._path(kernel), cmdline=cmdline or DIRECT_KERNEL_BOOT_CMDLINE)

    def firmware_boot(self, firmware: str = "rust") -> FirmwareBoot:
        if firmware == "rust":
            name = self._lookup(self.RUST_FIRMWARE, "rust firmware")
        elif firmware == "ovmf":
            if self.arch != "x86_64":
                raise ProvisioningError(f"No OVMF firmware for architecture {self.arch}")
            name = self.workloads.ovmf_image
        else:
            raise ProvisioningError(f"Unknown firmware: {firmware}")
        return FirmwareBoot(firmware_path=self._path(name))
