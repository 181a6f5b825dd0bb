"""End-to-end tests of the cloud-hypervisor libvirt driver."""

import os
import signal
import time

import pytest

from libvirt_ch_harness.models import DomainState, VcpuTopology
from libvirt_ch_harness.provisioning import BootImageResolver

pytestmark = pytest.mark.integration


def domain_state(orchestrator, name):
    for entry in orchestrator.list_domains():
        if entry.name == name:
            return entry.state
    return None


def boot(orchestrator, guest, **kwargs):
    path = guest.create_domain(**kwargs)
    orchestrator.create(str(path)).check()
    guest.wait_vm_boot()


class TestDaemon:
    """Tests that need only the daemon."""

    def test_uri(self, orchestrator, libvirtd):
        result = orchestrator.uri().check()
        assert result.stdout.strip() == "ch:///system"

    def test_libvirt_restart(self, orchestrator, libvirtd):
        orchestrator.restart_daemon(libvirtd)

        assert libvirtd.running
        assert orchestrator.uri().check().stdout.strip() == "ch:///system"


class TestDomains:
    """Tests that boot a guest."""

    def test_create_vm(self, orchestrator, libvirtd, guest):
        path = guest.create_domain()

        result = orchestrator.create(str(path))

        assert result.stdout.strip().startswith(f"Domain {guest.name} created")

    def test_defines(self, orchestrator, libvirtd, guest):
        orchestrator.define(str(guest.create_domain())).check()
        assert domain_state(orchestrator, guest.name) == DomainState.SHUT_OFF

        orchestrator.undefine(guest.name).check()
        assert domain_state(orchestrator, guest.name) is None

    def test_rust_fw_boot(self, orchestrator, libvirtd, guest):
        boot(orchestrator, guest)
        assert guest.get_cpu_count() == 1

    @pytest.mark.skipif(os.uname().machine != "x86_64", reason="OVMF is only shipped for x86_64")
    def test_ovmf_fw_boot(self, orchestrator, libvirtd, guest, harness_config):
        boot_mode = BootImageResolver(harness_config.workloads).firmware_boot("ovmf")
        boot(orchestrator, guest, boot_mode=boot_mode)
        assert guest.get_cpu_count() == 1

    def test_direct_kernel_boot(self, orchestrator, libvirtd, guest, harness_config):
        boot_mode = BootImageResolver(harness_config.workloads).direct_boot()
        boot(orchestrator, guest, boot_mode=boot_mode)
        assert guest.ssh_command("cat /proc/cmdline").startswith("root=/dev/vda1")

    def test_multi_cpu(self, orchestrator, libvirtd, guest):
        boot(orchestrator, guest, vcpu=VcpuTopology(boot_count=2, max_count=4))
        assert guest.get_cpu_count() == 2

        orchestrator.setvcpus(guest.name, 4).check()
        guest.ssh_command("for cpu in /sys/devices/system/cpu/cpu[0-9]*/online; do echo 1 | sudo tee $cpu; done")
        assert guest.get_cpu_count() == 4

    def test_huge_memory(self, orchestrator, libvirtd, guest):
        boot(orchestrator, guest, memory_bytes=128 << 30)
        assert guest.get_total_memory_kib() > 128_000_000

    def test_vm_restart(self, orchestrator, libvirtd, guest):
        orchestrator.define(str(guest.create_domain())).check()
        orchestrator.start(guest.name).check()
        guest.wait_vm_boot()

        orchestrator.destroy(guest.name).check()
        assert domain_state(orchestrator, guest.name) == DomainState.SHUT_OFF

        orchestrator.start(guest.name).check()
        guest.wait_vm_boot()
        assert domain_state(orchestrator, guest.name) == DomainState.RUNNING

        orchestrator.destroy(guest.name)
        orchestrator.undefine(guest.name)

    def test_track_vm_killed_state(self, orchestrator, libvirtd, guest):
        orchestrator.define(str(guest.create_domain())).check()
        orchestrator.start(guest.name).check()
        guest.wait_vm_boot()

        os.kill(_hypervisor_pid(guest.name), signal.SIGKILL)
        time.sleep(2)

        assert domain_state(orchestrator, guest.name) == DomainState.SHUT_OFF
        orchestrator.undefine(guest.name)


def _hypervisor_pid(name):
    """PID of the cloud-hypervisor process, from the driver's state dir."""
    with open(f"/var/run/libvirt/ch/{name}.pid") as f:
        return int(f.read().strip())
