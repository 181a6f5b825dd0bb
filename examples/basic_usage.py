#!/usr/bin/env python3
"""
Basic usage example for libvirt-ch-harness.

Boots one guest on a fresh libvirtd with the cloud-hypervisor driver,
checks it over SSH and tears everything down again. Needs root, libvirtd,
virsh, cloud-hypervisor and the guest images under ~/workloads.
"""

import sys

from libvirt_ch_harness import Config, Guest, HarnessError, ProcessOrchestrator, ResourceAllocator, VcpuTopology
from libvirt_ch_harness.logging import configure_logging


def main():
    """Main example function."""
    print("🚀 libvirt-ch-harness - Basic Usage Example")
    print("=" * 50)

    config = Config.load()
    configure_logging(config)
    orchestrator = ProcessOrchestrator(config)
    allocator = ResourceAllocator()

    try:
        with orchestrator.session():
            print(f"✅ libvirtd running, {orchestrator.uri().stdout.strip()}")

            with Guest(config, allocator, orchestrator) as guest:
                print(f"\n🌐 {guest.name} gets {guest.network.guest_ip} ({guest.network.guest_mac})")

                path = guest.create_domain(vcpu=VcpuTopology(boot_count=2, max_count=4))
                print(f"\n🖥️  Creating domain from {path}")
                print(orchestrator.create(str(path)).check().stdout.strip())

                result = guest.wait_vm_boot()
                print(f"\n⏳ Guest answered after {result.attempts} attempt(s)")
                print(f"🔍 CPUs: {guest.get_cpu_count()}, memory: {guest.get_total_memory_kib()} KiB")

                orchestrator.destroy(guest.name)

        print("\n✅ Example completed successfully!")

    except HarnessError as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
