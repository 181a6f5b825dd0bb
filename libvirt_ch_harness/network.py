"""
Network plan generation.

A test's addresses are a pure function of the subnet class and the test's
numeric id. The id occupies the third octet of every address and the low
byte of every MAC, so two live tests never share an address, a MAC or a
listener port, and a failing test can be reproduced with the same plan.
"""

from .models import NetworkPlan

DEFAULT_SUBNET_CLASS = "192.168"
DEFAULT_TCP_LISTENER_PORT = 8000

GUEST_MAC_PREFIX = "12:34:56:78:90"
L2_GUEST_MAC_PREFIXES = ("de:ad:be:ef:12", "de:ad:be:ef:34", "de:ad:be:ef:56")


def plan_network(
    subnet_class: str = DEFAULT_SUBNET_CLASS,
    numeric_id: int = 1,
    base_port: int = DEFAULT_TCP_LISTENER_PORT,
) -> NetworkPlan:
    """Build the network plan of test ``numeric_id``."""
    if not 0 <= numeric_id <= 255:
        raise ValueError(f"numeric_id must fit in one octet, got {numeric_id}")

    subnet = f"{subnet_class}.{numeric_id}"
    return NetworkPlan(
        subnet_class=subnet_class,
        guest_ip=f"{subnet}.2",
        host_ip=f"{subnet}.1",
        l2_guest_ips=[f"{subnet}.{host}" for host in (3, 4, 5)],
        guest_mac=f"{GUEST_MAC_PREFIX}:{numeric_id:02x}",
        l2_guest_macs=[f"{prefix}:{numeric_id:02x}" for prefix in L2_GUEST_MAC_PREFIXES],
        tcp_listener_port=base_port + numeric_id,
    )
