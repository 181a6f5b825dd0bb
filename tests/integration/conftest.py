"""Fixtures for tests that drive a real libvirtd and cloud-hypervisor."""

import os

import pytest

from libvirt_ch_harness.allocator import ResourceAllocator
from libvirt_ch_harness.config import Config
from libvirt_ch_harness.guest import Guest
from libvirt_ch_harness.logging import configure_logging
from libvirt_ch_harness.orchestrator import ProcessOrchestrator


def pytest_collection_modifyitems(config, items):
    if os.getenv("CH_HARNESS_INTEGRATION") == "1":
        return
    skip = pytest.mark.skip(reason="set CH_HARNESS_INTEGRATION=1 to run against libvirtd")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def harness_config():
    config = Config.load(os.getenv("CH_HARNESS_CONFIG"))
    manager = configure_logging(config)
    yield config
    manager.cleanup()


@pytest.fixture(scope="session")
def allocator():
    """One allocator for the whole run, so no two tests share an id."""
    return ResourceAllocator()


@pytest.fixture
def orchestrator(harness_config):
    return ProcessOrchestrator(harness_config)


@pytest.fixture
def libvirtd(orchestrator):
    with orchestrator.session() as daemon:
        yield daemon


@pytest.fixture
def guest(harness_config, allocator, orchestrator, libvirtd):
    with Guest(harness_config, allocator, orchestrator) as guest:
        yield guest
        orchestrator.destroy(guest.name)
