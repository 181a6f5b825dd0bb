"""Tests for configuration management."""

import os
import tempfile
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from libvirt_ch_harness.config import (
    Config,
    DaemonConfig,
    GuestConfig,
    LoggingConfig,
    NetworkConfig,
    WorkloadsConfig,
)


class TestDaemonConfig:
    """Tests for DaemonConfig."""

    def test_default_config(self):
        """Test default configuration values."""
        config = DaemonConfig()
        assert config.daemon_binary == "libvirtd"
        assert config.client_binary == "virsh"
        assert config.uri == "ch:///system"
        assert config.startup_delay == 5.0
        assert "/var/lib/libvirt" in config.state_dirs
        assert "/var/run/libvirt" in config.state_dirs
        assert config.pid_files == ["/var/run/libvirtd.pid"]

    def test_negative_startup_delay(self):
        """Test startup delay validation."""
        with pytest.raises(ValidationError):
            DaemonConfig(startup_delay=-1)


class TestNetworkConfig:
    """Tests for NetworkConfig."""

    def test_default_config(self):
        config = NetworkConfig()
        assert config.subnet_class == "192.168"
        assert config.base_port == 8000

    def test_subnet_class_validation(self):
        """Test subnet class must be two octets."""
        assert NetworkConfig(subnet_class="10.0").subnet_class == "10.0"

        for bad in ("192", "192.168.1", "300.1", "a.b"):
            with pytest.raises(ValidationError):
                NetworkConfig(subnet_class=bad)

    def test_base_port_leaves_room_for_all_ids(self):
        """Test base port plus the largest id stays a valid port."""
        NetworkConfig(base_port=65535 - 255)
        with pytest.raises(ValidationError):
            NetworkConfig(base_port=65535)


class TestWorkloadsConfig:
    """Tests for WorkloadsConfig."""

    def test_default_config(self):
        config = WorkloadsConfig()
        assert config.workloads_dir == str(Path.home() / "workloads")
        assert config.provisioner == "cloud-image"
        assert config.os_image.endswith(".raw")

    def test_provisioner_validation(self):
        with pytest.raises(ValidationError):
            WorkloadsConfig(provisioner="netboot")


class TestGuestConfig:
    """Tests for GuestConfig."""

    def test_default_config(self):
        config = GuestConfig()
        assert config.probe_command == "true"
        assert config.heavy_retries > config.retries
        assert config.port == 22

    def test_retries_validation(self):
        with pytest.raises(ValidationError):
            GuestConfig(retries=0)


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_config(self):
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file is None

    def test_log_level_validation(self):
        """Test log level validation."""
        assert LoggingConfig(level="debug").level == "DEBUG"
        assert LoggingConfig(level="ERROR").level == "ERROR"

        with pytest.raises(ValidationError):
            LoggingConfig(level="INVALID")


class TestConfig:
    """Tests for main Config class."""

    def test_default_config(self):
        """Test default configuration."""
        config = Config()
        assert isinstance(config.daemon, DaemonConfig)
        assert isinstance(config.network, NetworkConfig)
        assert isinstance(config.workloads, WorkloadsConfig)
        assert isinstance(config.guest, GuestConfig)
        assert isinstance(config.logging, LoggingConfig)

    def test_custom_provisioner_requires_paths(self):
        """Test custom provisioner needs both disk paths."""
        with pytest.raises(ValidationError):
            Config(workloads={"provisioner": "custom", "os_disk_path": "/images/os.raw"})

        config = Config(workloads={
            "provisioner": "custom",
            "os_disk_path": "/images/os.raw",
            "seed_disk_path": "/images/seed.img",
        })
        assert config.workloads.seed_disk_path == "/images/seed.img"

    def test_from_yaml_file(self):
        """Test loading from YAML file."""
        config_data = {
            "daemon": {"uri": "ch:///session", "startup_delay": 1},
            "network": {"subnet_class": "10.10", "base_port": 9000},
            "guest": {"user": "root"},
            "logging": {"level": "DEBUG"},
        }

        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump(config_data, f)
            temp_path = f.name

        try:
            config = Config.from_yaml_file(temp_path)
            assert config.daemon.uri == "ch:///session"
            assert config.daemon.startup_delay == 1
            assert config.network.subnet_class == "10.10"
            assert config.network.base_port == 9000
            assert config.guest.user == "root"
            assert config.logging.level == "DEBUG"
        finally:
            os.unlink(temp_path)

    def test_from_yaml_file_not_found(self):
        """Test loading from non-existent YAML file."""
        with pytest.raises(FileNotFoundError):
            Config.from_yaml_file("/nonexistent/config.yaml")

    def test_from_env(self):
        """Test loading from environment variables."""
        env_vars = {
            "CH_HARNESS_URI": "ch:///session",
            "CH_HARNESS_DAEMON": "/usr/sbin/libvirtd",
            "CH_HARNESS_VIRSH": "/usr/bin/virsh",
            "CH_HARNESS_STARTUP_DELAY": "2.5",
            "CH_HARNESS_SUBNET_CLASS": "172.16",
            "CH_HARNESS_BASE_PORT": "9100",
            "CH_HARNESS_WORKLOADS": "/srv/workloads",
            "CH_HARNESS_SSH_USER": "root",
            "CH_HARNESS_SSH_PASSWORD": "secret",
            "CH_HARNESS_BOOT_RETRIES": "7",
            "CH_HARNESS_LOG_LEVEL": "WARNING",
            "CH_HARNESS_LOG_FILE": "/tmp/harness.log",
        }

        for key, value in env_vars.items():
            os.environ[key] = value

        try:
            config = Config.from_env()
            assert config.daemon.uri == "ch:///session"
            assert config.daemon.daemon_binary == "/usr/sbin/libvirtd"
            assert config.daemon.client_binary == "/usr/bin/virsh"
            assert config.daemon.startup_delay == 2.5
            assert config.network.subnet_class == "172.16"
            assert config.network.base_port == 9100
            assert config.workloads.workloads_dir == "/srv/workloads"
            assert config.guest.user == "root"
            assert config.guest.password == "secret"
            assert config.guest.retries == 7
            assert config.logging.level == "WARNING"
            assert config.logging.file == "/tmp/harness.log"
        finally:
            for key in env_vars:
                os.environ.pop(key, None)

    def test_load_with_file_and_env(self):
        """Test environment variables take precedence over the file."""
        config_data = {
            "daemon": {"uri": "ch:///session", "startup_delay": 3},
            "network": {"subnet_class": "10.10"},
        }

        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            yaml.dump(config_data, f)
            temp_path = f.name

        os.environ["CH_HARNESS_URI"] = "ch:///system"

        try:
            config = Config.load(temp_path)
            assert config.daemon.uri == "ch:///system"
            assert config.daemon.startup_delay == 3
            assert config.network.subnet_class == "10.10"
        finally:
            os.unlink(temp_path)
            os.environ.pop("CH_HARNESS_URI", None)

    def test_load_empty_sections_with_env(self, tmp_path):
        """Test empty YAML sections merge with environment overrides."""
        path = tmp_path / "harness.yaml"
        path.write_text("daemon:\nguest:\nlogging:\n  level: DEBUG\n")

        os.environ["CH_HARNESS_URI"] = "ch:///session"

        try:
            config = Config.load(str(path))
            assert config.daemon.uri == "ch:///session"
            assert config.daemon.daemon_binary == "libvirtd"
            assert config.guest.user == "cloud"
            assert config.logging.level == "DEBUG"
        finally:
            os.environ.pop("CH_HARNESS_URI", None)

    def test_load_missing_file_uses_defaults(self):
        config = Config.load("/nonexistent/config.yaml")
        assert config.daemon.uri == Config().daemon.uri

    def test_to_yaml_file_round_trip(self, tmp_path):
        """Test saving a configuration and loading it back."""
        path = tmp_path / "nested" / "harness.yaml"
        original = Config(network={"subnet_class": "10.20"})

        original.to_yaml_file(str(path))
        loaded = Config.from_yaml_file(str(path))

        assert loaded.network.subnet_class == "10.20"
        assert loaded.daemon.state_dirs == original.daemon.state_dirs
