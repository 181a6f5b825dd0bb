"""
Configuration management for libvirt-ch-harness.

This module handles loading and validating configuration from YAML files
and environment variables. Defaults match the cloud-hypervisor CI layout:
libvirtd driven through ``ch:///system`` and guest images under
``~/workloads``.
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class DaemonConfig(BaseModel):
    """Virtualization daemon and CLI client configuration."""

    daemon_binary: str = Field(default="libvirtd", description="Daemon executable")
    client_binary: str = Field(default="virsh", description="CLI client executable")
    uri: str = Field(default="ch:///system", description="Connection URI passed with -c")
    startup_delay: float = Field(default=5.0, ge=0, description="Seconds to wait after spawning the daemon")
    state_dirs: List[str] = Field(
        default_factory=lambda: ["/var/lib/libvirt", "/var/run/libvirt"],
        description="Daemon state directories removed before and after each test"
    )
    pid_files: List[str] = Field(
        default_factory=lambda: ["/var/run/libvirtd.pid"],
        description="Daemon pid files removed before and after each test"
    )


class NetworkConfig(BaseModel):
    """Per-test network plan configuration."""

    subnet_class: str = Field(default="192.168", description="First two octets of every test subnet")
    base_port: int = Field(default=8000, ge=1, le=65535 - 255, description="Base TCP listener port")

    @field_validator('subnet_class')
    @classmethod
    def validate_subnet_class(cls, v):
        """Validate that the class is two dotted octets."""
        parts = v.split(".")
        if len(parts) != 2 or not all(p.isdigit() and 0 <= int(p) <= 255 for p in parts):
            raise ValueError(f"Subnet class must look like '192.168', got {v!r}")
        return v


class WorkloadsConfig(BaseModel):
    """Guest image and boot firmware locations."""

    workloads_dir: str = Field(
        default_factory=lambda: str(Path.home() / "workloads"),
        description="Directory holding kernels, firmware and OS images"
    )
    provisioner: str = Field(default="cloud-image", description="Disk provisioner (cloud-image, custom)")
    os_image: str = Field(
        default="focal-server-cloudimg-amd64-custom-20210106-1.raw",
        description="Prebuilt cloud image name inside the workloads directory"
    )
    os_disk_path: Optional[str] = Field(default=None, description="OS disk for the custom provisioner")
    seed_disk_path: Optional[str] = Field(default=None, description="Seed disk for the custom provisioner")
    ovmf_image: str = Field(default="OVMF-4b47d0c6c8.fd", description="OVMF firmware file name")
    seed_disk_size_kib: int = Field(default=8192, ge=1024, description="Size of the cloud-init seed disk")

    @field_validator('provisioner')
    @classmethod
    def validate_provisioner(cls, v):
        """Validate provisioner kind."""
        valid = ['cloud-image', 'custom']
        if v not in valid:
            raise ValueError(f"Provisioner must be one of {valid}")
        return v


class GuestConfig(BaseModel):
    """Guest access and readiness probe configuration."""

    user: str = Field(default="cloud", description="SSH user")
    password: str = Field(default="cloud123", description="SSH password")
    port: int = Field(default=22, ge=1, le=65535, description="SSH port")
    probe_command: str = Field(default="true", description="Command whose success means the guest is up")
    retries: int = Field(default=20, ge=1, description="Probe attempts for standard images")
    heavy_retries: int = Field(default=40, ge=1, description="Probe attempts for heavy images")
    timeout: float = Field(default=10.0, gt=0, description="Per-attempt timeout in seconds")
    interval: float = Field(default=5.0, ge=0, description="Fixed delay between probe attempts")
    connect_retries: int = Field(default=6, ge=1, description="SSH connection attempts per command")
    connect_interval: float = Field(default=1.0, ge=0, description="Delay between SSH connection attempts")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    file: Optional[str] = Field(default=None, description="Log file path")
    rotation: str = Field(default="10 MB", description="Log file rotation size")
    retention: str = Field(default="7 days", description="Log file retention")

    @field_validator('level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()


class Config(BaseModel):
    """Main configuration class."""

    daemon: DaemonConfig = Field(default_factory=DaemonConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    workloads: WorkloadsConfig = Field(default_factory=WorkloadsConfig)
    guest: GuestConfig = Field(default_factory=GuestConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_custom_disks(self):
        """The custom provisioner needs both disk paths."""
        if self.workloads.provisioner == "custom":
            if not self.workloads.os_disk_path or not self.workloads.seed_disk_path:
                raise ValueError("Custom provisioner requires os_disk_path and seed_disk_path")
        return self

    @classmethod
    def from_yaml_file(cls, file_path: str) -> "Config":
        """Load configuration from YAML file."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @staticmethod
    def _env_overrides() -> dict:
        """Collect overrides from CH_HARNESS_* environment variables."""
        config_data = {}

        # Daemon configuration
        if uri := os.getenv("CH_HARNESS_URI"):
            config_data.setdefault("daemon", {})["uri"] = uri
        if daemon := os.getenv("CH_HARNESS_DAEMON"):
            config_data.setdefault("daemon", {})["daemon_binary"] = daemon
        if client := os.getenv("CH_HARNESS_VIRSH"):
            config_data.setdefault("daemon", {})["client_binary"] = client
        if delay := os.getenv("CH_HARNESS_STARTUP_DELAY"):
            config_data.setdefault("daemon", {})["startup_delay"] = float(delay)

        # Network configuration
        if subnet_class := os.getenv("CH_HARNESS_SUBNET_CLASS"):
            config_data.setdefault("network", {})["subnet_class"] = subnet_class
        if base_port := os.getenv("CH_HARNESS_BASE_PORT"):
            config_data.setdefault("network", {})["base_port"] = int(base_port)

        # Workloads configuration
        if workloads := os.getenv("CH_HARNESS_WORKLOADS"):
            config_data.setdefault("workloads", {})["workloads_dir"] = workloads

        # Guest configuration
        if user := os.getenv("CH_HARNESS_SSH_USER"):
            config_data.setdefault("guest", {})["user"] = user
        if password := os.getenv("CH_HARNESS_SSH_PASSWORD"):
            config_data.setdefault("guest", {})["password"] = password
        if retries := os.getenv("CH_HARNESS_BOOT_RETRIES"):
            config_data.setdefault("guest", {})["retries"] = int(retries)

        # Logging configuration
        if log_level := os.getenv("CH_HARNESS_LOG_LEVEL"):
            config_data.setdefault("logging", {})["level"] = log_level
        if log_file := os.getenv("CH_HARNESS_LOG_FILE"):
            config_data.setdefault("logging", {})["file"] = log_file

        return config_data

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(**cls._env_overrides())

    @classmethod
    def load(cls, config_file: Optional[str] = None) -> "Config":
        """
        Load configuration from multiple sources with precedence:
        1. Environment variables
        2. YAML file (if provided)
        3. Default values
        """
        data = {}

        if config_file:
            path = Path(config_file)
            if path.exists():
                with open(path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f) or {}

        for section, values in cls._env_overrides().items():
            # an empty section ("daemon:") loads as None
            merged = data.get(section) or {}
            merged.update(values)
            data[section] = merged

        # empty sections without overrides fall back to defaults
        data = {section: values for section, values in data.items() if values is not None}

        return cls(**data)

    def to_yaml_file(self, file_path: str) -> None:
        """Save configuration to YAML file."""
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False, indent=2)
