"""
Custom exceptions for libvirt-ch-harness.

This module defines the error taxonomy of the harness. Environment errors
abort a test, transient errors are retried by the component that owns them,
and everything else propagates to the calling test.
"""


class HarnessError(Exception):
    """Base exception for all libvirt-ch-harness errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(HarnessError):
    """Raised when configuration is invalid or missing."""
    pass


class AllocationExhaustedError(ConfigurationError):
    """Raised when the identifier space of the allocator is used up."""
    pass


class ProcessSpawnError(HarnessError):
    """Raised when the daemon or a CLI process cannot be started."""
    pass


class CommandFailedError(HarnessError):
    """Raised by CommandResult.check() when a CLI invocation exited non-zero."""

    def __init__(self, message: str, returncode: int, output: str = ""):
        super().__init__(message, {"returncode": returncode, "output": output})
        self.returncode = returncode
        self.output = output


class ProvisioningError(HarnessError):
    """Raised when guest disks or boot images cannot be prepared."""
    pass


class RemoteConnectionError(HarnessError):
    """Raised when a remote session could not be established."""

    def __init__(self, message: str, attempts: int, details: dict = None):
        super().__init__(message, details)
        self.attempts = attempts


class RemoteCommandError(HarnessError):
    """Raised when a remote command ran but exited with a failure status."""

    def __init__(self, message: str, exit_status: int, stderr: str = ""):
        super().__init__(message, {"exit_status": exit_status, "stderr": stderr})
        self.exit_status = exit_status
        self.stderr = stderr


class BootTimeoutError(HarnessError):
    """Raised when the guest never became reachable within the retry budget."""

    def __init__(self, message: str, attempts: int, details: dict = None):
        super().__init__(message, details)
        self.attempts = attempts


class OutputParseError(HarnessError):
    """Raised when a value extracted from guest output cannot be parsed."""

    def __init__(self, message: str, output: str):
        super().__init__(message, {"output": output})
        self.output = output
