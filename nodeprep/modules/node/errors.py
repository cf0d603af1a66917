"""Exceptions raised while preparing a node.

Every error carries the process exit code the CLI should terminate with, so
scripting callers get a stable mapping from failure category to exit code.
"""

from typing import Optional

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_KERNEL_MODULES = 11


class NodePrepError(Exception):
    """Base class for node preparation failures."""
    exit_code: int = EXIT_FAILURE

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step

    def __str__(self) -> str:
        if self.step:
            return f"[{self.step}] {self.message}"
        return self.message


class PrivilegeError(NodePrepError, PermissionError):
    """Raised when the tool is not running with administrative privilege."""


class NetworkError(NodePrepError):
    """Raised when outbound connectivity or DNS resolution fails."""


class StateVerificationError(NodePrepError):
    """Raised when a post-action check does not observe the expected host state."""


class KernelModuleError(StateVerificationError):
    """Raised when required kernel modules are not loaded."""
    exit_code = EXIT_KERNEL_MODULES


class InstallationError(NodePrepError):
    """Raised when the package manager or another command fails."""


class StepOrderError(NodePrepError):
    """Raised when a step is scheduled before a step it depends on."""


class UnsupportedPlatformError(NodePrepError):
    """Raised when the host distribution has no platform implementation."""


class ConfigurationError(NodePrepError):
    """Raised when the run configuration is invalid."""
    exit_code = EXIT_CONFIG
