"""Kubernetes node preparation.

This package prepares a single host to join a Kubernetes cluster.
It's organized into several focused modules:

- preparer: Sequential step executor
- steps: The ordered preparation pipeline
- platforms: Per-distribution package, repository, firewall and MAC handling
- host: Host state introspection
- runner: Local command execution
- config: Run configuration
- models: Data models and types
- errors: Failure categories and exit codes
- utils: Utility functions
"""

from .config import PrepConfig
from .errors import (
    ConfigurationError,
    InstallationError,
    KernelModuleError,
    NetworkError,
    NodePrepError,
    PrivilegeError,
    StateVerificationError,
    StepOrderError,
    UnsupportedPlatformError,
)
from .host import HostInspector
from .models import HostState, OnFailure, RunSummary, Step, StepResult, StepStatus
from .platforms import DebianPlatform, Platform, RockyPlatform, detect_platform
from .preparer import NodePreparer
from .runner import CommandRunner
from .steps import NodeSteps

__all__ = [
    'PrepConfig',
    'ConfigurationError',
    'InstallationError',
    'KernelModuleError',
    'NetworkError',
    'NodePrepError',
    'PrivilegeError',
    'StateVerificationError',
    'StepOrderError',
    'UnsupportedPlatformError',
    'HostInspector',
    'HostState',
    'OnFailure',
    'RunSummary',
    'Step',
    'StepResult',
    'StepStatus',
    'DebianPlatform',
    'Platform',
    'RockyPlatform',
    'detect_platform',
    'NodePreparer',
    'CommandRunner',
    'NodeSteps',
]
