"""Data models for node preparation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Type

from .errors import NodePrepError, StateVerificationError


class OnFailure(str, Enum):
    """What the preparer does when a step's verification fails."""
    ABORT = 'abort'
    WARN = 'warn'


class StepStatus(str, Enum):
    """Outcome of a single step."""
    PASSED = 'passed'
    FAILED = 'failed'
    WARNED = 'warned'
    SKIPPED = 'skipped'


@dataclass
class Step:
    """A named, idempotent provisioning step.

    ``action`` mutates the host and ``verify`` observes it. ``verify`` must not
    depend on ``action`` having run in this process, so a completed step can be
    re-checked on a later run.
    """
    name: str
    description: str
    action: Callable[[], None]
    verify: Callable[[], bool]
    on_failure: OnFailure = OnFailure.ABORT
    error: Type[NodePrepError] = StateVerificationError
    failure_message: str = ''
    requires: Tuple[str, ...] = ()
    on_success: Optional[Callable[[], None]] = None


@dataclass
class StepResult:
    """Result of running or re-checking one step."""
    name: str
    status: StepStatus
    seconds: float = 0.0
    message: str = ''

    @property
    def ok(self) -> bool:
        return self.status in (StepStatus.PASSED, StepStatus.WARNED, StepStatus.SKIPPED)


@dataclass
class HostState:
    """Snapshot of the host facts the steps converge on."""
    swap_total_kb: int = 0
    swap_used_kb: int = 0
    swap_devices: List[str] = field(default_factory=list)
    fstab_swap_entries: List[str] = field(default_factory=list)
    selinux_runtime: Optional[str] = None
    selinux_persisted: Optional[str] = None
    firewall_active: bool = False
    modules_loaded: Dict[str, bool] = field(default_factory=dict)
    sysctl: Dict[str, Optional[str]] = field(default_factory=dict)
    runtime_active: bool = False
    runtime_version: Optional[str] = None
    kubelet_active: bool = False

    @property
    def swap_disabled(self) -> bool:
        return (
            self.swap_total_kb == 0
            and not self.swap_devices
            and not self.fstab_swap_entries
        )

    def sysctl_enabled(self, keys: List[str]) -> bool:
        return all(self.sysctl.get(key) == '1' for key in keys)


@dataclass
class RunSummary:
    """Tracks the outcome of a preparation run."""
    platform: str
    results: List[StepResult] = field(default_factory=list)
    host_state: Optional[HostState] = None

    @property
    def succeeded(self) -> bool:
        return all(result.ok for result in self.results)

    def add(self, result: StepResult) -> None:
        """Record the result of a step."""
        self.results.append(result)

    def failed_steps(self) -> List[str]:
        return [r.name for r in self.results if r.status == StepStatus.FAILED]
