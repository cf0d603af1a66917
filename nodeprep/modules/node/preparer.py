"""Sequential executor of node preparation steps."""

import logging
import os
import time
from typing import Callable, List, Optional

from .errors import InstallationError, NodePrepError, PrivilegeError, StepOrderError
from .models import HostState, OnFailure, RunSummary, Step, StepResult, StepStatus

logger = logging.getLogger("nodeprep.node.preparer")


def running_as_root() -> bool:
    return os.geteuid() == 0


class NodePreparer:
    """Runs a fixed, ordered list of steps and verifies each one.

    Any failed verification of an ``abort`` step ends the run by raising the
    step's error; there is no retry and no partial continuation. Re-running from
    the top is safe because every step is idempotent.
    """

    def __init__(
        self,
        steps: List[Step],
        platform: str,
        dry_run: bool = False,
        privilege_check: Optional[Callable[[], bool]] = None,
        snapshot: Optional[Callable[[], HostState]] = None,
    ):
        self.steps = steps
        self.platform = platform
        self.dry_run = dry_run
        self.privilege_check = privilege_check
        self.snapshot = snapshot

    def check_privileges(self) -> None:
        is_root = self.privilege_check or running_as_root
        if not is_root():
            raise PrivilegeError("This tool must be run as root or with sudo.")

    def validate_order(self) -> None:
        """Ensure every step runs after the steps it requires.

        Raises:
            StepOrderError: If a required step is missing or scheduled later
        """
        seen = set()
        for step in self.steps:
            for required in step.requires:
                if required not in seen:
                    raise StepOrderError(
                        f"Step '{step.name}' requires '{required}' to run before it",
                        step=step.name,
                    )
            seen.add(step.name)

    def run(self) -> RunSummary:
        """Execute all steps in order.

        Returns:
            RunSummary: Results of every step that ran

        Raises:
            NodePrepError: The error of the first step whose verification failed
        """
        self.check_privileges()
        self.validate_order()

        summary = RunSummary(platform=self.platform)
        total = len(self.steps)
        for index, step in enumerate(self.steps, 1):
            logger.info(f"Step {index}/{total}: {step.description}...")
            start = time.monotonic()
            try:
                self._call(step, step.action)
            except NodePrepError as e:
                summary.add(StepResult(step.name, StepStatus.FAILED, time.monotonic() - start, str(e)))
                logger.error(f"ERROR: {e}")
                raise
            result = self._verify(step, start)
            summary.add(result)
            if result.status == StepStatus.PASSED and step.on_success:
                step.on_success()

        if self.snapshot:
            summary.host_state = self.snapshot()
        if self.dry_run:
            logger.info("Dry run complete, no changes were made.")
        else:
            logger.info("✅ Node preparation complete! Ready to join a Kubernetes cluster.")
        return summary

    def verify(self) -> RunSummary:
        """Re-check every step without running its action.

        Failures are recorded instead of raised so the operator sees every
        check that no longer holds. Nothing is changed, so root is not required.
        """
        summary = RunSummary(platform=self.platform)
        for step in self.steps:
            start = time.monotonic()
            try:
                passed = self._call(step, step.verify)
                message = '' if passed else step.failure_message
            except NodePrepError as e:
                passed, message = False, str(e)
            status = StepStatus.PASSED if passed else StepStatus.FAILED
            if not passed and step.on_failure == OnFailure.WARN:
                status = StepStatus.WARNED
            summary.add(StepResult(step.name, status, time.monotonic() - start, message))
            log = logger.info if passed else logger.error
            log(f"{'✅' if passed else '❌'} {step.name}{': ' + message if message else ''}")
        if self.snapshot:
            summary.host_state = self.snapshot()
        return summary

    def _verify(self, step: Step, start: float) -> StepResult:
        logger.info(f"Verifying {step.name}...")
        try:
            passed = self._call(step, step.verify)
            message = step.failure_message
        except NodePrepError as e:
            if self.dry_run:
                passed, message = False, str(e)
            else:
                logger.error(f"ERROR: {e}")
                raise
        elapsed = time.monotonic() - start

        if passed:
            logger.info(f"✅ {step.description}: done")
            return StepResult(step.name, StepStatus.PASSED, elapsed)
        if self.dry_run:
            logger.info(f"[DRY RUN] {step.name} would not yet verify: {message}")
            return StepResult(step.name, StepStatus.SKIPPED, elapsed, message)
        if step.on_failure == OnFailure.WARN:
            logger.warning(f"⚠️  {message}")
            return StepResult(step.name, StepStatus.WARNED, elapsed, message)

        logger.error(f"ERROR: {message}")
        raise step.error(message, step=step.name)

    @staticmethod
    def _call(step: Step, func: Callable[[], Optional[bool]]) -> Optional[bool]:
        """Invoke an action or check, attributing any failure to the step."""
        try:
            return func()
        except NodePrepError as e:
            if e.step is None:
                e.step = step.name
            raise
        except OSError as e:
            raise InstallationError(str(e), step=step.name) from e
