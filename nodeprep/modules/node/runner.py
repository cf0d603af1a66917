"""Local command execution for node preparation."""

import logging
import os
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from .errors import InstallationError
from .utils import file_matches, write_file

logger = logging.getLogger("nodeprep.node.runner")


class CommandRunner:
    """Runs commands on the local host.

    In dry-run mode commands passed to ``run`` are only logged and report
    success with empty output. Read-only checks go through ``query`` and
    execute in both modes so a dry run reports what it would change.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def run(
        self,
        args: List[str],
        check: bool = True,
        input: Optional[bytes] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        """Execute a command that may change the host.

        Args:
            args: Command and arguments
            check: If True, raise on a non-zero exit status
            input: Optional bytes fed to stdin
            timeout: Optional execution timeout in seconds
            env: Extra environment variables for the command

        Returns:
            subprocess.CompletedProcess: The finished process with text stdout/stderr

        Raises:
            InstallationError: If the command is missing, times out, or fails with check=True
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would execute: {shlex.join(args)}")
            return subprocess.CompletedProcess(args, 0, stdout='', stderr='')
        return self._execute(args, check=check, input=input, timeout=timeout, env=env)

    def query(self, args: List[str], check: bool = False) -> subprocess.CompletedProcess:
        """Execute a read-only command, also in dry-run mode."""
        return self._execute(args, check=check)

    def _execute(
        self,
        args: List[str],
        check: bool = True,
        input: Optional[bytes] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        command = shlex.join(args)
        logger.debug(f"Executing: {command}")
        try:
            result = subprocess.run(
                args,
                input=input,
                capture_output=True,
                timeout=timeout,
                env={**os.environ, **env} if env else None,
            )
        except FileNotFoundError as e:
            raise InstallationError(f"Command not found: {args[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise InstallationError(f"Command timed out after {timeout}s: {command}") from e

        stdout = result.stdout.decode('utf-8', errors='replace')
        stderr = result.stderr.decode('utf-8', errors='replace')
        if stdout.strip():
            logger.debug(stdout.rstrip())
        if stderr.strip():
            logger.debug(stderr.rstrip())

        if check and result.returncode != 0:
            tail = '\n'.join(stderr.strip().splitlines()[-5:])
            raise InstallationError(
                f"Command failed with exit code {result.returncode}: {command}"
                + (f"\n{tail}" if tail else '')
            )
        return subprocess.CompletedProcess(args, result.returncode, stdout=stdout, stderr=stderr)

    def output(self, args: List[str], check: bool = False) -> str:
        """Run a read-only command and return its stripped stdout."""
        return self.query(args, check=check).stdout.strip()

    def succeeds(self, args: List[str]) -> bool:
        """Return True if the read-only command exits with status 0."""
        try:
            return self.query(args).returncode == 0
        except InstallationError:
            return False

    def write_file(self, path: Path, content: str, mode: int = 0o644) -> bool:
        """Write a managed file unless running dry.

        Returns:
            bool: True if the file was (or would be) changed
        """
        if self.dry_run:
            if file_matches(path, content):
                return False
            logger.info(f"[DRY RUN] Would write {path}")
            return True
        return write_file(path, content, mode)

    @staticmethod
    def which(name: str) -> Optional[str]:
        """Locate an executable on PATH."""
        return shutil.which(name)
