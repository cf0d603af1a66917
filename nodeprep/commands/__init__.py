"""Shared helpers for the nodeprep command groups."""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import typer

from nodeprep.config import Config
from nodeprep.logging import setup_logger
from nodeprep.modules.node import NodePrepError, PrepConfig, RunSummary, StepStatus

logger = logging.getLogger("nodeprep")

# Set by the global --debug option in cli.py; run_log by load_config
state: Dict[str, Any] = {"debug": False, "run_log": None}

STATUS_ICONS = {
    StepStatus.PASSED: "✅",
    StepStatus.FAILED: "❌",
    StepStatus.WARNED: "⚠️ ",
    StepStatus.SKIPPED: "⏭️ ",
}


def load_config(config_path: Optional[str] = None, **overrides: Any) -> PrepConfig:
    """Load the run configuration and configure logging for it."""
    with handle_errors():
        config = PrepConfig.load(config_path or Config.CONFIG_PATH, overrides=overrides)
    level = getattr(logging, Config.log_level(state["debug"]), logging.INFO)
    _, state["run_log"] = setup_logger("nodeprep", level=level, log_file=config.log_file)
    return config


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn node preparation errors into their exit codes."""
    try:
        yield
    except NodePrepError as e:
        if not logger.handlers:
            typer.echo(f"❌ {e}", err=True)
        else:
            logger.error(f"❌ {e}")
            logger.debug("Failure details", exc_info=True)
        raise typer.Exit(code=e.exit_code)


def report_summary(summary: RunSummary, sysctl_keys: Optional[List[str]] = None) -> None:
    """Print per-step results and the observed host state."""
    typer.echo(f"\n📊 Summary for {summary.platform}:")
    for result in summary.results:
        line = f"  {STATUS_ICONS[result.status]} {result.name:<20} {result.seconds:6.1f}s"
        if result.message and result.status != StepStatus.PASSED:
            line += f"  {result.message}"
        typer.echo(line)

    host = summary.host_state
    if host is not None:
        modules = ', '.join(f"{name}={'yes' if ok else 'no'}" for name, ok in host.modules_loaded.items())
        typer.echo("\n🖥️  Host state:")
        typer.echo(f"  Swap disabled:     {'yes' if host.swap_disabled else 'no'}")
        typer.echo(f"  SELinux:           {host.selinux_runtime or 'n/a'} (persisted: {host.selinux_persisted or 'n/a'})")
        typer.echo(f"  Firewall active:   {'yes' if host.firewall_active else 'no'}")
        typer.echo(f"  Kernel modules:    {modules}")
        if sysctl_keys:
            typer.echo(f"  Sysctl applied:    {'yes' if host.sysctl_enabled(sysctl_keys) else 'no'}")
        typer.echo(f"  CRI-O:             {host.runtime_version or 'not installed'}"
                   f" ({'active' if host.runtime_active else 'inactive'})")
        typer.echo(f"  Kubelet active:    {'yes' if host.kubelet_active else 'no'}")

    run_log = state["run_log"]
    if run_log is not None and run_log.entries:
        typer.echo(f"\n🕒 Run started {run_log.entries[0][0]}, finished {run_log.entries[-1][0]}"
                   f" ({len(run_log.entries)} log entries)")
