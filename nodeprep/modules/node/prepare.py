"""Node preparation orchestration.

Entry points used by the CLI: build the pipeline for the local host, run it,
or re-check it without making changes.
"""

import logging

from .config import PrepConfig
from .host import HostInspector
from .models import RunSummary
from .platforms import detect_platform
from .preparer import NodePreparer
from .runner import CommandRunner
from .steps import NodeSteps

logger = logging.getLogger("nodeprep.node.prepare")


def build_preparer(config: PrepConfig, dry_run: bool = False) -> NodePreparer:
    """Assemble the preparer for the local host.

    Args:
        config: Run configuration
        dry_run: Log commands and file writes without executing them

    Returns:
        NodePreparer: Ready to run, with steps for the detected platform

    Raises:
        UnsupportedPlatformError: If the distribution is not supported
    """
    runner = CommandRunner(dry_run=dry_run)
    inspector = HostInspector(runner, root=config.host_root)
    platform_cls = detect_platform(inspector, config.platform)
    platform = platform_cls(runner, inspector, http_timeout=config.http_timeout)
    steps = NodeSteps(config, platform, runner, inspector).build()
    logger.debug(f"Pipeline for {platform.name}: {', '.join(s.name for s in steps)}")
    return NodePreparer(
        steps,
        platform=platform.name,
        dry_run=dry_run,
        snapshot=lambda: inspector.snapshot(config.kernel_modules, config.sysctl),
    )


def prepare_node(config: PrepConfig, dry_run: bool = False) -> RunSummary:
    """Prepare the local host to join a Kubernetes cluster."""
    logger.info(
        f"Preparing node (CRI-O {config.crio_version}, Kubernetes {config.kubernetes_version}, "
        f"CNI plugins {config.cni_plugins_version})"
    )
    summary = build_preparer(config, dry_run=dry_run).run()
    logger.info(f"Log file: {config.log_file}")
    logger.info(
        "Next steps: Run 'kubeadm join' with the appropriate token and control plane details to join "
        "a cluster, or 'kubeadm init' for a control plane node."
    )
    return summary


def check_node(config: PrepConfig) -> RunSummary:
    """Re-check every preparation step without changing the host."""
    return build_preparer(config).verify()
