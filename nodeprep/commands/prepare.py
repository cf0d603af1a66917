import typer

from nodeprep.commands import handle_errors, load_config, report_summary
from nodeprep.modules.node.prepare import prepare_node

app = typer.Typer()


@app.command("node")
def prepare_node_cmd(
    config: str = typer.Option(None, "--config", "-c", help="Path to nodeprep YAML configuration"),
    platform: str = typer.Option(None, help="Platform variant (auto, rocky, debian)"),
    crio_version: str = typer.Option(None, help="CRI-O version stream, e.g. v1.33"),
    kubernetes_version: str = typer.Option(None, help="Kubernetes version stream, e.g. v1.33"),
    log_file: str = typer.Option(None, help="Persistent log file (appended to)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log commands and file writes without executing them"),
):
    """Prepare this host to join a Kubernetes cluster."""
    prep_config = load_config(
        config,
        platform=platform,
        crio_version=crio_version,
        kubernetes_version=kubernetes_version,
        log_file=log_file,
    )
    with handle_errors():
        summary = prepare_node(prep_config, dry_run=dry_run)
    report_summary(summary, list(prep_config.sysctl))
