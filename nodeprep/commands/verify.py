import typer

from nodeprep.commands import handle_errors, load_config, report_summary
from nodeprep.modules.node.errors import EXIT_FAILURE
from nodeprep.modules.node.prepare import check_node

app = typer.Typer()


@app.command("node")
def verify_node_cmd(
    config: str = typer.Option(None, "--config", "-c", help="Path to nodeprep YAML configuration"),
    platform: str = typer.Option(None, help="Platform variant (auto, rocky, debian)"),
):
    """Re-check every preparation step without changing the host."""
    prep_config = load_config(config, platform=platform)
    with handle_errors():
        summary = check_node(prep_config)
    report_summary(summary, list(prep_config.sysctl))
    failed = summary.failed_steps()
    if failed:
        typer.echo(f"❌ {len(failed)} check(s) failed: {', '.join(failed)}")
        raise typer.Exit(code=EXIT_FAILURE)
    typer.echo(f"✅ All {len(summary.results)} checks passed on {summary.platform}")
