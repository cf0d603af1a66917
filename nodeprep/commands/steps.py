import typer

from nodeprep.commands import handle_errors, load_config
from nodeprep.modules.node.prepare import build_preparer

app = typer.Typer()


@app.command("list")
def list_steps(
    config: str = typer.Option(None, "--config", "-c", help="Path to nodeprep YAML configuration"),
    platform: str = typer.Option(None, help="Platform variant (auto, rocky, debian)"),
):
    """Show the ordered preparation steps for this host."""
    prep_config = load_config(config, platform=platform)
    with handle_errors():
        preparer = build_preparer(prep_config, dry_run=True)
    typer.echo(f"📋 Steps for {preparer.platform}:")
    for index, step in enumerate(preparer.steps, 1):
        requires = f" (after {', '.join(step.requires)})" if step.requires else ""
        typer.echo(f"{index:>2}. {step.name:<20} {step.description}{requires}")
