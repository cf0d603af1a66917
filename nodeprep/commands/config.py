import typer
import yaml

from nodeprep.commands import load_config

app = typer.Typer()


@app.command("show")
def show_config(
    config: str = typer.Option(None, "--config", "-c", help="Path to nodeprep YAML configuration"),
):
    """Print the effective configuration after files and environment are applied."""
    prep_config = load_config(config)
    typer.echo(yaml.safe_dump(prep_config.model_dump(), default_flow_style=False, sort_keys=False))


@app.command("validate")
def validate_config(
    file: str = typer.Argument(..., help="Configuration file to validate"),
):
    """Validate a nodeprep configuration file."""
    typer.echo(f"🔍 Validating {file}")
    prep_config = load_config(file)
    typer.echo(
        f"✅ {file} is valid (CRI-O {prep_config.crio_version}, "
        f"Kubernetes {prep_config.kubernetes_version})"
    )
