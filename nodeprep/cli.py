import typer
import logging
import sys

from nodeprep.commands import state
from nodeprep.commands import prepare, verify, steps, config

app = typer.Typer(help="Prepare Linux hosts to join a Kubernetes cluster.")

# Add all command groups
app.add_typer(prepare.app, name="prepare", help="Prepare this host")
app.add_typer(verify.app, name="verify", help="Re-check a prepared host")
app.add_typer(steps.app, name="steps", help="Inspect the preparation pipeline")
app.add_typer(config.app, name="config", help="Inspect and validate configuration")


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """nodeprep - Kubernetes node preparation CLI."""
    state["debug"] = debug
    # Disable debug logging for noisy libraries
    if not debug:
        logging.getLogger("urllib3").setLevel(logging.WARNING)


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        if state["debug"]:
            import traceback
            logging.error(f"Unhandled exception: {e}\n{traceback.format_exc()}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)
