import typer
from typer.main import get_command

from xyzhub.cli.cli.commands.config import app as config
from xyzhub.cli.cli.commands.space import app as space
from xyzhub.cli.cli.commands.standalone import register_standalone_commands
from xyzhub.cli.cli.commands.transform import app as transform
from xyzhub.cli.cli_logging import setup_logging as setup_cli_logging
from xyzhub.models.logging import setup_logging as setup_models_logging

app = typer.Typer()

# Register standalone commands (version)
register_standalone_commands(app)


@app.callback()
def verbose_callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging", is_eager=True
    ),
    verbose_level=typer.Option(
        "INFO",
        "--verbose-level",
        "-vl",
        help="Set verbose logging level",
        is_eager=True,
    ),
):
    """Set up logging for all commands"""
    setup_cli_logging(verbose, verbose_level)
    setup_models_logging(verbose, verbose_level)


app.add_typer(config, name="config", help="Configuration commands")
app.add_typer(space, name="space", help="Space management and upload commands")
app.add_typer(transform, name="transform", help="Convert CSV, shapefile and GPX data to GeoJSON")
xyzhubcli = get_command(app)


def main():
    app()


if __name__ == "__main__":
    main()
