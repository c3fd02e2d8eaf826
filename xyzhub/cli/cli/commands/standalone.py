from importlib.metadata import PackageNotFoundError, version

import typer


def register_standalone_commands(app: typer.Typer):
    @app.command("version")
    def version_cmd():
        """Show version information"""
        try:
            package_version = version("xyzhub-cli")
            typer.echo(f"XYZ Hub CLI version: {package_version}")
        except PackageNotFoundError:
            typer.echo("XYZ Hub CLI version: unknown (not installed)")
