from typing import Annotated

import typer

from xyzhub.cli.cli.utils.api_calls import api_check_server_accessibility, run_with_client
from xyzhub.cli.cli.utils.common import DEFAULT_CLI_CONFIG_PATH, load_xyzhub_config
from xyzhub.cli.cli.utils.rich_utils import (
    rich_print_checked_statement,
    rich_print_command_usage,
    rich_print_json,
)

app = typer.Typer()


@app.command()
def show_cli_config(
    CLI_config_path: Annotated[
        str, typer.Option("--CLI-config-path", help="Path to the configuration file")
    ] = DEFAULT_CLI_CONFIG_PATH,
):
    """
    Show the current XYZ Hub CLI configuration, with the token masked.
    """
    rich_print_command_usage("show_cli_config")

    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path)
    config = CLI_config.model_dump()
    token = config["token"]["access_token"]
    config["token"]["access_token"] = f"{token[:4]}...{token[-4:]}" if len(token) > 8 else "****"
    rich_print_json("Current XYZ Hub CLI Configuration: ", config)


@app.command()
def check_server_accessibility(
    CLI_config_path: Annotated[
        str, typer.Option("--CLI-config-path", help="Path to the configuration file")
    ] = DEFAULT_CLI_CONFIG_PATH,
):
    """
    Check that the configured hub answers with the configured token.
    """
    rich_print_command_usage("check_server_accessibility")
    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path)
    rich_print_checked_statement("Checking server accessibility...", "info")
    if run_with_client(CLI_config, api_check_server_accessibility):
        rich_print_checked_statement(f"{CLI_config.api_base_url} is accessible", "success")
    else:
        rich_print_checked_statement(f"Unable to access {CLI_config.api_base_url}", "error")
        raise typer.Exit(code=1)
