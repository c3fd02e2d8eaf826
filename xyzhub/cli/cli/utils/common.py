import os
from datetime import datetime

import typer
from pydantic import ValidationError, validate_call

from xyzhub.cli.cli.utils.rich_utils import rich_print_checked_statement
from xyzhub.cli.cli_logging import logger
from xyzhub.models.models.cli import DEFAULT_API_BASE_URL, CLIConfig
from xyzhub.models.utils import get_config

DEFAULT_CLI_CONFIG_PATH = "~/.xyzhub/cli.yaml"


@validate_call(validate_return=True)
def generate_api_headers(CLI_config: CLIConfig | dict) -> dict:
    """
    Generate the API headers.
    """
    if not CLI_config:
        raise ValueError("CLI_config is required.")

    if isinstance(CLI_config, CLIConfig):
        cli_config_dict = CLI_config.model_dump()
    else:
        cli_config_dict = CLI_config

    token = cli_config_dict["token"]["access_token"]

    return {"Authorization": f"Bearer {token}"}


@validate_call(validate_return=True)
def format_timestamp(timestamp: float | int) -> str:
    """
    Format an epoch timestamp, in seconds or milliseconds.
    """
    # The hub stores createdAt/updatedAt in milliseconds
    if timestamp > 1e11:
        timestamp = timestamp / 1000
    try:
        dt = datetime.fromtimestamp(timestamp)
        return dt.strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, OverflowError, OSError):
        return str(timestamp)


@validate_call(validate_return=True)
def validate_cli_config(cli_config: dict) -> CLIConfig:
    """
    Validate the XYZ Hub CLI configuration.
    """
    config = CLIConfig(
        api_base_url=cli_config.get("api_base_url") or DEFAULT_API_BASE_URL,
        token=cli_config["token"],
        timeout=cli_config.get("timeout", 60.0),
        gzip=cli_config.get("gzip", True),
    )
    logger.info(f"XYZ Hub CLI configuration validated for {config.api_base_url}")
    return config


@validate_call(validate_return=True)
def load_xyzhub_config(yaml_config_path: str = DEFAULT_CLI_CONFIG_PATH) -> CLIConfig:
    """
    Load the XYZ Hub CLI configuration file.
    """
    try:
        rich_print_checked_statement("Loading XYZ Hub configuration...", "loading")
        config = get_config(os.path.expanduser(yaml_config_path))
        return validate_cli_config(config)
    except FileNotFoundError:
        logger.error(f"XYZ Hub configuration file not found: {yaml_config_path}")
        rich_print_checked_statement(
            f"Configuration file not found: {yaml_config_path}. "
            "Create it with your api_base_url and token.access_token.",
            "error",
        )
        raise typer.Exit(code=1)
    except (KeyError, ValueError, ValidationError) as e:
        logger.error(f"Invalid XYZ Hub configuration: {e}")
        rich_print_checked_statement(f"Invalid configuration in {yaml_config_path}: {e}", "error")
        raise typer.Exit(code=1)
