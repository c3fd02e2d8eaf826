import asyncio
from typing import Annotated

import httpx
import typer
from pydantic import ValidationError

from xyzhub.cli.cli.utils.api_calls import (
    ApiError,
    api_clear_features,
    api_create_space,
    api_delete_space,
    api_get_features_page,
    api_iterate_space,
    api_list_spaces,
    handle_api_error,
    run_with_client,
)
from xyzhub.cli.cli.utils.common import DEFAULT_CLI_CONFIG_PATH, load_xyzhub_config
from xyzhub.cli.cli.utils.readers import InputParseError
from xyzhub.cli.cli.utils.rich_utils import (
    rich_print_checked_statement,
    rich_print_command_usage,
    rich_print_json,
    rich_print_table,
)
from xyzhub.cli.cli.utils.summary import analyze as analyze_properties
from xyzhub.cli.cli.utils.summary import summarize
from xyzhub.cli.cli.utils.upload import upload_to_space
from xyzhub.cli.cli_logging import logger
from xyzhub.models.models.features import XYZ_NAMESPACE
from xyzhub.models.models.upload import DEFAULT_CHUNK_SIZE, UploadOptions, split_csv_option

app = typer.Typer()

DEFAULT_SPACE_DESCRIPTION = "a new XYZ Hub space created from commandline"

CLIConfigPath = Annotated[
    str, typer.Option("--CLI-config-path", help="Path to the configuration file")
]


def _print_validation_error(e: ValidationError) -> None:
    for error in e.errors():
        rich_print_checked_statement(error["msg"].removeprefix("Value error, "), "error")


@app.command("list")
def list_spaces(
    CLI_config_path: CLIConfigPath = DEFAULT_CLI_CONFIG_PATH,
    raw: Annotated[bool, typer.Option("--raw", "-r", help="Show raw space definitions")] = False,
    prop: Annotated[
        list[str] | None, typer.Option("--prop", help="Property fields to include in the table")
    ] = None,
    token: Annotated[str | None, typer.Option("--token", help="Token to use")] = None,
):
    """
    List the spaces of the configured account.
    """
    rich_print_command_usage("space list")
    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path).with_token(token)
    spaces = run_with_client(CLI_config, api_list_spaces)

    if raw:
        rich_print_json("Spaces: ", spaces)
        return
    if not spaces:
        rich_print_checked_statement("No xyzspace found", "info")
        return
    rich_print_table(spaces, prop or ["id", "title", "description"])


@app.command()
def show(
    space_id: Annotated[str, typer.Argument(help="ID of the space")],
    CLI_config_path: CLIConfigPath = DEFAULT_CLI_CONFIG_PATH,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Number of features")] = 5000,
    handle: Annotated[
        str | None, typer.Option("--handle", help="Handle to continue the iteration from")
    ] = None,
    tags: Annotated[str | None, typer.Option("--tags", "-t", help="Tags to filter on")] = None,
    raw: Annotated[bool, typer.Option("--raw", "-r", help="Show raw GeoJSON")] = False,
    prop: Annotated[
        list[str] | None, typer.Option("--prop", help="Property fields to include in the table")
    ] = None,
    token: Annotated[str | None, typer.Option("--token", help="Token to use")] = None,
):
    """
    Show the features of a space.
    """
    rich_print_command_usage("space show")
    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path).with_token(token)
    page = run_with_client(
        CLI_config,
        lambda client: api_get_features_page(
            client, space_id, limit=limit, handle=handle, tags=tags
        ),
    )

    if raw:
        rich_print_json(f"Features of space {space_id}: ", page)
        return
    features = page.get("features") or []
    if prop:
        columns = ["id"] + [f"properties.{p}" for p in prop]
    else:
        columns = [
            "id",
            "geometry.type",
            f"properties.{XYZ_NAMESPACE}.tags",
            f"properties.{XYZ_NAMESPACE}.createdAt",
            f"properties.{XYZ_NAMESPACE}.updatedAt",
        ]
    rich_print_table(features, columns, title=f"Space {space_id}")
    if page.get("handle"):
        rich_print_checked_statement(f"Next handle: {page['handle']}", "info")


@app.command()
def describe(
    space_id: Annotated[str, typer.Argument(help="ID of the space")],
    CLI_config_path: CLIConfigPath = DEFAULT_CLI_CONFIG_PATH,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Page size")] = 5000,
    tags: Annotated[str | None, typer.Option("--tags", "-t", help="Tags to filter on")] = None,
    token: Annotated[str | None, typer.Option("--token", help="Token to use")] = None,
):
    """
    Summarize a space: feature count, geometry types, tags and date ranges.
    """
    rich_print_command_usage("space describe")
    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path).with_token(token)
    features = run_with_client(
        CLI_config, lambda client: api_iterate_space(client, space_id, limit=limit, tags=tags)
    )
    summarize(features, space_id, upload=False)


@app.command()
def analyze(
    space_id: Annotated[str, typer.Argument(help="ID of the space")],
    prop: Annotated[
        list[str] | None, typer.Option("--prop", "-p", help="Properties to analyze")
    ] = None,
    CLI_config_path: CLIConfigPath = DEFAULT_CLI_CONFIG_PATH,
    limit: Annotated[int, typer.Option("--limit", "-l", help="Page size")] = 5000,
    tags: Annotated[str | None, typer.Option("--tags", "-t", help="Tags to filter on")] = None,
    token: Annotated[str | None, typer.Option("--token", help="Token to use")] = None,
):
    """
    Count the distinct values of the given properties in a space.
    """
    rich_print_command_usage("space analyze")
    properties = [p for value in prop or [] for p in split_csv_option(value)]
    if not properties:
        rich_print_checked_statement("At least one --prop is required", "error")
        raise typer.Exit(code=1)

    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path).with_token(token)
    features = run_with_client(
        CLI_config, lambda client: api_iterate_space(client, space_id, limit=limit, tags=tags)
    )
    analyze_properties(features, properties, space_id)


@app.command()
def create(
    CLI_config_path: CLIConfigPath = DEFAULT_CLI_CONFIG_PATH,
    title: Annotated[
        str, typer.Option("--title", "-t", help="Title of the space")
    ] = DEFAULT_SPACE_DESCRIPTION,
    message: Annotated[
        str, typer.Option("--message", "-d", help="Description of the space")
    ] = DEFAULT_SPACE_DESCRIPTION,
    token: Annotated[str | None, typer.Option("--token", help="Token to use")] = None,
):
    """
    Create a new space.
    """
    rich_print_command_usage("space create")
    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path).with_token(token)
    space = run_with_client(CLI_config, lambda client: api_create_space(client, title, message))
    logger.info(f"Space created: {space}")
    rich_print_checked_statement(f"xyzspace '{space.get('id')}' created successfully", "success")


@app.command()
def delete(
    space_id: Annotated[str, typer.Argument(help="ID of the space")],
    CLI_config_path: CLIConfigPath = DEFAULT_CLI_CONFIG_PATH,
    force: Annotated[bool, typer.Option("--force", help="Do not ask for confirmation")] = False,
    token: Annotated[str | None, typer.Option("--token", help="Token to use")] = None,
):
    """
    Delete a space and all of its features.
    """
    rich_print_command_usage("space delete")
    if not force and not typer.confirm(f"Are you sure you want to delete space '{space_id}'?"):
        rich_print_checked_statement("Deletion cancelled", "info")
        raise typer.Exit()
    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path).with_token(token)
    run_with_client(CLI_config, lambda client: api_delete_space(client, space_id))
    rich_print_checked_statement(f"xyzspace '{space_id}' deleted successfully", "success")


@app.command()
def clear(
    space_id: Annotated[str, typer.Argument(help="ID of the space")],
    CLI_config_path: CLIConfigPath = DEFAULT_CLI_CONFIG_PATH,
    tags: Annotated[
        str | None, typer.Option("--tags", "-t", help="Comma separated tags, '*' for all")
    ] = None,
    ids: Annotated[
        str | None, typer.Option("--ids", "-i", help="Comma separated feature ids")
    ] = None,
    force: Annotated[bool, typer.Option("--force", help="Do not ask for confirmation")] = False,
    token: Annotated[str | None, typer.Option("--token", help="Token to use")] = None,
):
    """
    Delete features of a space by tag and/or id.
    """
    rich_print_command_usage("space clear")
    tag_list = split_csv_option(tags)
    id_list = split_csv_option(ids)
    if not tag_list and not id_list:
        rich_print_checked_statement(
            "No tags or ids given, use --tags '*' to clear the whole space", "error"
        )
        raise typer.Exit(code=1)
    if not force and not typer.confirm(f"Are you sure you want to clear space '{space_id}'?"):
        rich_print_checked_statement("Clear cancelled", "info")
        raise typer.Exit()

    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path).with_token(token)
    run_with_client(
        CLI_config, lambda client: api_clear_features(client, space_id, tags=tag_list, ids=id_list)
    )
    rich_print_checked_statement(f"data cleared successfully from space '{space_id}'", "success")


@app.command()
def upload(
    space_id: Annotated[str, typer.Argument(help="ID of the space")],
    CLI_config_path: CLIConfigPath = DEFAULT_CLI_CONFIG_PATH,
    file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="Files or URLs to upload, comma separated"),
    ] = None,
    chunk: Annotated[
        int, typer.Option("--chunk", "-c", help="Number of features per upload request")
    ] = DEFAULT_CHUNK_SIZE,
    tags: Annotated[
        str, typer.Option("--tags", "-t", help="Tags for every uploaded feature")
    ] = "",
    ptag: Annotated[
        str | None,
        typer.Option("--ptag", "-p", help="Property names whose values become tags"),
    ] = None,
    id_fields: Annotated[
        str | None,
        typer.Option("--id", "-i", help="Property names used to build the feature id"),
    ] = None,
    unique: Annotated[
        bool, typer.Option("--unique", "-u", help="Drop features with identical content")
    ] = False,
    override: Annotated[
        bool, typer.Option("--override", "-o", help="Keep the feature ids of the input")
    ] = False,
    stream: Annotated[
        bool, typer.Option("--stream", "-s", help="Stream the file instead of loading it")
    ] = False,
    assign: Annotated[
        bool, typer.Option("--assign", "-a", help="Choose tag and id properties interactively")
    ] = False,
    lat: Annotated[str | None, typer.Option("--lat", help="Latitude column")] = None,
    lon: Annotated[str | None, typer.Option("--lon", help="Longitude column")] = None,
    alt: Annotated[str | None, typer.Option("--alt", help="Altitude column")] = None,
    point: Annotated[
        str | None, typer.Option("--point", help="Column holding 'lat lon' as text")
    ] = None,
    string_fields: Annotated[
        str | None,
        typer.Option("--string-fields", help="Columns kept as strings, comma separated"),
    ] = None,
    delimiter: Annotated[str, typer.Option("--delimiter", help="CSV delimiter")] = ",",
    quote: Annotated[str, typer.Option("--quote", help="CSV quote character")] = '"',
    errors: Annotated[
        bool, typer.Option("--errors", "-e", help="Print the features rejected by the server")
    ] = False,
    token: Annotated[str | None, typer.Option("--token", help="Token to use")] = None,
):
    """
    Upload GeoJSON, GeoJSONL, CSV, shapefile or GPX data to a space.

    Without --file, a GeoJSON document is read from standard input.
    """
    rich_print_command_usage("space upload")
    try:
        options = UploadOptions(
            file=file,
            chunk=chunk,
            tags=tags,
            ptag=ptag,
            id_fields=id_fields,
            unique=unique,
            override=override,
            stream=stream,
            assign=assign,
            lat=lat,
            lon=lon,
            alt=alt,
            point=point,
            string_fields=string_fields,
            delimiter=delimiter,
            quote=quote,
            errors=errors,
            token=token,
        )
    except ValidationError as e:
        _print_validation_error(e)
        raise typer.Exit(code=1)

    CLI_config = load_xyzhub_config(yaml_config_path=CLI_config_path)
    try:
        summaries = asyncio.run(upload_to_space(space_id, options, CLI_config))
    except (InputParseError, FileNotFoundError, httpx.HTTPError) as e:
        logger.error(f"Upload to space {space_id} aborted: {e}")
        rich_print_checked_statement(str(e), "error")
        raise typer.Exit(code=1)
    except ApiError as e:
        rich_print_checked_statement(handle_api_error(e), "error")
        raise typer.Exit(code=1)

    for summary in summaries:
        logger.info(
            f"{summary.file}: {summary.uploaded} uploaded, {summary.failed} failed, "
            f"{summary.duplicates} duplicates"
        )
