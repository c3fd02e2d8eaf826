import json
from collections.abc import Callable
from typing import Annotated, Any

import httpx
import typer
from pydantic import ValidationError

from xyzhub.cli.cli.utils.readers import (
    InputParseError,
    read_csv_rows,
    read_gpx,
    read_shapefile,
    resolve_input_path,
)
from xyzhub.cli.cli.utils.rich_utils import rich_print_checked_statement
from xyzhub.cli.cli.utils.transform import transform
from xyzhub.cli.cli_logging import logger
from xyzhub.models.models.upload import UploadOptions

app = typer.Typer()

InputPath = Annotated[str, typer.Argument(help="File or URL to convert")]
OutputPath = Annotated[
    str | None, typer.Argument(help="GeoJSON file to write, standard output when omitted")
]


def convert(path: str, output: str | None, read: Callable[[str], list[dict[str, Any]]]) -> None:
    """
    Read ``path`` with ``read`` and write the features as a FeatureCollection.

    Read errors are printed and exit with code 1.
    """
    try:
        with resolve_input_path(path) as local_path:
            features = read(local_path)
    except (InputParseError, FileNotFoundError, httpx.HTTPError) as e:
        logger.error(f"Conversion of {path} failed: {e}")
        rich_print_checked_statement(str(e), "error")
        raise typer.Exit(code=1)

    collection = {"type": "FeatureCollection", "features": features}
    if not output:
        typer.echo(json.dumps(collection, indent=3, ensure_ascii=False))
        return
    with open(output, "w", encoding="utf-8") as f:
        json.dump(collection, f, ensure_ascii=False)
    rich_print_checked_statement(f"Exported {len(features)} features to {output}", "success")


@app.command()
def csv2geo(
    path: InputPath,
    output: OutputPath = None,
    lat: Annotated[str | None, typer.Option("--lat", "-y", help="Latitude column")] = None,
    lon: Annotated[str | None, typer.Option("--lon", "-x", help="Longitude column")] = None,
    alt: Annotated[str | None, typer.Option("--alt", "-z", help="Altitude column")] = None,
    point: Annotated[
        str | None, typer.Option("--point", help="Column holding 'lat lon' as text")
    ] = None,
    string_fields: Annotated[
        str | None,
        typer.Option("--string-fields", help="Columns kept as strings, comma separated"),
    ] = None,
    delimiter: Annotated[
        str, typer.Option("--delimiter", "-d", help="CSV delimiter")
    ] = ",",
    quote: Annotated[str, typer.Option("--quote", "-q", help="CSV quote character")] = '"',
):
    """
    Convert a CSV file to GeoJSON.
    """
    try:
        options = UploadOptions(
            lat=lat,
            lon=lon,
            alt=alt,
            point=point,
            string_fields=string_fields,
            delimiter=delimiter,
            quote=quote,
        )
    except ValidationError as e:
        for error in e.errors():
            rich_print_checked_statement(error["msg"].removeprefix("Value error, "), "error")
        raise typer.Exit(code=1)

    def read(local_path: str) -> list[dict[str, Any]]:
        rows = read_csv_rows(local_path, delimiter=options.delimiter, quote=options.quote)
        return transform(rows, options)

    convert(path, output, read)


@app.command()
def shp2geo(path: InputPath, output: OutputPath = None):
    """
    Convert a shapefile to GeoJSON, reprojected to WGS84.
    """
    convert(path, output, read_shapefile)


@app.command()
def gpx2geo(path: InputPath, output: OutputPath = None):
    """
    Convert the waypoints, routes and tracks of a GPX file to GeoJSON.
    """
    convert(path, output, read_gpx)
