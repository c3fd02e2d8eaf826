import time
from collections.abc import Awaitable, Callable
from typing import IO, Any

import httpx
import typer
from pydantic import ValidationError

from xyzhub.cli.cli.utils.api_calls import ApiError, api_upload_features, create_api_client
from xyzhub.cli.cli.utils.chunks import chunkify
from xyzhub.cli.cli.utils.readers import (
    InputParseError,
    read_csv_as_chunks,
    read_csv_rows,
    read_gpx,
    read_geojson_as_chunks,
    read_json_file,
    read_line_as_chunks,
    read_line_from_file,
    read_shapefile,
    read_stdin,
    resolve_input_path,
)
from xyzhub.cli.cli.utils.rich_utils import (
    console,
    rich_print_checked_statement,
    rich_print_table,
)
from xyzhub.cli.cli.utils.summary import summarize
from xyzhub.cli.cli.utils.tags import collate, get_file_name, merge_all_tags
from xyzhub.cli.cli.utils.transform import transform
from xyzhub.cli.cli.utils.upload_queue import UploadQueue
from xyzhub.cli.cli_logging import logger
from xyzhub.models.models.cli import CLIConfig
from xyzhub.models.models.features import XYZ_NAMESPACE, DuplicateRecord, FeatureCollection
from xyzhub.models.models.upload import UploadOptions, UploadSummary, UploadTask

STREAM_HINT = (
    "you can stream your uploads of CSV, GeoJSON and GeoJSONL files using the -s option. "
    "This will allow you to upload very large files, and will dramatically reduce the "
    "upload time for files of any size."
)
LONGITUDE_OUT_OF_BOUNDS = "The longitude (1st) value in coordinates of the Point is out of bounds"

Uploader = Callable[[UploadTask], Awaitable[Any]]


def input_kind(path: str) -> str:
    """Classify an input path: ``geojsonl``, ``csv``, ``shp``, ``gpx`` or ``json``."""
    lowered = path.lower()
    if lowered.endswith(".geojsonl"):
        return "geojsonl"
    if lowered.endswith((".csv", ".txt")):
        return "csv"
    if lowered.endswith(".shp"):
        return "shp"
    if lowered.endswith(".gpx"):
        return "gpx"
    return "json"


def make_uploader(
    client: httpx.AsyncClient, print_errors: bool = False, compress: bool = True
) -> Uploader:
    """Build the queue's upload callable, writing each task to its space."""

    async def upload(task: UploadTask):
        try:
            return await api_upload_features(
                client,
                task.space_id,
                task.features,
                retry_count=task.retry_count,
                compress=compress,
            )
        except ApiError as e:
            if print_errors:
                console.print(f"\nFailed to upload : {e.message}", highlight=False)
            elif LONGITUDE_OUT_OF_BOUNDS in e.message:
                console.print(
                    "\nsome features have longitudes out of bounds (> 180 or < -180) "
                    "-- use -e to see the full error message"
                )
            raise

    return upload


def document_to_features(document: Any, options: UploadOptions) -> list[dict[str, Any]]:
    """
    Features of a single JSON document: a Feature, a FeatureCollection, a list
    of those, or a list of row objects converted like CSV rows.
    """
    if isinstance(document, dict):
        return collate([document])
    if isinstance(document, list):
        if all(
            isinstance(item, dict) and item.get("type") in ("Feature", "FeatureCollection")
            for item in document
        ):
            return collate(document)
        if all(isinstance(item, dict) for item in document):
            return transform(document, options)
    raise InputParseError("Expected a GeoJSON Feature, FeatureCollection or a list of objects")


def validate_features(features: list[dict[str, Any]], source: str) -> None:
    try:
        FeatureCollection.model_validate({"type": "FeatureCollection", "features": features})
    except ValidationError as e:
        raise InputParseError(f"Invalid GeoJSON in {source}: {e}") from e


def print_duplicates(duplicates: list[DuplicateRecord], kept: int, total: int) -> None:
    console.print("*" * 63)
    console.print(
        "We detected duplicate features in this chunk and only the first was uploaded. "
        "Features that had duplicates:"
    )
    rich_print_table([d.model_dump() for d in duplicates], ["id", "geometry", "properties"])
    console.print(f"uploading {kept} out of {total} records")
    console.print("*" * 63)


def prepare_features(
    features: list[dict[str, Any]],
    options: UploadOptions,
    file_tag: str | None,
    source: str,
) -> tuple[list[dict[str, Any]], list[DuplicateRecord]]:
    """Validate ``features``, then assign ids and tags; duplicates are reported."""
    validate_features(features, source)
    total = len(features)
    kept, duplicates = merge_all_tags(
        features,
        tags=options.tags,
        tag_properties=options.tag_properties,
        id_properties=options.id_properties,
        file_tag=file_tag,
        unique=options.unique,
    )
    if duplicates:
        print_duplicates(duplicates, len(kept), total)
    return kept, duplicates


def property_samples(features: list[dict[str, Any]], max_samples: int = 3) -> dict[str, list[Any]]:
    """Up to ``max_samples`` example values for every property, in first-seen order."""
    samples: dict[str, list[Any]] = {}
    for feature in features:
        for name, value in (feature.get("properties") or {}).items():
            if name == XYZ_NAMESPACE:
                continue
            values = samples.setdefault(name, [])
            if len(values) < max_samples:
                values.append(value)
    return samples


def prompt_field_selection(features: list[dict[str, Any]], options: UploadOptions) -> UploadOptions:
    """Ask which properties become tags and which form the feature id."""
    samples = property_samples(features)
    if not samples:
        rich_print_checked_statement("No properties found to choose from", "warning")
        return options

    rich_print_table(
        [{"property": name, "samples": values} for name, values in samples.items()],
        ["property", "samples"],
        title="Properties",
    )
    ptag = typer.prompt(
        "Properties to use as tags (comma separated, empty for none)",
        default=options.ptag or "",
        show_default=False,
    )
    id_fields = typer.prompt(
        "Properties to use as feature id (comma separated, empty for none)",
        default=options.id_fields or "",
        show_default=False,
    )
    selected = options.model_copy(update={"ptag": ptag or None, "id_fields": id_fields or None})
    for name in selected.tag_properties + selected.id_properties:
        if name not in samples:
            rich_print_checked_statement(f"Property '{name}' not found in the data", "warning")
    return selected


def read_features(path: str, kind: str, options: UploadOptions) -> list[dict[str, Any]]:
    if kind == "geojsonl":
        return collate(read_line_from_file(path))
    if kind == "csv":
        rows = read_csv_rows(path, delimiter=options.delimiter, quote=options.quote)
        return transform(rows, options)
    if kind == "shp":
        return read_shapefile(path)
    if kind == "gpx":
        return read_gpx(path)
    return document_to_features(read_json_file(path), options)


async def upload_features(
    features: list[dict[str, Any]],
    space_id: str,
    options: UploadOptions,
    uploader: Uploader,
    label: str,
    file_tag: str | None = None,
) -> UploadSummary:
    """Upload an in-memory feature list in chunks, then print its summary."""
    kept, duplicates = prepare_features(features, options, file_tag, label)

    queue = UploadQueue(uploader)
    for chunk in chunkify(kept, options.chunk):
        await queue.send(UploadTask(space_id=space_id, features=chunk))
    state = await queue.shutdown()
    console.print()

    rich_print_checked_statement(f"'{label}' uploaded to space '{space_id}'", "success")
    if state.failed:
        rich_print_checked_statement(
            "not all the features could be successfully uploaded "
            "-- to print rejected features, run command with -e",
            "warning",
        )
        rich_print_table(
            [{"uploaded": state.uploaded, "failed": state.failed, "total": len(kept)}],
            ["uploaded", "failed", "total"],
            title="Upload Summary",
        )
    else:
        summarize(kept, space_id, upload=True)

    return UploadSummary(
        space_id=space_id,
        file=label,
        uploaded=state.uploaded,
        failed=state.failed,
        total=len(kept),
        duplicates=len(duplicates),
    )


async def stream_file(
    path: str,
    kind: str,
    space_id: str,
    options: UploadOptions,
    uploader: Uploader,
    file_tag: str | None = None,
) -> UploadSummary:
    """
    Stream a file through the upload queue, one task per batch read.

    If the reader fails, the uploads already queued are still awaited before
    the error propagates.
    """
    queue = UploadQueue(uploader)
    totals = {"total": 0, "duplicates": 0}

    async def consumer(batch: list[Any]) -> UploadQueue:
        if not batch:
            return queue
        features = transform(batch, options) if kind == "csv" else collate(batch)
        kept, duplicates = prepare_features(features, options, file_tag, path)
        totals["total"] += len(kept)
        totals["duplicates"] += len(duplicates)
        if kept:
            await queue.send(UploadTask(space_id=space_id, features=kept))
        return queue

    try:
        if kind == "geojsonl":
            state = await read_line_as_chunks(path, options.chunk, consumer)
        elif kind == "csv":
            state = await read_csv_as_chunks(
                path, options.chunk, consumer, delimiter=options.delimiter, quote=options.quote
            )
        else:
            state = await read_geojson_as_chunks(path, options.chunk, consumer)
    except Exception:
        logger.error(f"Streaming {path} aborted, waiting for queued uploads")
        await queue.shutdown()
        console.print()
        raise
    console.print()
    if not totals["total"]:
        rich_print_checked_statement(f"No features found in {path}", "warning")

    return UploadSummary(
        space_id=space_id,
        file=path,
        uploaded=state.uploaded,
        failed=state.failed,
        total=totals["total"],
        duplicates=totals["duplicates"],
        streamed=True,
    )


async def upload_file(
    path: str,
    space_id: str,
    options: UploadOptions,
    uploader: Uploader,
    timeout: float = 60.0,
) -> UploadSummary:
    kind = input_kind(path)
    if not options.stream and kind not in ("shp", "gpx"):
        rich_print_checked_statement(STREAM_HINT, "info")

    start = time.perf_counter()
    file_tag = get_file_name(path)
    with resolve_input_path(path, timeout=timeout) as local_path:
        if options.stream:
            summary = await stream_file(local_path, kind, space_id, options, uploader, file_tag)
            summary.file = path
        else:
            features = read_features(local_path, kind, options)
            if options.assign:
                options = prompt_field_selection(features, options)
            summary = await upload_features(features, space_id, options, uploader, path, file_tag)
    summary.elapsed_seconds = time.perf_counter() - start
    print_upload_rate(summary)
    return summary


async def upload_stdin(
    space_id: str, options: UploadOptions, uploader: Uploader, stdin: IO[str] | None = None
) -> UploadSummary:
    start = time.perf_counter()
    features = document_to_features(read_stdin(stdin), options)
    if options.assign:
        options = prompt_field_selection(features, options)
    summary = await upload_features(features, space_id, options, uploader, "stdin")
    summary.elapsed_seconds = time.perf_counter() - start
    print_upload_rate(summary)
    return summary


def print_upload_rate(summary: UploadSummary) -> None:
    console.print(
        f"{summary.uploaded} features uploaded to space '{summary.space_id}' in "
        f"{summary.elapsed_seconds:.2f} seconds, at the rate of {summary.rate} features per second",
        highlight=False,
    )


async def upload_to_space(
    space_id: str,
    options: UploadOptions,
    CLI_config: CLIConfig,
    client: httpx.AsyncClient | None = None,
    stdin: IO[str] | None = None,
) -> list[UploadSummary]:
    """
    Upload every file of ``options.file`` (comma separated), or standard input
    when no file is given, to ``space_id``.

    Returns:
        list: one UploadSummary per input
    """
    CLI_config = CLI_config.with_token(options.token)
    owns_client = client is None
    if client is None:
        client = create_api_client(CLI_config)
    uploader = make_uploader(client, print_errors=options.errors, compress=CLI_config.gzip)

    summaries = []
    try:
        if not options.files:
            summaries.append(await upload_stdin(space_id, options, uploader, stdin))
        for path in options.files:
            logger.info(f"Uploading {path} to space {space_id}")
            summaries.append(
                await upload_file(path, space_id, options, uploader, timeout=CLI_config.timeout)
            )
    finally:
        if owns_client:
            await client.aclose()
    return summaries
