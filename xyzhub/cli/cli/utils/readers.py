"""Input readers for the upload command.

One-shot readers load a whole file in memory. The ``read_*_as_chunks``
adapters stream it instead: records are handed to an async consumer in
batches of ``chunk_size`` and the next batch is only read once the consumer
returns, so a full upload queue slows down the file reads.
"""

import asyncio
import itertools
import json
import os
import sys
import tempfile
from collections.abc import Awaitable, Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import IO, Any
from urllib.parse import urlparse

import fiona
import httpx
import ijson
import polars as pl
from fiona.transform import transform_geom

from xyzhub.cli.cli.utils.upload_queue import UploadQueue
from xyzhub.cli.cli_logging import logger
from xyzhub.models.models.upload import QueueState

WGS84 = "EPSG:4326"
GPX_LAYERS = ("waypoints", "routes", "tracks")

Consumer = Callable[[list[Any]], Awaitable[UploadQueue]]


class InputParseError(ValueError):
    """An input file or document could not be decoded."""


def is_remote(path: str) -> bool:
    return path.startswith(("http://", "https://"))


@contextmanager
def resolve_input_path(path: str, timeout: float = 60.0) -> Iterator[str]:
    """
    Yield a local path for ``path``.

    Remote files are downloaded to a temporary file that keeps the URL's
    extension, and removed on exit. Local paths are yielded unchanged.
    """
    if not is_remote(path):
        if not os.path.exists(path):
            raise FileNotFoundError(f"The file '{path}' does not exist.")
        yield path
        return

    suffix = os.path.splitext(urlparse(path).path)[1]
    logger.info(f"Downloading {path}")
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        try:
            with httpx.stream("GET", path, follow_redirects=True, timeout=timeout) as response:
                response.raise_for_status()
                for data in response.iter_bytes():
                    tmp.write(data)
        except httpx.HTTPError:
            os.unlink(tmp.name)
            raise
    try:
        yield tmp.name
    finally:
        os.unlink(tmp.name)


# Record sources


def iter_json_lines(path: str) -> Iterator[Any]:
    """Yield one JSON value per non-blank line of ``path``."""
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise InputParseError(
                    f"Invalid JSON on line {line_number} of {path}: {e.msg}"
                ) from e


def iter_csv_rows(
    path: str, batch_size: int, delimiter: str = ",", quote: str = '"'
) -> Iterator[dict[str, Any]]:
    """Yield the rows of a CSV file as dicts keyed by the header, every value a string."""
    try:
        reader = pl.read_csv_batched(
            path,
            separator=delimiter,
            quote_char=quote,
            infer_schema_length=0,
            batch_size=batch_size,
        )
        while batches := reader.next_batches(1):
            for df in batches:
                yield from df.iter_rows(named=True)
    except pl.exceptions.PolarsError as e:
        raise InputParseError(f"Failed to read CSV file {path}: {e}") from e


def iter_geojson_features(path: str) -> Iterator[Any]:
    """Yield the members of the top-level ``features`` array of ``path``."""
    with open(path, "rb") as f:
        try:
            yield from ijson.items(f, "features.item", use_float=True)
        except ijson.JSONError as e:
            raise InputParseError(f"Invalid GeoJSON in {path}: {e}") from e


# One-shot readers


def read_line_from_file(path: str) -> list[Any]:
    return list(iter_json_lines(path))


def read_csv_rows(path: str, delimiter: str = ",", quote: str = '"') -> list[dict[str, Any]]:
    try:
        df = pl.read_csv(path, separator=delimiter, quote_char=quote, infer_schema_length=0)
    except pl.exceptions.PolarsError as e:
        raise InputParseError(f"Failed to read CSV file {path}: {e}") from e
    return df.to_dicts()


def read_json_file(path: str) -> Any:
    with open(path, encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise InputParseError(f"Invalid JSON in {path}: {e}") from e


def read_stdin(stream: IO[str] | None = None) -> Any:
    """Read a single JSON document from ``stream`` (standard input by default)."""
    data = (stream or sys.stdin).read()
    if not data.strip():
        raise InputParseError("Empty input, expected a GeoJSON document on standard input")
    try:
        return json.loads(data)
    except json.JSONDecodeError as e:
        raise InputParseError(f"Invalid JSON on standard input: {e}") from e


def read_shapefile(path: str) -> list[dict[str, Any]]:
    """
    Read a shapefile into GeoJSON features.

    Geometries are reprojected to WGS84 when the source uses another CRS.
    """
    with fiona.open(path) as src:
        features = read_collection(src, path)
    logger.debug(f"Read {len(features)} features from {path}")
    return features


def read_gpx(path: str) -> list[dict[str, Any]]:
    """Read the waypoints, routes and tracks of a GPX file into GeoJSON features."""
    features = []
    for layer in fiona.listlayers(path):
        if layer not in GPX_LAYERS:
            continue
        with fiona.open(path, layer=layer) as src:
            for feature in read_collection(src, path):
                feature["properties"] = {
                    k: v for k, v in feature["properties"].items() if v is not None
                }
                features.append(feature)
    logger.debug(f"Read {len(features)} features from {path}")
    return features


def read_collection(src: Any, path: str) -> list[dict[str, Any]]:
    source_crs = src.crs_wkt
    reproject = bool(src.crs) and src.crs.to_epsg() != 4326
    if reproject:
        logger.info(f"Reprojecting {path} to {WGS84}")
    features = []
    for record in src:
        geometry = record.geometry
        if geometry is not None and reproject:
            geometry = transform_geom(source_crs, WGS84, geometry)
        features.append(
            {
                "type": "Feature",
                "geometry": _plain(geometry),
                "properties": dict(record.properties or {}),
            }
        )
    return features


def _plain(geometry: Any) -> dict[str, Any] | None:
    # Coordinates come back as tuples, the rest of the pipeline expects JSON types
    if geometry is None:
        return None
    geo = geometry.__geo_interface__ if hasattr(geometry, "__geo_interface__") else geometry
    return json.loads(json.dumps({k: v for k, v in dict(geo).items() if v is not None}))


# Streaming adapters


def next_batch(records: Iterator[Any], chunk_size: int) -> list[Any]:
    return list(itertools.islice(records, chunk_size))


async def deliver_in_batches(
    records: Iterable[Any], chunk_size: int, consumer: Consumer, source: str | None = None
) -> QueueState:
    """
    Hand ``records`` to ``consumer`` in batches of ``chunk_size``.

    Each batch is read in a worker thread so uploads already queued keep
    running while the file is parsed. The remainder, possibly empty, is
    delivered once the source is exhausted, then the queue returned by the
    consumer is shut down.
    """
    records = iter(records)
    delivered = 0
    while True:
        batch = await asyncio.to_thread(next_batch, records, chunk_size)
        delivered += len(batch)
        if len(batch) < chunk_size:
            break
        await consumer(batch)
    if not delivered:
        logger.warning(f"No records found in {source or 'input'}")
    queue = await consumer(batch)
    return await queue.shutdown()


async def read_line_as_chunks(path: str, chunk_size: int, consumer: Consumer) -> QueueState:
    return await deliver_in_batches(iter_json_lines(path), chunk_size, consumer, source=path)


async def read_csv_as_chunks(
    path: str,
    chunk_size: int,
    consumer: Consumer,
    delimiter: str = ",",
    quote: str = '"',
) -> QueueState:
    rows = iter_csv_rows(path, chunk_size, delimiter=delimiter, quote=quote)
    return await deliver_in_batches(rows, chunk_size, consumer, source=path)


async def read_geojson_as_chunks(path: str, chunk_size: int, consumer: Consumer) -> QueueState:
    records = iter_geojson_features(path)
    return await deliver_in_batches(records, chunk_size, consumer, source=path)
