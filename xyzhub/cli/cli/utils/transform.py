import math
import re
from typing import Any

from xyzhub.models.models.features import XYZ_NAMESPACE
from xyzhub.models.models.upload import UploadOptions

LAT_FIELDS = ("y", "ycoord", "ycoordinate", "coordy", "coordinatey", "latitude", "lat")
LON_FIELDS = (
    "x",
    "xcoord",
    "xcoordinate",
    "coordx",
    "coordinatex",
    "longitude",
    "lon",
    "lng",
    "long",
    "longitud",
)
ALT_FIELDS = ("z", "zcoord", "zcoordinate", "coordz", "coordinatez", "altitude", "alt")

_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_POINT_PART = re.compile(r"-?\d+(?:\.\d+)?")


def parse_number(value: Any) -> int | float | None:
    """Parse ``value`` as a finite number, ``None`` when it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return value if math.isfinite(value) else None
    if value is None:
        return None
    text = str(value).strip()
    if not _NUMBER.match(text):
        return None
    if re.fullmatch(r"[+-]?\d+", text):
        return int(text)
    number = float(text)
    return number if math.isfinite(number) else None


def parse_boolean(value: Any) -> bool | None:
    text = str(value).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    return None


def convert_value(value: Any, keep_string: bool = False) -> Any:
    """Turn a CSV cell into a number or a boolean when it looks like one."""
    if value is None:
        return ""
    if not isinstance(value, str):
        return value
    if not keep_string:
        number = parse_number(value)
        if number is not None:
            return number
        boolean = parse_boolean(value)
        if boolean is not None:
            return boolean
    return value.strip()


def _matches(key: str, override: str | None, candidates: tuple[str, ...]) -> bool:
    if override:
        return key.lower() == override.strip().lower()
    return key.lower() in candidates


def to_geometry(lat: Any, lon: Any, alt: Any = None) -> dict[str, Any] | None:
    """Build a Point geometry, ``None`` when the position is unusable."""
    latitude = parse_number(lat)
    longitude = parse_number(lon)
    if latitude is None or longitude is None or (latitude == 0 and longitude == 0):
        return None
    coordinates = [longitude, latitude]
    altitude = parse_number(alt)
    if altitude:
        coordinates.append(altitude)
    return {"type": "Point", "coordinates": coordinates}


def _is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == "" or parse_number(value) == 0


def to_geojson_feature(row: dict[str, Any], options: UploadOptions) -> dict[str, Any]:
    """
    Convert a CSV row into a GeoJSON Point feature.

    Latitude, longitude and altitude are read from the columns named by
    ``--lat``, ``--lon`` and ``--alt``, or else from well known column names
    (``lat``, ``latitude``, ``y``, ...). ``--point`` names a column holding
    both as text (``"52.5 13.4"``). Every other column becomes a property.

    A row without a usable position gets a ``null`` geometry and is tagged
    ``null_island`` (missing or zero coordinates) or ``invalid``.
    """
    string_fields = set(options.string_field_names)
    properties: dict[str, Any] = {}
    lat = lon = alt = None

    for raw_key, value in row.items():
        key = str(raw_key).strip()
        if options.point and key == options.point.strip():
            parts = _POINT_PART.findall(str(value or ""))
            if len(parts) >= 2:
                lat, lon = parts[0], parts[1]
        elif options.lon and _matches(key, options.lon, LON_FIELDS):
            lon = value
        elif options.lat and _matches(key, options.lat, LAT_FIELDS):
            lat = value
        elif options.alt and _matches(key, options.alt, ALT_FIELDS):
            alt = value
        elif not options.lat and _matches(key, None, LAT_FIELDS):
            lat = value
        elif not options.lon and _matches(key, None, LON_FIELDS):
            lon = value
        elif not options.alt and _matches(key, None, ALT_FIELDS):
            alt = value
        else:
            properties[key] = convert_value(value, keep_string=key in string_fields)

    geometry = to_geometry(lat, lon, alt)
    if geometry is None:
        tag = "null_island" if _is_blank(lat) or _is_blank(lon) else "invalid"
        properties[XYZ_NAMESPACE] = {"tags": [tag]}
    return {"type": "Feature", "geometry": geometry, "properties": properties}


def transform(rows: list[dict[str, Any]], options: UploadOptions) -> list[dict[str, Any]]:
    return [to_geojson_feature(row, options) for row in rows]
