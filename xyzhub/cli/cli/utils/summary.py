from collections import Counter
from typing import Any

from xyzhub.cli.cli.utils.common import format_timestamp
from xyzhub.cli.cli.utils.rich_utils import console, rich_print_section_separator, rich_print_table
from xyzhub.models.models.features import XYZ_NAMESPACE


def _namespace(feature: dict[str, Any]) -> dict[str, Any]:
    properties = feature.get("properties") or {}
    meta = properties.get(XYZ_NAMESPACE)
    return meta if isinstance(meta, dict) else {}


def build_summary(features: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Count features, geometry types and tags, and collect the creation and
    update date ranges of ``features``.
    """
    tag_counts: Counter = Counter()
    geometry_counts: Counter = Counter()
    created: list[float] = []
    updated: list[float] = []

    for feature in features:
        meta = _namespace(feature)
        tag_counts.update(meta.get("tags") or [])
        geometry = feature.get("geometry")
        if isinstance(geometry, dict) and geometry.get("type"):
            geometry_counts[geometry["type"]] += 1
        if isinstance(meta.get("createdAt"), int | float):
            created.append(meta["createdAt"])
        if isinstance(meta.get("updatedAt"), int | float):
            updated.append(meta["updatedAt"])

    return {
        "count": len(features),
        "unique_tag_count": len(tag_counts),
        "all_tags": list(tag_counts),
        "tag_counts": dict(tag_counts.most_common()),
        "geometry_counts": dict(geometry_counts),
        "created_range": (min(created), max(created)) if created else None,
        "updated_range": (min(updated), max(updated)) if updated else None,
    }


def summarize(
    features: list[dict[str, Any]], space_id: str, upload: bool = False
) -> dict[str, Any]:
    """
    Print the feature summary of a space, or of an upload when ``upload`` is set.
    """
    summary = build_summary(features)

    if upload:
        rich_print_section_separator("Upload Summary")
    else:
        rich_print_section_separator(f"Summary for Space {space_id}")
    console.print(f"Total {summary['count']} features")

    geometry_rows = [
        {"GeometryType": geometry_type, "Count": count}
        for geometry_type, count in summary["geometry_counts"].items()
    ]
    if geometry_rows:
        rich_print_table(geometry_rows, ["GeometryType", "Count"])
    else:
        console.print("No geometry object found")

    console.print(f"Total unique tag Count : {summary['unique_tag_count']}")
    console.print(f"Unique tag list  : {summary['all_tags']}", highlight=False)
    tag_rows = [{"TagName": tag, "Count": count} for tag, count in summary["tag_counts"].items()]
    rich_print_table(tag_rows, ["TagName", "Count"])

    if not upload:
        for label, key in (("created", "created_range"), ("updated", "updated_range")):
            if summary[key]:
                start, end = summary[key]
                console.print(
                    f"Features {label} from {format_timestamp(start)} to {format_timestamp(end)}"
                )
    return summary


def build_property_summary(
    features: list[dict[str, Any]], properties: list[str]
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """
    Count the values of each property in ``properties``.

    Returns:
        tuple: value rows (``PropertyName``, ``Value``, ``Count``) grouped by
            property name, most frequent value first, and the number of
            distinct values per property, largest first
    """
    counts: dict[str, Counter] = {prop: Counter() for prop in properties}
    for feature in features:
        values = dict(feature.get("properties") or {})
        values["id"] = feature.get("id")
        for prop in properties:
            value = values.get(prop)
            # Lists and dicts are not hashable
            if isinstance(value, list | dict):
                value = str(value)
            counts[prop][value] += 1

    value_rows = []
    for prop in sorted(properties, key=str.lower):
        for value, count in counts[prop].most_common():
            value_rows.append({"PropertyName": prop, "Value": value, "Count": count})

    unique_rows = sorted(
        ({"PropertyName": prop, "Count": len(counts[prop])} for prop in properties),
        key=lambda row: row["Count"],
        reverse=True,
    )
    return value_rows, unique_rows


def analyze(features: list[dict[str, Any]], properties: list[str], space_id: str):
    """Print per-property value counts for a space."""
    value_rows, unique_rows = build_property_summary(features, properties)
    rich_print_table(value_rows, ["PropertyName", "Value", "Count"])
    console.print(f"Total unique property values in space {space_id} :")
    rich_print_table(unique_rows, ["PropertyName", "Count"])
    return value_rows, unique_rows
