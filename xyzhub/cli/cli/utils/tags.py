import hashlib
import json
import os
import re
from typing import Any

from xyzhub.cli.cli_logging import logger
from xyzhub.models.models.features import XYZ_NAMESPACE, DuplicateRecord

_WHITESPACE = re.compile(r"\s+")


def md5_sum(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def to_json(value: Any) -> str:
    """Compact JSON, keeping key order, as the hub serializes it."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def content_hash(feature: dict[str, Any]) -> str:
    """MD5 of the feature serialized without its ``id``."""
    return md5_sum(to_json({k: v for k, v in feature.items() if k != "id"}))


def split_tags(tags: str | None) -> list[str]:
    if not tags:
        return []
    return [tag.strip().lower() for tag in tags.split(",") if tag.strip()]


def normalize_tag_value(value: Any) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return _WHITESPACE.sub("_", str(value).lower())


def add_tags_to_list(value: Any, tag_property: str, final_tags: list[str]) -> list[str]:
    """Append ``value`` and ``property@value`` to ``final_tags``."""
    normalized = normalize_tag_value(value)
    final_tags.append(normalized)
    final_tags.append(f"{tag_property}@{normalized}")
    return final_tags


def format_id_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def existing_tags(meta: dict[str, Any]) -> list[Any]:
    """Tags already stored in a feature namespace, as a list of hashable values."""
    tags = meta.get("tags")
    if not tags:
        return []
    if not isinstance(tags, list):
        tags = [tags]
    return [to_json(tag) if isinstance(tag, dict | list) else tag for tag in tags]


def create_unique_id(id_properties: list[str], feature: dict[str, Any]) -> str:
    """Join the truthy values of ``id_properties`` with ``-``; missing ones are skipped."""
    properties = feature.get("properties") or {}
    values = [format_id_value(properties[name]) for name in id_properties if properties.get(name)]
    return "-".join(values)


def get_file_name(path: str | None) -> str | None:
    """Base name of ``path`` without its extension, used as a per-file tag."""
    if not path:
        return None
    base_name = os.path.basename(path.rstrip("/"))
    if "." in base_name:
        base_name = base_name[: base_name.rindex(".")]
    return base_name or None


def collate(items: list[Any]) -> list[dict[str, Any]]:
    """Flatten a mix of Feature and FeatureCollection objects into features."""
    features: list[dict[str, Any]] = []
    for item in items:
        item_type = item.get("type") if isinstance(item, dict) else None
        if item_type == "Feature":
            features.append(item)
        elif item_type == "FeatureCollection":
            features.extend(item.get("features") or [])
        else:
            logger.warning(f"Unknown type {item_type}, skipping entry")
    return features


def merge_all_tags(
    features: list[dict[str, Any]],
    tags: str | None = "",
    tag_properties: list[str] | None = None,
    id_properties: list[str] | None = None,
    file_tag: str | None = None,
    unique: bool = False,
) -> tuple[list[dict[str, Any]], list[DuplicateRecord]]:
    """
    Assign ids and merge tags into every feature, in place.

    Tags come from ``tags`` (comma separated), tags already stored in the
    feature namespace, the values of ``tag_properties`` (``value`` and
    ``property@value``) and ``file_tag``.

    Features without an id get one derived from ``id_properties`` when given.
    Otherwise, in ``unique`` mode, the id becomes the MD5 of the feature
    content; the original id is kept as ``originalFeatureId`` and features
    whose hash was already seen are reported as duplicates and left out.

    Args:
        features: Features to tag, mutated in place
        tags: Comma separated tags applied to every feature
        tag_properties: Property names whose values become tags
        id_properties: Property names whose values form the feature id
        file_tag: Extra tag for every feature, usually the file base name
        unique: Enforce content based uniqueness

    Returns:
        tuple: The features to upload and the duplicates that were dropped
    """
    input_tags = split_tags(tags)
    seen: dict[Any, dict[str, Any]] = {}
    kept: list[dict[str, Any]] = []
    duplicates: list[DuplicateRecord] = []

    for feature in features:
        final_tags = list(input_tags)
        orig_id = None

        if not feature.get("id") and id_properties:
            derived_id = create_unique_id(id_properties, feature)
            if derived_id:
                feature["id"] = derived_id
        elif unique:
            orig_id = feature.pop("id", None)
            feature["id"] = content_hash(feature)
            if feature["id"] in seen:
                duplicates.append(
                    DuplicateRecord(
                        id=orig_id,
                        geometry=to_json(feature.get("geometry")),
                        properties=to_json(feature.get("properties")),
                    )
                )

        if unique:
            feature_id = feature.get("id")
            if feature_id is None:
                kept.append(feature)
            elif feature_id not in seen:
                seen[feature_id] = feature
                kept.append(feature)

        if not isinstance(feature.get("properties"), dict):
            feature["properties"] = {}
        properties = feature["properties"]
        meta = properties.get(XYZ_NAMESPACE)
        if not isinstance(meta, dict):
            meta = {}
        final_tags.extend(existing_tags(meta))

        for tag_property in tag_properties or []:
            value = properties.get(tag_property)
            if not value:
                continue
            if isinstance(value, list):
                for entry in value:
                    add_tags_to_list(entry, tag_property, final_tags)
            else:
                add_tags_to_list(value, tag_property, final_tags)

        if file_tag:
            final_tags.append(file_tag)

        if orig_id:
            meta["originalFeatureId"] = orig_id

        meta["tags"] = list(dict.fromkeys(final_tags))
        properties[XYZ_NAMESPACE] = meta

    if unique and duplicates:
        logger.info(f"{len(duplicates)} duplicate features detected, keeping {len(kept)}")
        return kept, duplicates
    return features, []
