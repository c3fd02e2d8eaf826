"""GeoJSON validation models.

Features travel through the upload pipeline as plain dicts, since the tag
merger mutates them in place. These models are only used to check that an
input document is well-formed GeoJSON before anything is sent to a space.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

XYZ_NAMESPACE = "@ns:com:here:xyz"

GEOMETRY_TYPES = (
    "Point",
    "MultiPoint",
    "LineString",
    "MultiLineString",
    "Polygon",
    "MultiPolygon",
)


class Geometry(BaseModel):
    type: str
    coordinates: list[Any] | None = None
    geometries: list["Geometry"] | None = None

    model_config = ConfigDict(extra="allow")

    @field_validator("type")
    def validate_type(cls, v):
        if v not in GEOMETRY_TYPES and v != "GeometryCollection":
            raise ValueError(f"Unsupported geometry type: {v}")
        return v

    @model_validator(mode="after")
    def check_members(self):
        if self.type == "GeometryCollection":
            if self.geometries is None:
                raise ValueError("GeometryCollection requires 'geometries'")
        elif self.coordinates is None:
            raise ValueError(f"{self.type} requires 'coordinates'")
        elif self.type == "Point" and len(self.coordinates) < 2:
            raise ValueError("Point coordinates need at least two positions")
        return self


class Feature(BaseModel):
    type: Literal["Feature"]
    id: str | int | None = None
    geometry: Geometry | None = None
    properties: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class FeatureCollection(BaseModel):
    type: Literal["FeatureCollection"]
    features: list[Feature]

    model_config = ConfigDict(extra="allow")


class DuplicateRecord(BaseModel):
    """Snapshot of a feature whose content hash collided with an earlier one."""

    id: str | int | None = None
    geometry: str
    properties: str
