from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

DEFAULT_CHUNK_SIZE = 200
DEFAULT_RETRY_COUNT = 3

# Formats that can only be read in one go
NON_STREAMABLE_SUFFIXES = (".shp", ".gpx")


def split_csv_option(value: str | None) -> list[str]:
    """Split a comma separated option, dropping blank entries."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class UploadOptions(BaseModel):
    """Options of the ``space upload`` command."""

    file: str | None = None
    chunk: int = DEFAULT_CHUNK_SIZE
    tags: str = ""
    ptag: str | None = None
    id_fields: str | None = None
    unique: bool = False
    override: bool = False
    stream: bool = False
    assign: bool = False
    lat: str | None = None
    lon: str | None = None
    alt: str | None = None
    point: str | None = None
    string_fields: str | None = None
    delimiter: str = ","
    quote: str = '"'
    errors: bool = False
    token: str | None = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("chunk")
    def validate_chunk(cls, v):
        if v <= 0:
            raise ValueError("chunk size must be a positive integer")
        return v

    @field_validator("delimiter", "quote")
    def validate_single_character(cls, v):
        if len(v) != 1:
            raise ValueError("delimiter and quote must be a single character")
        return v

    @model_validator(mode="after")
    def check_conflicts(self):
        if self.unique and self.override:
            raise ValueError(
                "conflicting options -- you must use either unique or override. "
                "Refer to 'xyzhub-cli space upload --help' for help"
            )
        if self.assign and self.stream:
            raise ValueError(
                "conflicting options - you cannot choose assign mode "
                "while selecting streaming option"
            )
        if self.stream and any(f.lower().endswith(NON_STREAMABLE_SUFFIXES) for f in self.files):
            raise ValueError(
                "Stream option is not supported for this file type, "
                "please execute the command without -s / --stream option."
            )
        if not self.override:
            self.unique = True
        return self

    @property
    def files(self) -> list[str]:
        return split_csv_option(self.file)

    @property
    def tag_properties(self) -> list[str]:
        return split_csv_option(self.ptag)

    @property
    def id_properties(self) -> list[str]:
        return split_csv_option(self.id_fields)

    @property
    def string_field_names(self) -> list[str]:
        return split_csv_option(self.string_fields)


class UploadTask(BaseModel):
    """A chunk of features bound to its destination space."""

    space_id: str
    features: list[dict[str, Any]]
    retry_count: int = DEFAULT_RETRY_COUNT

    @property
    def feature_count(self) -> int:
        return len(self.features)


class QueuePhase(str, Enum):
    ACCEPTING = "accepting"
    DRAINING = "draining"
    CLOSED = "closed"


class QueueState(BaseModel):
    uploaded: int = 0
    failed: int = 0
    in_flight: int = 0
    pending: int = 0


class UploadSummary(BaseModel):
    space_id: str
    file: str | None = None
    uploaded: int = 0
    failed: int = 0
    total: int = 0
    duplicates: int = 0
    elapsed_seconds: float = 0.0
    streamed: bool = False

    @property
    def rate(self) -> int:
        if self.elapsed_seconds <= 0:
            return self.uploaded
        return round(self.uploaded / self.elapsed_seconds)

