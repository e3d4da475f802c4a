"""Pydantic models for query results.

results are shaped as data frames: a time field followed by one or more
value fields of the same length. this is what the visualisation layer
consumes so we keep the wire names (refId, displayNameFromDS, ...) intact.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from monitorforge.models.query import CamelModel

TIME_FIELD_NAME = "Time"
VALUE_FIELD_NAME = "Value"


class DataLink(CamelModel):
    title: str
    target_blank: bool = False
    url: str


class FieldConfig(CamelModel):
    display_name_from_ds: str | None = Field(default=None, alias="displayNameFromDS")
    unit: str | None = None
    links: list[DataLink] = Field(default_factory=list)


class FrameField(CamelModel):
    """A named column of a frame."""

    name: str
    values: list[Any] = Field(default_factory=list)
    labels: dict[str, str] | None = None
    config: FieldConfig | None = None

    def set_display_name_as_field_name(self) -> None:
        if self.config is None:
            self.config = FieldConfig()
        self.config.display_name_from_ds = self.name


class FrameMeta(CamelModel):
    executed_query_string: str = ""
    custom: dict[str, Any] = Field(default_factory=dict)


class Frame(CamelModel):
    """A tabular result: equal-length fields aligned by row index."""

    name: str = ""
    ref_id: str = ""
    fields: list[FrameField] = Field(default_factory=list)
    meta: FrameMeta | None = None

    @classmethod
    def time_series(cls, ref_id: str, value_name: str = VALUE_FIELD_NAME) -> "Frame":
        """Create an empty time + value frame."""
        return cls(
            ref_id=ref_id,
            fields=[FrameField(name=TIME_FIELD_NAME), FrameField(name=value_name)],
        )

    def append_row(self, *values: Any) -> None:
        if len(values) != len(self.fields):
            raise ValueError(
                f"Row has {len(values)} values but frame has {len(self.fields)} fields"
            )
        for frame_field, value in zip(self.fields, values):
            frame_field.values.append(value)

    @property
    def row_count(self) -> int:
        return len(self.fields[0].values) if self.fields else 0

    @property
    def value_field(self) -> FrameField:
        return self.fields[1]

    @property
    def times(self) -> list[datetime]:
        return self.fields[0].values


class DataResponse(CamelModel):
    """Result for one ref id - frames, an error, or frames plus an error."""

    frames: list[Frame] = Field(default_factory=list)
    error: str | None = None


class QueryDataResponse(BaseModel):
    """Results of a whole batch keyed by ref id."""

    responses: dict[str, DataResponse] = Field(default_factory=dict)
