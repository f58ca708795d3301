"""
Metric Result Payload Models

Purpose:
--------
Pydantic models for the serialized shape of every metric result. These
are what the dashboard UI consumes and what the cache stores, so field
names here are a stable contract.

Data Models:
------------
- ValuePayload: Single value with optional previous-period comparison
- TrendPayload / TrendPoint: Bucketed time series
- PartitionPayload / PartitionPoint: Categorical breakdown for pie charts
- ProgressPayload: Value measured against a target
- TablePayload / ColumnPayload / ActionPayload: Tabular rows with actions
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

Number = int | float


class ValuePayload(BaseModel):
    """
    Serialized single-value result.

    Comparison fields are only present when a previous value was supplied;
    ``percentage_change`` is null when no comparison is available
    (previous value of zero).
    """

    value: Number | None = Field(..., description="Transformed current value")
    formatted_value: str = Field(..., description="Display string for the current value")
    has_no_data: bool = Field(..., description="True when the card should render its empty state")
    previous: Number | None = Field(default=None, description="Transformed previous-period value")
    formatted_previous: str | None = Field(default=None, description="Display string for previous value")
    percentage_change: float | None = Field(default=None, description="Change vs previous period (%)")
    change_direction: Literal["up", "down"] | None = Field(
        default=None, description="Direction of change vs previous period"
    )


class TrendPoint(BaseModel):
    """One chart point of a trend."""

    label: str = Field(..., description="Bucket key")
    value: Number = Field(..., description="Transformed bucket value")
    formatted_value: str = Field(..., description="Display string for the bucket value")


class TrendPayload(BaseModel):
    """Serialized trend result."""

    trend: dict[str, Number] = Field(..., description="Bucket key to value, chronological")
    chart_data: list[TrendPoint] = Field(..., description="Chart-ready points")
    has_no_data: bool = Field(..., description="True when the trend is empty")
    current_value: Number | None = Field(default=None, description="Latest bucket value")
    formatted_current_value: str | None = Field(default=None, description="Display of latest value")
    trend_sum: Number | None = Field(default=None, description="Sum across buckets")
    formatted_trend_sum: str | None = Field(default=None, description="Display of trend sum")


class PartitionPoint(BaseModel):
    """One slice of a partition chart."""

    key: str = Field(..., description="Category key")
    label: str = Field(..., description="Display label for the category")
    value: Number = Field(..., description="Transformed category value")
    formatted_value: str = Field(..., description="Display string for the category value")
    percentage: float = Field(..., description="Share of total (%), one decimal")
    color: str = Field(..., description="Resolved slice color")


class PartitionPayload(BaseModel):
    """Serialized partition result."""

    partitions: dict[str, Number] = Field(..., description="Category key to value")
    chart_data: list[PartitionPoint] = Field(..., description="Chart-ready slices")
    total: Number = Field(..., description="Sum of all category values")
    formatted_total: str = Field(..., description="Display string for the total")
    has_no_data: bool = Field(..., description="True when there are no categories")


class ProgressPayload(BaseModel):
    """Serialized progress result."""

    value: Number | None = Field(..., description="Transformed current value")
    target: Number | None = Field(..., description="Transformed target value")
    remaining: Number = Field(..., ge=0, description="max(0, target - value)")
    formatted_value: str = Field(..., description="Display string for the value")
    formatted_target: str = Field(..., description="Display string for the target")
    formatted_remaining: str = Field(..., description="Display string for the remaining amount")
    percentage: float = Field(..., description="Progress towards target (%)")
    is_complete: bool = Field(..., description="Value reached the target")
    exceeds_target: bool = Field(..., description="Value is above the target")
    progress_color: str = Field(..., description="Bar color for the current percentage")
    has_no_data: bool = Field(..., description="True when there is no current value")


class ColumnPayload(BaseModel):
    """Serialized table column descriptor."""

    key: str
    label: str
    sortable: bool = True
    align: Literal["left", "center", "right"] = "left"
    width: str | None = None


class ActionPayload(BaseModel):
    """Serialized table row action descriptor (URL still templated)."""

    key: str
    label: str
    icon: str | None = None
    color: str | None = None
    url: str | None = None
    target: str = "_self"
    conditional: bool = False


class TablePayload(BaseModel):
    """Serialized table result."""

    data: list[dict[str, Any]] = Field(..., description="Formatted rows with _actions and _row_id")
    columns: list[ColumnPayload] = Field(..., description="Column descriptors in display order")
    actions: list[ActionPayload] = Field(..., description="Row action descriptors")
    empty_text: str = Field(..., description="Text shown when the table is empty")
    sortable: bool = Field(..., description="Whether the UI may sort columns")
    default_sort: str | None = Field(default=None, description="Initial sort column")
    default_sort_direction: Literal["asc", "desc"] = Field(default="asc", description="Initial sort direction")
    has_no_data: bool = Field(..., description="True when there are no rows")
    total_rows: int = Field(..., ge=0, description="Number of rows")
