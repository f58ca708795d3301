"""Categorical breakdown result for pie-style charts."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Self

from dashmetrics.models.payloads import PartitionPayload
from dashmetrics.results.base import MetricResult

DEFAULT_PALETTE: tuple[str, ...] = (
    "#3B82F6",  # blue
    "#10B981",  # green
    "#F59E0B",  # amber
    "#EF4444",  # red
    "#8B5CF6",  # violet
    "#06B6D4",  # cyan
    "#84CC16",  # lime
    "#F97316",  # orange
    "#EC4899",  # pink
    "#6B7280",  # gray
)


class PartitionResult(MetricResult):
    """
    Mapping of category key to value, with label and color overrides.

    Keys without a color override take palette colors in first-seen order,
    cycling after ten, so the same data always renders with the same colors.
    """

    kind = "partition"

    def __init__(self, partitions: Mapping[Any, Any] | None = None):
        super().__init__()
        self._partitions: dict[str, Any] = {str(key): value for key, value in (partitions or {}).items()}
        self._labels: dict[str, str] = {}
        self._colors: dict[str, str] = {}

    def labels(self, labels: Mapping[Any, str]) -> Self:
        self._ensure_mutable()
        self._labels.update({str(key): label for key, label in labels.items()})
        return self

    def label(self, key: Any, label: str) -> Self:
        return self.labels({key: label})

    def colors(self, colors: Mapping[Any, str]) -> Self:
        self._ensure_mutable()
        self._colors.update({str(key): color for key, color in colors.items()})
        return self

    def color(self, key: Any, color: str) -> Self:
        return self.colors({key: color})

    @property
    def partitions(self) -> dict[str, Any]:
        return {key: self.apply_transform(value) for key, value in self._partitions.items()}

    @property
    def total(self) -> Any:
        return sum(value for value in self.partitions.values() if value is not None)

    @property
    def has_no_data(self) -> bool:
        return not self._partitions

    def resolved_colors(self) -> dict[str, str]:
        resolved: dict[str, str] = {}
        palette_index = 0
        for key in self._partitions:
            if key in self._colors:
                resolved[key] = self._colors[key]
            else:
                resolved[key] = DEFAULT_PALETTE[palette_index % len(DEFAULT_PALETTE)]
                palette_index += 1
        return resolved

    def chart_data(self) -> list[dict[str, Any]]:
        partitions = self.partitions
        total = self.total
        colors = self.resolved_colors()
        return [
            {
                "key": key,
                "label": self._labels.get(key, key),
                "value": value,
                "formatted_value": self.display(value),
                "percentage": round(value / total * 100, 1) if total else 0.0,
                "color": colors[key],
            }
            for key, value in partitions.items()
        ]

    def to_payload(self) -> dict[str, Any]:
        total = self.total
        payload = PartitionPayload(
            partitions=self.partitions,
            chart_data=self.chart_data(),
            total=total,
            formatted_total=self.display(total),
            has_no_data=self.has_no_data,
        )
        return payload.model_dump(mode="json")
