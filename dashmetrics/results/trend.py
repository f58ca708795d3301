"""Time series result keyed by bucket."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Self

from dashmetrics.models.payloads import TrendPayload
from dashmetrics.results.base import MetricResult


class TrendResult(MetricResult):
    """
    Ordered mapping of bucket key to value.

    Insertion order is chronological and is preserved through
    serialization. ``show_current_value`` and ``show_trend_sum`` add the
    latest bucket and the bucket total to the payload.
    """

    kind = "trend"

    def __init__(self, trend: Mapping[str, Any] | None = None):
        super().__init__()
        self._trend: dict[str, Any] = dict(trend or {})
        self._show_current_value = False
        self._show_trend_sum = False

    def show_current_value(self, show: bool = True) -> Self:
        self._ensure_mutable()
        self._show_current_value = show
        return self

    def show_trend_sum(self, show: bool = True) -> Self:
        self._ensure_mutable()
        self._show_trend_sum = show
        return self

    @property
    def trend(self) -> dict[str, Any]:
        return {key: self.apply_transform(value) for key, value in self._trend.items()}

    @property
    def current_value(self) -> Any:
        if not self._trend:
            return None
        return self.apply_transform(next(reversed(self._trend.values())))

    @property
    def trend_sum(self) -> Any:
        return sum(value for value in self.trend.values() if value is not None)

    @property
    def has_no_data(self) -> bool:
        return not self._trend

    def chart_data(self) -> list[dict[str, Any]]:
        return [
            {"label": key, "value": value, "formatted_value": self.display(value)}
            for key, value in self.trend.items()
        ]

    def to_payload(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "trend": self.trend,
            "chart_data": self.chart_data(),
            "has_no_data": self.has_no_data,
        }
        if self._show_current_value:
            current = self.current_value
            fields["current_value"] = current
            fields["formatted_current_value"] = self.display(current)
        if self._show_trend_sum:
            total = self.trend_sum
            fields["trend_sum"] = total
            fields["formatted_trend_sum"] = self.display(total)
        return TrendPayload(**fields).model_dump(mode="json", exclude_unset=True)
