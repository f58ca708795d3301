"""Single value result with optional previous-period comparison."""

from __future__ import annotations

from typing import Any, Literal, Self

from dashmetrics.models.payloads import ValuePayload
from dashmetrics.results.base import MetricResult


class ValueResult(MetricResult):
    """
    Single aggregate value, optionally compared to the previous period.

    Example:
        ```python
        result = ValueResult(5).previous(2)
        result.percentage_change  # 150.0
        result.change_direction   # "up"
        ```
    """

    kind = "value"

    def __init__(self, value: Any = None):
        super().__init__()
        self._value = value
        self._previous: Any = None
        self._allow_zero_result = False

    def previous(self, value: Any) -> Self:
        self._ensure_mutable()
        self._previous = value
        return self

    def allow_zero_result(self, allow: bool = True) -> Self:
        """Treat an exact zero as real data instead of "no data"."""
        self._ensure_mutable()
        self._allow_zero_result = allow
        return self

    @property
    def raw_value(self) -> Any:
        return self._value

    @property
    def value(self) -> Any:
        return self.apply_transform(self._value)

    @property
    def previous_value(self) -> Any:
        return self.apply_transform(self._previous)

    @property
    def has_previous(self) -> bool:
        return self._previous is not None

    @property
    def percentage_change(self) -> float | None:
        """
        Change against the previous value in percent, rounded to 2 decimals.

        None when there is nothing to compare against (no current value, no
        previous value, or a previous value of zero).
        """
        current = self.value
        previous = self.previous_value
        if current is None or previous is None or previous == 0:
            return None
        return round((current - previous) / previous * 100, 2)

    @property
    def change_direction(self) -> Literal["up", "down"] | None:
        change = self.percentage_change
        if change is None:
            return None
        return "up" if change >= 0 else "down"

    @property
    def has_no_data(self) -> bool:
        value = self.value
        if value is None:
            return True
        return value == 0 and not self._allow_zero_result

    def to_payload(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "value": self.value,
            "formatted_value": self.display(self.value),
            "has_no_data": self.has_no_data,
        }
        if self.has_previous:
            fields.update(
                previous=self.previous_value,
                formatted_previous=self.display(self.previous_value),
                percentage_change=self.percentage_change,
                change_direction=self.change_direction,
            )
        return ValuePayload(**fields).model_dump(mode="json", exclude_unset=True)
