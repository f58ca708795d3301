"""Progress towards a target."""

from __future__ import annotations

from typing import Any, Self

from dashmetrics.models.payloads import ProgressPayload
from dashmetrics.results.base import MetricResult

COMPLETE_COLOR = "#10B981"
GOOD_COLOR = "#3B82F6"
WARNING_COLOR = "#F59E0B"
BEHIND_COLOR = "#EF4444"


class ProgressResult(MetricResult):
    """
    Current value measured against a target.

    ``percentage`` is ``value / target * 100`` (0 when the target is 0).
    With ``avoid_unwanted_progress`` the percentage is capped at 100 once the
    value passes its target.
    """

    kind = "progress"

    def __init__(self, value: Any = None, target: Any = None):
        super().__init__()
        self._value = value
        self._target = target
        self._avoid_unwanted_progress = False

    def target(self, target: Any) -> Self:
        self._ensure_mutable()
        self._target = target
        return self

    def avoid_unwanted_progress(self, avoid: bool = True) -> Self:
        self._ensure_mutable()
        self._avoid_unwanted_progress = avoid
        return self

    @property
    def value(self) -> Any:
        return self.apply_transform(self._value)

    @property
    def target_value(self) -> Any:
        return self.apply_transform(self._target)

    @property
    def percentage(self) -> float:
        value = self.value or 0
        target = self.target_value or 0
        if target == 0:
            return 0.0
        percentage = value / target * 100
        if self._avoid_unwanted_progress and percentage > 100:
            return 100.0
        rounded = round(percentage, 2)
        # Exactly 100 is reserved for value == target
        if rounded == 100 and value != target:
            return 99.99 if value < target else 100.01
        return rounded

    @property
    def remaining(self) -> Any:
        return max(0, (self.target_value or 0) - (self.value or 0))

    @property
    def is_complete(self) -> bool:
        target = self.target_value or 0
        return target > 0 and (self.value or 0) >= target

    @property
    def exceeds_target(self) -> bool:
        target = self.target_value or 0
        return target > 0 and (self.value or 0) > target

    @property
    def progress_color(self) -> str:
        percentage = self.percentage
        if percentage >= 100:
            return COMPLETE_COLOR
        if percentage >= 75:
            return GOOD_COLOR
        if percentage >= 50:
            return WARNING_COLOR
        return BEHIND_COLOR

    @property
    def has_no_data(self) -> bool:
        return self.value is None

    def to_payload(self) -> dict[str, Any]:
        payload = ProgressPayload(
            value=self.value,
            target=self.target_value,
            remaining=self.remaining,
            formatted_value=self.display(self.value),
            formatted_target=self.display(self.target_value),
            formatted_remaining=self.display(self.remaining),
            percentage=self.percentage,
            is_complete=self.is_complete,
            exceeds_target=self.exceeds_target,
            progress_color=self.progress_color,
            has_no_data=self.has_no_data,
        )
        return payload.model_dump(mode="json")
