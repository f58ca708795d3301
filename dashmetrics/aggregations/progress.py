"""
Progress-to-target aggregation.

Target policies:
----------------
- LiteralTarget: a fixed number
- DynamicTarget: caller function ``(window) -> number``, sync or async
- PreviousPeriodTarget: the same aggregate over the previous window
- PercentOfTotalTarget: a percentage of the same aggregate over all time
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from dashmetrics.aggregations.base import AggregationStrategy, parse_function
from dashmetrics.exceptions import ConfigurationError
from dashmetrics.models.request import MetricRequest
from dashmetrics.results.progress import ProgressResult
from dashmetrics.sources.base import AggregateFunction, Number, QuerySource
from dashmetrics.timeframes import DateWindow, RangeResolver

TargetProvider = Callable[[DateWindow | None], Number | Awaitable[Number]]


class TargetPolicy(ABC):
    """Where a progress metric's target comes from."""

    @abstractmethod
    async def resolve(
        self,
        strategy: ProgressAggregation,
        request: MetricRequest,
        resolver: RangeResolver,
        window: DateWindow | None,
    ) -> Number | None:
        ...


@dataclass(frozen=True)
class LiteralTarget(TargetPolicy):
    value: Number

    async def resolve(self, strategy, request, resolver, window):
        return self.value


@dataclass(frozen=True)
class DynamicTarget(TargetPolicy):
    provider: TargetProvider

    async def resolve(self, strategy, request, resolver, window):
        target = self.provider(window)
        if inspect.isawaitable(target):
            target = await target
        return target


class PreviousPeriodTarget(TargetPolicy):
    """Beat last period: the target is the previous window's value."""

    async def resolve(self, strategy, request, resolver, window):
        if window is None:
            return None
        previous = resolver.resolve_previous(request.range_token, request.timezone)
        return await strategy.source.aggregate(strategy.function, strategy.column, previous)


@dataclass(frozen=True)
class PercentOfTotalTarget(TargetPolicy):
    """``target = all-time aggregate * percent / 100``."""

    percent: float

    async def resolve(self, strategy, request, resolver, window):
        total = await strategy.source.aggregate(strategy.function, strategy.column, None)
        return (total or 0) * self.percent / 100


def as_target_policy(target: Any) -> TargetPolicy:
    if isinstance(target, TargetPolicy):
        return target
    if callable(target):
        return DynamicTarget(target)
    if isinstance(target, (int, float)) and not isinstance(target, bool):
        return LiteralTarget(target)
    raise ConfigurationError(f"Unsupported progress target: {target!r}", details={"target": type(target).__name__})


class ProgressAggregation(AggregationStrategy):
    """
    One aggregate over the current window measured against a target.

    Example:
        ```python
        ProgressAggregation(source, target=1000, function="sum", column="total")
        ProgressAggregation(source, target=PreviousPeriodTarget())
        ProgressAggregation(source, target=lambda window: budget_for(window))
        ```
    """

    kind = "progress"

    def __init__(
        self,
        source: QuerySource,
        target: TargetPolicy | TargetProvider | Number,
        function: AggregateFunction | str = AggregateFunction.COUNT,
        column: str | None = None,
        avoid_unwanted_progress: bool = False,
    ):
        super().__init__(source)
        self.target = as_target_policy(target)
        self.function = parse_function(function)
        self.column = column
        self.avoid_unwanted_progress = avoid_unwanted_progress

    @property
    def single_aggregate(self) -> tuple[AggregateFunction, str | None]:
        return self.function, self.column

    async def compute(self, request: MetricRequest, resolver: RangeResolver) -> ProgressResult:
        window = self.window_for(request, resolver)
        value = await self.source.aggregate(self.function, self.column, window)
        target = await self.target.resolve(self, request, resolver, window)
        return ProgressResult(value, target).avoid_unwanted_progress(self.avoid_unwanted_progress)

    def empty_result(self) -> ProgressResult:
        return ProgressResult(None, None).avoid_unwanted_progress(self.avoid_unwanted_progress)
