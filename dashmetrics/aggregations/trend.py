"""Time-bucketed trend aggregation."""

from __future__ import annotations

from dashmetrics.aggregations.base import AggregationStrategy, parse_function
from dashmetrics.models.request import MetricRequest
from dashmetrics.results.trend import TrendResult
from dashmetrics.sources.base import AggregateFunction, QuerySource
from dashmetrics.timeframes import BucketUnit, RangeResolver, auto_unit


class TrendAggregation(AggregationStrategy):
    """
    One aggregate per time bucket over the current window, ascending.

    With ``unit=None`` the bucket width comes from ``auto_unit`` on the
    request's range token, so the unit is a pure function of
    (range, requested unit).
    """

    kind = "trend"

    def __init__(
        self,
        source: QuerySource,
        function: AggregateFunction | str = AggregateFunction.COUNT,
        column: str | None = None,
        unit: BucketUnit | str | None = None,
    ):
        super().__init__(source)
        self.function = parse_function(function)
        self.column = column
        self.unit = BucketUnit(unit) if unit is not None else None

    @property
    def single_aggregate(self) -> tuple[AggregateFunction, str | None]:
        return self.function, self.column

    def unit_for(self, request: MetricRequest) -> BucketUnit:
        return self.unit or auto_unit(request.range_token)

    async def compute(self, request: MetricRequest, resolver: RangeResolver) -> TrendResult:
        buckets = await self.source.aggregate_by_bucket(
            self.function,
            self.column,
            self.window_for(request, resolver),
            self.unit_for(request),
            request.timezone,
        )
        return TrendResult(buckets)

    def empty_result(self) -> TrendResult:
        return TrendResult({})
