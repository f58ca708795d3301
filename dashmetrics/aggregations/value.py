"""Single value aggregation with previous-period comparison."""

from __future__ import annotations

from dashmetrics.aggregations.base import AggregationStrategy, parse_function
from dashmetrics.models.request import MetricRequest
from dashmetrics.results.value import ValueResult
from dashmetrics.sources.base import AggregateFunction, QuerySource
from dashmetrics.timeframes import RangeResolver


class ValueAggregation(AggregationStrategy):
    """
    One aggregate over the current window, compared to the previous window.

    Args:
        source: Query source to aggregate over
        function: count, sum, avg, max or min
        column: Column to aggregate (optional for count)
        compare: Also compute the previous-period value
    """

    kind = "value"

    def __init__(
        self,
        source: QuerySource,
        function: AggregateFunction | str = AggregateFunction.COUNT,
        column: str | None = None,
        compare: bool = True,
    ):
        super().__init__(source)
        self.function = parse_function(function)
        self.column = column
        self.compare = compare

    @property
    def single_aggregate(self) -> tuple[AggregateFunction, str | None]:
        return self.function, self.column

    async def compute(self, request: MetricRequest, resolver: RangeResolver) -> ValueResult:
        token = request.range_token
        window = self.window_for(request, resolver)
        current = await self.source.aggregate(self.function, self.column, window)
        result = ValueResult(current)

        # ALL has no comparable previous period
        if self.compare and window is not None:
            previous_window = resolver.resolve_previous(token, request.timezone)
            result.previous(await self.source.aggregate(self.function, self.column, previous_window))
        return result

    def empty_result(self) -> ValueResult:
        return ValueResult(None)
