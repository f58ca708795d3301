"""Aggregation strategies: value, trend, partition, progress and table."""

from dashmetrics.aggregations.base import AggregationStrategy
from dashmetrics.aggregations.partition import (
    ClassifierGrouping,
    ColumnGrouping,
    DateRangeGrouping,
    Grouping,
    NumericRangeGrouping,
    PartitionAggregation,
)
from dashmetrics.aggregations.progress import (
    DynamicTarget,
    LiteralTarget,
    PercentOfTotalTarget,
    PreviousPeriodTarget,
    ProgressAggregation,
    TargetPolicy,
)
from dashmetrics.aggregations.table import TableAggregation, TableShape
from dashmetrics.aggregations.trend import TrendAggregation
from dashmetrics.aggregations.value import ValueAggregation

__all__ = [
    "AggregationStrategy",
    "ClassifierGrouping",
    "ColumnGrouping",
    "DateRangeGrouping",
    "DynamicTarget",
    "Grouping",
    "LiteralTarget",
    "NumericRangeGrouping",
    "PartitionAggregation",
    "PercentOfTotalTarget",
    "PreviousPeriodTarget",
    "ProgressAggregation",
    "TableAggregation",
    "TableShape",
    "TargetPolicy",
    "TrendAggregation",
    "ValueAggregation",
]
