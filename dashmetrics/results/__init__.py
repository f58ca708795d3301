"""Metric result types and the shared formatting pipeline."""

from dashmetrics.results.base import (
    MetricResult,
    NumberFormat,
    format_currency,
    format_date,
    format_number,
    truncate_text,
)
from dashmetrics.results.partition import DEFAULT_PALETTE, PartitionResult
from dashmetrics.results.progress import ProgressResult
from dashmetrics.results.table import Action, Column, TableResult
from dashmetrics.results.trend import TrendResult
from dashmetrics.results.value import ValueResult

__all__ = [
    "Action",
    "Column",
    "DEFAULT_PALETTE",
    "MetricResult",
    "NumberFormat",
    "PartitionResult",
    "ProgressResult",
    "TableResult",
    "TrendResult",
    "ValueResult",
    "format_currency",
    "format_date",
    "format_number",
    "truncate_text",
]
