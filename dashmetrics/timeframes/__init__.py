"""Range resolution and time bucketing."""

from dashmetrics.timeframes.bucketing import BucketUnit, auto_unit, bucket_key, bucket_start
from dashmetrics.timeframes.range_resolver import (
    DateWindow,
    RangeResolver,
    RangeToken,
    SymbolicRange,
    resolve_timezone,
)

__all__ = [
    "BucketUnit",
    "DateWindow",
    "RangeResolver",
    "RangeToken",
    "SymbolicRange",
    "auto_unit",
    "bucket_key",
    "bucket_start",
    "resolve_timezone",
]
