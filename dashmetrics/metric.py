"""
Metric facade.

A Metric binds one aggregation strategy to the metadata a dashboard needs
(name, icon, color, ranges, help text), a cache policy and an
authorization predicate.

Configuration is fluent and happens once, at registration time. ``freeze()``
locks it; any later mutator raises ConfigurationError. Every result a metric
returns is frozen as well.

Example:
    ```python
    revenue = (
        Metric("Revenue", ValueAggregation(source, "sum", "total"))
        .with_icon("currency-dollar")
        .cache_for_minutes(5)
        .presenting(lambda result: result.currency("$"))
        .freeze()
    )
    result = await revenue.calculate(MetricRequest(range="MTD", timezone="Europe/Paris"))
    ```
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any, Self

import structlog

from dashmetrics.aggregations.base import AggregationStrategy
from dashmetrics.aggregations.trend import TrendAggregation
from dashmetrics.cache.keys import CacheKeyComposer
from dashmetrics.cache.ttl import CachePolicy, resolve_ttl
from dashmetrics.exceptions import ConfigurationError, UnsupportedOperationError
from dashmetrics.models.request import MetricRequest
from dashmetrics.observability.metrics import metric_calculation_duration_seconds
from dashmetrics.results.base import MetricResult, NumberFormat
from dashmetrics.results.trend import TrendResult
from dashmetrics.timeframes import BucketUnit, RangeResolver, RangeToken
from dashmetrics.timeframes.range_resolver import ALL_TIME_RANGE, DEFAULT_RANGES

logger = structlog.get_logger(__name__)

Presenter = Callable[[MetricResult], Any]
Authorizer = Callable[[MetricRequest], bool]


def slugify(name: str) -> str:
    """URI key from a display name: ``"New Users (30d)"`` -> ``"new-users-30d"``."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    if not slug:
        raise ConfigurationError(f"Cannot derive a uri key from {name!r}", details={"name": name})
    return slug


class Metric:
    """Dashboard metric: strategy plus metadata, cache policy and authorization."""

    def __init__(
        self,
        name: str,
        strategy: AggregationStrategy,
        uri_key: str | None = None,
        resolver: RangeResolver | None = None,
    ):
        self._name = name
        self._uri_key = slugify(uri_key or name)
        self.strategy = strategy
        self.resolver = resolver or RangeResolver()

        self._icon: str | None = None
        self._color: str | None = None
        self._format: str | NumberFormat | None = None
        self._help_text: str | None = None
        self._ranges: dict[Any, str] = dict(DEFAULT_RANGES)
        if strategy.kind == "partition":
            self._ranges.update(ALL_TIME_RANGE)
        self._meta: dict[str, Any] = {}
        self._authorizer: Authorizer | None = None

        self._cache_policy: CachePolicy = None
        self._cache_per_user = False
        self._cache_key_prefix: str | None = None
        self._cache_tags: list[str] = []

        self._presenters: list[Presenter] = []
        self._frozen = False

    def __repr__(self) -> str:
        return f"<Metric {self._uri_key} kind={self.strategy.kind}>"

    # Configuration

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise ConfigurationError(
                f"Metric {self._uri_key!r} is frozen; configure it before registration",
                details={"metric": self._uri_key},
            )

    def with_icon(self, icon: str) -> Self:
        self._ensure_mutable()
        self._icon = icon
        return self

    def with_color(self, color: str) -> Self:
        self._ensure_mutable()
        self._color = color
        return self

    def with_format(self, number_format: str | NumberFormat) -> Self:
        """Number format applied to every result (numeral pattern or NumberFormat)."""
        self._ensure_mutable()
        if isinstance(number_format, str):
            NumberFormat.parse(number_format)
        self._format = number_format
        return self

    def with_help(self, text: str) -> Self:
        self._ensure_mutable()
        self._help_text = text
        return self

    def with_ranges(self, ranges: Mapping[Any, str]) -> Self:
        """
        Replace the selectable ranges.

        Raises:
            ConfigurationError: If a range key is not a valid range token
        """
        self._ensure_mutable()
        for key in ranges:
            RangeToken.parse(key)
        self._ranges = dict(ranges)
        return self

    def with_meta(self, **meta: Any) -> Self:
        self._ensure_mutable()
        self._meta.update(meta)
        return self

    def authorize_using(self, predicate: Authorizer) -> Self:
        self._ensure_mutable()
        self._authorizer = predicate
        return self

    def cache_for(self, policy: CachePolicy) -> Self:
        """Cache for seconds, a timedelta, until a datetime, or not at all (None)."""
        self._ensure_mutable()
        resolve_ttl(policy)
        self._cache_policy = policy
        return self

    def cache_for_minutes(self, minutes: int) -> Self:
        return self.cache_for(timedelta(minutes=minutes))

    def cache_for_hours(self, hours: int) -> Self:
        return self.cache_for(timedelta(hours=hours))

    def cache_per_user(self, enabled: bool = True) -> Self:
        self._ensure_mutable()
        self._cache_per_user = enabled
        return self

    def cache_key_prefix(self, prefix: str) -> Self:
        """Cache identity to use instead of the uri key."""
        self._ensure_mutable()
        self._cache_key_prefix = slugify(prefix)
        return self

    def with_cache_tags(self, *tags: str) -> Self:
        """Replace the tags attached to every cached payload of this metric."""
        self._ensure_mutable()
        self._cache_tags = []
        for tag in tags:
            self.add_cache_tag(tag)
        return self

    def add_cache_tag(self, tag: str) -> Self:
        self._ensure_mutable()
        if not tag or not isinstance(tag, str):
            raise ConfigurationError(f"Invalid cache tag: {tag!r}", details={"metric": self._uri_key})
        if tag not in self._cache_tags:
            self._cache_tags.append(tag)
        return self

    def presenting(self, presenter: Presenter) -> Self:
        """Register a function that decorates every freshly computed result."""
        self._ensure_mutable()
        self._presenters.append(presenter)
        return self

    def freeze(self) -> Self:
        self._frozen = True
        return self

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    # Metadata

    @property
    def name(self) -> str:
        return self._name

    @property
    def uri_key(self) -> str:
        return self._uri_key

    @property
    def icon(self) -> str | None:
        return self._icon

    @property
    def color(self) -> str | None:
        return self._color

    @property
    def format(self) -> str | NumberFormat | None:
        return self._format

    @property
    def help_text(self) -> str | None:
        return self._help_text

    @property
    def ranges(self) -> dict[Any, str]:
        return dict(self._ranges)

    @property
    def kind(self) -> str:
        return self.strategy.kind

    def meta(self) -> dict[str, Any]:
        """Metadata the dashboard needs to render the card."""
        number_format = self._format
        if isinstance(number_format, NumberFormat):
            number_format = number_format.pattern
        return {
            "name": self._name,
            "uri_key": self._uri_key,
            "kind": self.kind,
            "icon": self._icon,
            "color": self._color,
            "format": number_format,
            "help_text": self._help_text,
            "ranges": [{"value": value, "label": label} for value, label in self._ranges.items()],
            **self._meta,
        }

    def authorize(self, request: MetricRequest) -> bool:
        if self._authorizer is None:
            return True
        return bool(self._authorizer(request))

    # Caching

    @property
    def cache_identity(self) -> str:
        return self._cache_key_prefix or self._uri_key

    @property
    def cache_tags(self) -> tuple[str, ...]:
        return tuple(self._cache_tags)

    def cache_ttl(self, now: datetime | None = None) -> int | None:
        return resolve_ttl(self._cache_policy, now)

    def cache_key(self, composer: CacheKeyComposer, request: MetricRequest, suffix: str | None = None) -> str:
        user = request.user_id if self._cache_per_user else None
        return composer.compose(self.cache_identity, request.range, request.timezone, user=user, suffix=suffix)

    # Calculation

    def _decorate(self, result: MetricResult, presenters: bool = True) -> MetricResult:
        if self._format is not None:
            result.format(self._format)
        if presenters:
            for presenter in self._presenters:
                presenter(result)
        return result.freeze()

    async def calculate(self, request: MetricRequest) -> MetricResult:
        """Compute a fresh, frozen result for ``request``."""
        started = time.perf_counter()
        result = await self.strategy.calculate(request, self.resolver)
        elapsed = time.perf_counter() - started

        metric_calculation_duration_seconds.labels(metric=self._uri_key, kind=self.kind).observe(elapsed)
        logger.debug(
            "metric_calculated",
            metric=self._uri_key,
            kind=self.kind,
            range=str(request.range),
            timezone=request.timezone,
            duration_ms=round(elapsed * 1000, 2),
        )
        return self._decorate(result)

    async def trend(self, request: MetricRequest, unit: BucketUnit | str | None = None) -> TrendResult:
        """
        Trend of this metric's aggregate over the request window.

        Only metrics computing a single aggregate (value, trend, progress)
        support this. Presenters are not applied since they target the
        metric's own result type.

        Raises:
            UnsupportedOperationError: For partition and table metrics
        """
        aggregate = self.strategy.single_aggregate
        if aggregate is None:
            raise UnsupportedOperationError(
                f"Metric {self._uri_key!r} ({self.kind}) has no single aggregate to trend",
                details={"metric": self._uri_key, "kind": self.kind},
            )
        function, column = aggregate
        strategy = TrendAggregation(self.strategy.source, function, column, unit)
        result = await strategy.calculate(request, self.resolver)
        return self._decorate(result, presenters=False)

    async def compute_payload(self, request: MetricRequest) -> dict[str, Any]:
        """Uncached JSON payload for ``request``."""
        return (await self.calculate(request)).to_payload()

    def empty_payload(self) -> dict[str, Any]:
        """Payload of the "no data" state, used when calculation fails."""
        return self._decorate(self.strategy.empty_result()).to_payload()
