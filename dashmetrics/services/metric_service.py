"""
Metric Service

Resolves metric requests for a dashboard: authorization, then the cache,
then the JSON payload. A single failing metric degrades to its "no data"
payload so the rest of the dashboard still renders.
"""

import asyncio
from collections.abc import Iterable
from typing import Any

import structlog

from dashmetrics.cache.manager import CacheManager
from dashmetrics.metric import Metric
from dashmetrics.models.request import MetricRequest

logger = structlog.get_logger(__name__)


class MetricService:
    """
    Service resolving metric payloads through the cache.

    Example:
        ```python
        service = MetricService(CacheManager(InMemoryCacheStore()))
        payloads = await service.resolve_all(dashboard_metrics, MetricRequest(range=30))
        ```
    """

    def __init__(self, cache_manager: CacheManager):
        """
        Initialize service with a cache manager.

        Args:
            cache_manager: Cache used for every metric payload
        """
        self.cache = cache_manager

    async def resolve(self, metric: Metric, request: MetricRequest) -> dict[str, Any] | None:
        """
        Payload for one metric, served from cache when possible.

        Args:
            metric: Metric to resolve
            request: Request context

        Returns:
            JSON payload, or None when the request is not authorized
        """
        if not metric.authorize(request):
            logger.info("metric_unauthorized", metric=metric.uri_key, user_id=request.user_id)
            return None

        key = metric.cache_key(self.cache.keys, request)
        return await self.cache.remember(
            key, metric.cache_ttl(), lambda: metric.compute_payload(request), tags=metric.cache_tags
        )

    async def _resolve_or_degrade(self, metric: Metric, request: MetricRequest) -> dict[str, Any] | None:
        try:
            return await self.resolve(metric, request)
        except Exception:
            logger.exception("metric_degraded", metric=metric.uri_key, range=str(request.range))
            return metric.empty_payload()

    async def resolve_all(self, metrics: Iterable[Metric], request: MetricRequest) -> dict[str, dict[str, Any]]:
        """
        Payloads for a whole dashboard.

        Unauthorized metrics are omitted; failing metrics get their empty payload.

        Returns:
            uri_key -> payload, in input order
        """
        metrics = list(metrics)
        payloads = await asyncio.gather(*(self._resolve_or_degrade(metric, request) for metric in metrics))
        return {
            metric.uri_key: payload
            for metric, payload in zip(metrics, payloads, strict=True)
            if payload is not None
        }
