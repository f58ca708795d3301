"""
Prometheus Metrics for the metrics engine.

Tracks cache effectiveness and calculation cost in production:
- Cache operations by kind (hit, miss, write, delete)
- Metric calculation latency per metric and result kind
- Cache warming outcomes
"""

from prometheus_client import Counter, Histogram

# Cache operations
metric_cache_operations_total = Counter(
    "metric_cache_operations_total",
    "Total metric cache operations",
    labelnames=["operation"],  # hit, miss, write, delete
)

# Calculation latency
metric_calculation_duration_seconds = Histogram(
    "metric_calculation_duration_seconds",
    "Time spent computing a metric result on cache miss",
    labelnames=["metric", "kind"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],  # Dashboard cards should stay well under 1s
)

# Cache warming
metric_cache_warm_items_total = Counter(
    "metric_cache_warm_items_total",
    "Cache warming outcomes per parameter set",
    labelnames=["status"],  # warmed, already_cached, error
)
