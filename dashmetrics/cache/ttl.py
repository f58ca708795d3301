"""TTL derivation from a metric cache policy."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from dashmetrics.exceptions import ConfigurationError

CachePolicy = datetime | timedelta | int | float | None


def resolve_ttl(policy: CachePolicy, now: datetime | None = None) -> int | None:
    """
    Turn a cache policy into a TTL in seconds.

    - datetime: seconds until that instant, clamped at 0 (naive means UTC)
    - timedelta: total seconds, clamped at 0
    - int/float: seconds, clamped at 0
    - None: no caching, always recompute

    A result of 0 means "recompute and do not store".

    Raises:
        ConfigurationError: For any other policy type
    """
    if policy is None:
        return None
    if isinstance(policy, bool):
        raise ConfigurationError("Cache policy must not be a boolean", details={"policy": policy})
    if isinstance(policy, datetime):
        now = now or datetime.now(UTC)
        if policy.tzinfo is None:
            policy = policy.replace(tzinfo=UTC)
        return max(0, int((policy - now).total_seconds()))
    if isinstance(policy, timedelta):
        return max(0, int(policy.total_seconds()))
    if isinstance(policy, (int, float)):
        return max(0, int(policy))
    raise ConfigurationError(f"Unsupported cache policy: {policy!r}", details={"policy": type(policy).__name__})
