"""
Cache key composition.

Format::

    {prefix}:{identity}:{range}:{md5(timezone)}[:u={quote(user)}][:s={suffix}]

Prefix, identity and range are lower-cased. The user segment is
percent-encoded, so it never contains ":" or glob characters and cannot
bleed into the suffix segment. Identical (identity, range, timezone, user,
suffix) always yield the same key and any difference yields a different
one. Keys for one metric share ``{prefix}:{identity}:`` so they can be
invalidated with ``metric_pattern``.

Tag sets live under ``{prefix}:_tags:{quote(tag)}``. Metric identities are
slugs without underscores, so a tag key never falls under a metric pattern.
"""

from __future__ import annotations

import hashlib
from typing import Any
from urllib.parse import quote

from dashmetrics.config import settings
from dashmetrics.exceptions import ConfigurationError
from dashmetrics.timeframes import RangeToken


class CacheKeyComposer:
    """Builds deterministic metric cache keys and invalidation patterns."""

    def __init__(self, prefix: str | None = None):
        prefix = prefix if prefix is not None else settings.metric_cache_prefix
        if not prefix or ":" in prefix:
            raise ConfigurationError(f"Invalid cache key prefix: {prefix!r}", details={"prefix": prefix})
        self.prefix = prefix.lower()

    @staticmethod
    def timezone_hash(timezone: str) -> str:
        return hashlib.md5(timezone.encode("utf-8")).hexdigest()

    def compose(
        self,
        identity: str,
        range: Any,
        timezone: str,
        user: Any = None,
        suffix: str | None = None,
    ) -> str:
        """
        Compose the cache key for one metric request.

        Args:
            identity: Metric identity (uri key)
            range: Range token or raw range value
            timezone: IANA timezone of the request
            user: Optional user scope for per-user caching
            suffix: Optional discriminator (e.g. "trend:day")
        """
        parts = [
            self.prefix,
            identity.lower(),
            RangeToken.parse(range).cache_segment,
            self.timezone_hash(timezone),
        ]
        if user is not None:
            parts.append(f"u={quote(str(user), safe='')}")
        if suffix:
            parts.append(f"s={suffix}")
        return ":".join(parts)

    def metric_pattern(self, identity: str) -> str:
        """Glob matching every key of one metric."""
        return f"{self.prefix}:{identity.lower()}:*"

    def tag_key(self, tag: str) -> str:
        if not tag:
            raise ConfigurationError("Cache tag must not be empty", details={"tag": tag})
        return f"{self.prefix}:_tags:{quote(tag, safe='')}"

    def all_pattern(self) -> str:
        """Glob matching every key under this prefix."""
        return f"{self.prefix}:*"
