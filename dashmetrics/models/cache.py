"""
Cache Manager data models.

Counters, warming outcomes and the performance report returned by
``CacheManager``. All models expose ``to_dict()`` for JSON responses.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


@dataclass
class CacheStats:
    """Hit/miss/write/delete counters for one CacheManager."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    deletes: int = 0

    @property
    def total_lookups(self) -> int:
        return self.hits + self.misses

    @property
    def hit_ratio(self) -> float:
        if self.total_lookups == 0:
            return 0.0
        return self.hits / self.total_lookups

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "hit_ratio": round(self.hit_ratio, 4)}


class WarmStatus(str, Enum):
    """Outcome of warming one parameter set."""

    WARMED = "warmed"
    ALREADY_CACHED = "already_cached"
    ERROR = "error"


@dataclass(frozen=True)
class WarmItemResult:
    """Warming outcome for one (range, timezone) parameter set."""

    range: str
    timezone: str
    status: WarmStatus
    key: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class MemoryUsage:
    """Bytes held by metric cache entries, when the store can report it."""

    supported: bool
    total_bytes: int = 0
    keys: int = 0
    per_key: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PerformanceReport:
    """Advisory findings from ``CacheManager.analyze_performance``."""

    stats: CacheStats
    memory: MemoryUsage
    findings: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.findings

    def to_dict(self) -> dict[str, Any]:
        return {
            "stats": self.stats.to_dict(),
            "memory": self.memory.to_dict(),
            "findings": list(self.findings),
            "healthy": self.healthy,
        }
