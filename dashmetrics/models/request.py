"""
Metric request context.

What the calling layer (an HTTP controller, a CLI, a warming job) passes to
a metric: the range token, the timezone, optional table sorting/limit, and
an optional user for per-user caching and authorization.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dashmetrics.config import settings
from dashmetrics.exceptions import ConfigurationError
from dashmetrics.timeframes import RangeToken, resolve_timezone


class MetricRequest(BaseModel):
    """
    Request context for one metric calculation.

    ``range`` is kept as given (int or str) and parsed with
    ``RangeToken.parse`` by the consumer; validation here only guarantees
    that it parses.
    """

    model_config = ConfigDict(frozen=True)

    range: int | str = Field(
        default_factory=lambda: settings.default_range,
        description="Range token: positive day count or TODAY/MTD/QTD/YTD/ALL",
    )
    timezone: str = Field(
        default_factory=lambda: settings.default_timezone,
        description="IANA timezone calendar math happens in",
    )
    sort_by: str | None = Field(default=None, description="Column to sort table rows by")
    sort_direction: Literal["asc", "desc"] = Field(default="desc", description="Table sort direction")
    limit: int | None = Field(default=None, ge=0, description="Maximum number of table rows")
    user_id: Any = Field(default=None, description="Requesting user (per-user caching and authorization)")

    @field_validator("range")
    @classmethod
    def validate_range(cls, v: int | str) -> int | str:
        """Reject range tokens that cannot be parsed."""
        try:
            RangeToken.parse(v)
        except ConfigurationError as e:
            raise ValueError(e.message) from e
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA timezones."""
        try:
            resolve_timezone(v)
        except ConfigurationError as e:
            raise ValueError(e.message) from e
        return v

    @property
    def range_token(self) -> RangeToken:
        return RangeToken.parse(self.range)
