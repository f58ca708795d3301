"""
Shared formatting pipeline for metric results.

Every result type carries the same display directives and runs raw numbers
through one fixed pipeline:

    raw value -> transform -> number format -> currency -> prefix/suffix

The currency symbol sits directly against the digits and prefix/suffix wrap
the whole thing, so ``prefix("Total: ").currency("$")`` renders
``"Total: $1,235"``.

Results are fluent builders while a metric computes them. Once a metric
hands a result back it calls ``freeze()``, after which every mutator raises
``ResultFrozenError``.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, ClassVar, Self

from dashmetrics.exceptions import ConfigurationError, ResultFrozenError

Transform = Callable[[Any], Any]

_NUMERAL_PATTERN = re.compile(r"^0(?P<grouping>,0+)?(?:\.(?P<decimals>0+))?$")


@dataclass(frozen=True)
class NumberFormat:
    """
    Decimal display format with half-up rounding.

    Attributes:
        decimals: Digits after the decimal separator
        thousands_separator: Grouping separator ("" disables grouping)
        decimal_separator: Separator between integer and fraction
    """

    decimals: int = 0
    thousands_separator: str = ","
    decimal_separator: str = "."

    @classmethod
    def parse(cls, pattern: str) -> NumberFormat:
        """
        Build a format from a numeral-style pattern.

        ``"0,0.00"`` groups thousands with two decimals, ``"0.0"`` has one
        decimal and no grouping, ``"0,0"`` groups with no decimals.

        Raises:
            ConfigurationError: If the pattern is not understood
        """
        match = _NUMERAL_PATTERN.match(pattern.strip())
        if match is None:
            raise ConfigurationError(
                f"Unsupported number format pattern: {pattern!r}",
                details={"pattern": pattern},
            )
        decimals = len(match.group("decimals") or "")
        separator = "," if match.group("grouping") else ""
        return cls(decimals=decimals, thousands_separator=separator)

    @property
    def pattern(self) -> str:
        """Numeral-style pattern equivalent, e.g. ``"0,0.00"``."""
        grouping = ",0" if self.thousands_separator else ""
        fraction = "." + "0" * self.decimals if self.decimals else ""
        return f"0{grouping}{fraction}"

    def apply(self, value: Any) -> str:
        """Render a number. Non-numeric values are returned as ``str(value)``."""
        if value is None:
            value = 0
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return str(value)
        if not number.is_finite():
            return str(value)

        quantum = Decimal(1).scaleb(-self.decimals)
        rounded = number.quantize(quantum, rounding=ROUND_HALF_UP)
        if rounded == 0:
            rounded = abs(rounded)

        text = f"{rounded:,.{self.decimals}f}"
        integer, _, fraction = text.partition(".")
        integer = integer.replace(",", self.thousands_separator)
        if fraction:
            return f"{integer}{self.decimal_separator}{fraction}"
        return integer


DEFAULT_FORMAT = NumberFormat()


def format_number(value: Any, decimals: int = 0) -> str:
    """Thousands-separated number with half-up rounding."""
    return NumberFormat(decimals=decimals).apply(value)


def format_currency(value: Any, currency: str = "$", decimals: int = 2) -> str:
    """Number with a currency symbol attached, e.g. ``"$1,234.50"``."""
    text = format_number(value, decimals)
    if text.startswith("-"):
        return f"-{currency}{text[1:]}"
    return f"{currency}{text}"


def format_date(value: Any, fmt: str = "%Y-%m-%d") -> str:
    """Format a date, datetime or ISO string. Empty values render as ``""``."""
    if value is None or value == "":
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, (date, datetime)):
        return value.strftime(fmt)
    return str(value)


def truncate_text(value: Any, length: int = 50, ellipsis: str = "...") -> str:
    """Cut text to ``length`` characters, appending ``ellipsis`` when cut."""
    text = "" if value is None else str(value)
    if len(text) <= length:
        return text
    return text[:length] + ellipsis


class MetricResult(ABC):
    """
    Base class for all metric results.

    Holds the display directives shared by every result type and the
    frozen flag. Subclasses implement ``to_payload``.
    """

    kind: ClassVar[str]

    def __init__(self) -> None:
        self._prefix: str | None = None
        self._suffix: str | None = None
        self._currency: str | None = None
        self._number_format: NumberFormat = DEFAULT_FORMAT
        self._transform: Transform | None = None
        self._frozen = False

    # Fluent directives

    def prefix(self, prefix: str) -> Self:
        self._ensure_mutable()
        self._prefix = prefix
        return self

    def suffix(self, suffix: str) -> Self:
        self._ensure_mutable()
        self._suffix = suffix
        return self

    def currency(self, symbol: str = "$") -> Self:
        self._ensure_mutable()
        self._currency = symbol
        return self

    def format(self, number_format: str | NumberFormat) -> Self:
        """Set a custom number format (numeral pattern or NumberFormat)."""
        self._ensure_mutable()
        if isinstance(number_format, str):
            number_format = NumberFormat.parse(number_format)
        self._number_format = number_format
        return self

    def transform(self, fn: Transform) -> Self:
        """Apply ``fn`` to every raw value before evaluation and display."""
        self._ensure_mutable()
        self._transform = fn
        return self

    # Lifecycle

    def freeze(self) -> Self:
        self._frozen = True
        return self

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise ResultFrozenError(type(self).__name__)

    # Pipeline

    def apply_transform(self, value: Any) -> Any:
        if value is None or self._transform is None:
            return value
        return self._transform(value)

    def display(self, value: Any) -> str:
        """Format an already-transformed value for display."""
        text = self._number_format.apply(value)
        if self._currency:
            if text.startswith("-"):
                text = f"-{self._currency}{text[1:]}"
            else:
                text = f"{self._currency}{text}"
        return f"{self._prefix or ''}{text}{self._suffix or ''}"

    def format_value(self, raw: Any) -> str:
        """Run a raw value through the full pipeline."""
        return self.display(self.apply_transform(raw))

    # Serialization

    @property
    @abstractmethod
    def has_no_data(self) -> bool:
        ...

    @abstractmethod
    def to_payload(self) -> dict[str, Any]:
        """Stable JSON-ready dictionary consumed by the dashboard."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} frozen={self._frozen}>"
