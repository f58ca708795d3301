"""
Tabular result with column descriptors and per-row actions.

Rows are plain mappings. Column formatters receive ``(raw_value, row)`` and
return the display value; action URLs are templates whose ``{field}``
placeholders are filled from the row they are attached to.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, Self

from dashmetrics.exceptions import ConfigurationError
from dashmetrics.models.payloads import ActionPayload, ColumnPayload, TablePayload
from dashmetrics.results.base import MetricResult

ColumnFormatter = Callable[[Any, Mapping[str, Any]], Any]
RowPredicate = Callable[[Mapping[str, Any]], bool]

DEFAULT_EMPTY_TEXT = "No data available"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class Column:
    """Table column descriptor."""

    key: str
    label: str
    attribute: str | None = None
    sortable: bool = True
    align: Literal["left", "center", "right"] = "left"
    width: str | None = None
    formatter: ColumnFormatter | None = None

    def raw_value(self, row: Mapping[str, Any]) -> Any:
        """Look up the column value, following dotted attribute paths."""
        value: Any = row
        for part in (self.attribute or self.key).split("."):
            if isinstance(value, Mapping):
                value = value.get(part)
            else:
                value = getattr(value, part, None)
            if value is None:
                return None
        return value

    def render(self, row: Mapping[str, Any]) -> Any:
        raw = self.raw_value(row)
        if self.formatter is None:
            return raw
        return self.formatter(raw, row)


@dataclass(frozen=True)
class Action:
    """Row action descriptor. ``condition`` hides the action on rows where it is false."""

    key: str
    label: str
    icon: str | None = None
    color: str | None = None
    url: str | None = None
    target: str = "_self"
    condition: RowPredicate | None = None

    def visible_for(self, row: Mapping[str, Any]) -> bool:
        return self.condition is None or bool(self.condition(row))

    def url_for(self, row: Mapping[str, Any]) -> str | None:
        if self.url is None:
            return None

        def fill(match: re.Match[str]) -> str:
            field = match.group(1)
            if field not in row:
                return match.group(0)
            value = row[field]
            return "" if value is None else str(value)

        return _PLACEHOLDER.sub(fill, self.url)


def _coerce_column(key: str, spec: str | Mapping[str, Any] | Column) -> Column:
    if isinstance(spec, Column):
        return spec
    if isinstance(spec, str):
        return Column(key=key, label=spec)
    if isinstance(spec, Mapping):
        options = dict(spec)
        options.setdefault("label", key.replace("_", " ").title())
        return Column(key=key, **options)
    raise ConfigurationError(f"Unsupported column definition for {key!r}", details={"column": key})


class TableResult(MetricResult):
    """
    Rows plus column and action descriptors.

    Example:
        ```python
        result = (
            TableResult(rows)
            .columns({"name": "Customer", "total": {"label": "Total", "align": "right"}})
            .action("view", "View", url="/customers/{id}")
            .sort_by("total", "desc")
        )
        ```
    """

    kind = "table"

    def __init__(self, data: Iterable[Mapping[str, Any]] | None = None):
        super().__init__()
        self._data: list[Mapping[str, Any]] = list(data or [])
        self._columns: dict[str, Column] = {}
        self._actions: dict[str, Action] = {}
        self._empty_text = DEFAULT_EMPTY_TEXT
        self._sortable = True
        self._default_sort: str | None = None
        self._default_sort_direction: Literal["asc", "desc"] = "asc"

    def columns(self, columns: Mapping[str, str | Mapping[str, Any] | Column] | Iterable[Column]) -> Self:
        self._ensure_mutable()
        if isinstance(columns, Mapping):
            for key, spec in columns.items():
                self._columns[key] = _coerce_column(key, spec)
        else:
            for column in columns:
                self._columns[column.key] = column
        return self

    def column(self, key: str, label: str | None = None, **options: Any) -> Self:
        options["label"] = label or key.replace("_", " ").title()
        return self.columns({key: options})

    def action(self, key: str, label: str, **options: Any) -> Self:
        self._ensure_mutable()
        self._actions[key] = Action(key=key, label=label, **options)
        return self

    def sort_by(self, column: str, direction: Literal["asc", "desc"] = "asc") -> Self:
        self._ensure_mutable()
        if direction not in ("asc", "desc"):
            raise ConfigurationError(f"Invalid sort direction: {direction!r}", details={"direction": direction})
        self._default_sort = column
        self._default_sort_direction = direction
        return self

    def without_sorting(self) -> Self:
        self._ensure_mutable()
        self._sortable = False
        return self

    def empty_text(self, text: str) -> Self:
        self._ensure_mutable()
        self._empty_text = text
        return self

    @property
    def data(self) -> list[Mapping[str, Any]]:
        return list(self._data)

    def get_columns(self) -> dict[str, Column]:
        return dict(self._columns)

    def get_actions(self) -> dict[str, Action]:
        return dict(self._actions)

    @property
    def has_no_data(self) -> bool:
        return not self._data

    def formatted_data(self) -> list[dict[str, Any]]:
        rows = []
        for index, row in enumerate(self._data):
            formatted = dict(row)
            for key, column in self._columns.items():
                formatted[key] = column.render(row)
            formatted["_actions"] = [
                {
                    "key": action.key,
                    "label": action.label,
                    "icon": action.icon,
                    "color": action.color,
                    "url": action.url_for(row),
                    "target": action.target,
                }
                for action in self._actions.values()
                if action.visible_for(row)
            ]
            formatted["_row_id"] = row.get("id", index)
            rows.append(formatted)
        return rows

    def to_payload(self) -> dict[str, Any]:
        payload = TablePayload(
            data=self.formatted_data(),
            columns=[
                ColumnPayload(
                    key=column.key,
                    label=column.label,
                    sortable=column.sortable and self._sortable,
                    align=column.align,
                    width=column.width,
                )
                for column in self._columns.values()
            ],
            actions=[
                ActionPayload(
                    key=action.key,
                    label=action.label,
                    icon=action.icon,
                    color=action.color,
                    url=action.url,
                    target=action.target,
                    conditional=action.condition is not None,
                )
                for action in self._actions.values()
            ],
            empty_text=self._empty_text,
            sortable=self._sortable,
            default_sort=self._default_sort,
            default_sort_direction=self._default_sort_direction,
            has_no_data=self.has_no_data,
            total_rows=len(self._data),
        )
        return payload.model_dump(mode="json")
