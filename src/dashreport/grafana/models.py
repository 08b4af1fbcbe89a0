"""Grafana dashboard data models.

Typed Python models for the parts of the Grafana dashboard JSON that report
generation needs. Two payload shapes are accepted:

- legacy (v4) dashboards carry a ``rows`` array, each row holding its panels
- current (v5+) dashboards carry a flat ``panels`` array where rows are
  pseudo-panels of type ``row``
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from dashreport.grafana.timerange import TimeRange

ROW_PANEL_TYPE = "row"
SINGLESTAT_PANEL_TYPE = "singlestat"

_iterations = itertools.count(int(time.time() * 1000))


def next_iteration() -> int:
    """Return a new iteration id, strictly greater than any earlier one in this process."""
    return next(_iterations)


@dataclass
class ScopedVar:
    """Template value bound to one panel instance."""

    text: str
    value: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ScopedVar:
        return cls(text=str(data.get("text", "")), value=str(data.get("value", "")))


@dataclass
class Panel:
    """Grafana dashboard panel."""

    id: int
    type: str = ""
    title: str = ""
    row_title: str = ""
    scoped_vars: dict[str, ScopedVar] = field(default_factory=dict)

    @property
    def is_singlestat(self) -> bool:
        return self.type == SINGLESTAT_PANEL_TYPE

    def copy(self) -> Panel:
        return Panel(
            id=self.id,
            type=self.type,
            title=self.title,
            row_title=self.row_title,
            scoped_vars={k: ScopedVar(v.text, v.value) for k, v in self.scoped_vars.items()},
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Panel:
        scoped = data.get("scopedVars") or {}
        return cls(
            id=int(data.get("id") or 0),
            type=str(data.get("type") or ""),
            title=str(data.get("title") or ""),
            scoped_vars={name: ScopedVar.from_dict(v) for name, v in scoped.items()},
        )


@dataclass
class Row:
    """Dashboard row (container for panels)."""

    id: int = 0
    show_title: bool = False
    title: str = ""
    repeat: str = ""
    repeat_row_id: int = 0
    repeat_iteration: int = 0
    panels: list[Panel] = field(default_factory=list)

    # Title before ``$variable`` substitution; set by the first expansion
    title_template: str | None = field(default=None, repr=False, compare=False)

    @property
    def is_clone(self) -> bool:
        return self.repeat_row_id != 0

    @property
    def is_visible(self) -> bool:
        return self.show_title

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Row:
        return cls(
            id=int(data.get("id") or 0),
            show_title=bool(data.get("showTitle", False)),
            title=str(data.get("title") or ""),
            repeat=str(data.get("repeat") or ""),
            repeat_row_id=int(data.get("repeatRowId") or 0),
            repeat_iteration=int(data.get("repeatIteration") or 0),
            panels=[Panel.from_dict(p) for p in data.get("panels") or []],
        )


@dataclass
class TemplatingVariable:
    """Dashboard template variable."""

    name: str
    datasource: str = ""
    query: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TemplatingVariable:
        datasource = data.get("datasource") or ""
        if isinstance(datasource, Mapping):
            datasource = datasource.get("uid") or datasource.get("type") or ""
        query = data.get("query") or ""
        if isinstance(query, Mapping):
            query = query.get("query") or ""
        return cls(name=str(data.get("name") or ""), datasource=str(datasource), query=str(query))


@dataclass
class RenderContext:
    """Per-render-call state: where to resolve values and which call this is."""

    base_url: str
    api_token: str | None = None
    time_range: TimeRange = field(default_factory=TimeRange)
    iteration: int = field(default_factory=next_iteration)


@dataclass
class Dashboard:
    """Grafana dashboard as consumed by report generation."""

    title: str
    context: RenderContext
    description: str = ""
    slug: str = ""
    templating: dict[str, list[TemplatingVariable]] = field(default_factory=dict)
    rows: list[Row] = field(default_factory=list)
    panels: list[Panel] = field(default_factory=list)
    variable_values: str = ""

    @property
    def is_legacy(self) -> bool:
        return bool(self.rows)

    def templating_variable(self, name: str) -> TemplatingVariable | None:
        for variable in self.templating.get("list", []):
            if variable.name == name:
                return variable
        return None

    def rebuild_panels(self) -> None:
        """Flatten row panels, in row order, into ``panels``."""
        self.panels = [panel for row in self.rows for panel in row.panels]

    @classmethod
    def from_json(
        cls,
        payload: Mapping[str, Any],
        context: RenderContext,
        variables: Mapping[str, Sequence[str]] | None = None,
    ) -> Dashboard:
        """Build a dashboard from the ``/api/dashboards`` response envelope.

        Legacy payloads populate ``rows`` (panels are flattened after expansion);
        current payloads populate ``panels`` directly with row pseudo-panels removed.
        """
        body = payload.get("dashboard", payload)
        meta = payload.get("meta") or {}

        templating: dict[str, list[TemplatingVariable]] = {}
        for list_name, items in (body.get("templating") or {}).items():
            if isinstance(items, list):
                templating[list_name] = [TemplatingVariable.from_dict(v) for v in items]

        dashboard = cls(
            title=str(body.get("title") or ""),
            context=context,
            description=str(body.get("description") or ""),
            slug=str(meta.get("slug") or ""),
            templating=templating,
            variable_values=summarize_variables(variables or {}),
        )

        raw_rows = body.get("rows") or []
        if raw_rows:
            dashboard.rows = [Row.from_dict(r) for r in raw_rows]
            dashboard.rebuild_panels()
        else:
            dashboard.panels = list(_flatten_panels(body.get("panels") or []))
        return dashboard


def _flatten_panels(raw_panels: Sequence[Mapping[str, Any]]):
    for raw in raw_panels:
        if raw.get("type") == ROW_PANEL_TYPE:
            # Collapsed rows keep their panels nested inside the row
            for nested in raw.get("panels") or []:
                if nested.get("type") != ROW_PANEL_TYPE:
                    yield Panel.from_dict(nested)
            continue
        yield Panel.from_dict(raw)


def summarize_variables(variables: Mapping[str, Sequence[str]]) -> str:
    """Join every bound value into one display string, e.g. ``"tidb, tikv-1, tikv-2"``."""
    return ", ".join(", ".join(values) for values in variables.values())
