"""Repeat-row expansion for legacy (row-based) dashboards.

A row with ``repeat: host`` is duplicated once per value of the ``host``
templating variable. The source row itself carries the first value; every
further value gets a clone placed right after the source, in value order.
Clones remember their source (``repeat_row_id``) and the render call that last
confirmed them (``repeat_iteration``), so expanding the same row list again
refreshes existing clones instead of piling up new ones.
"""

from __future__ import annotations

import itertools
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from dashreport.core.errors import MalformedTemplateQuery, ResolverUpstreamError
from dashreport.grafana.models import Dashboard, RenderContext, Row, ScopedVar
from dashreport.grafana.resolver import TemplateVariableResolver

logger = structlog.get_logger()

_PLACEHOLDER = re.compile(r"\$(?:\{(\w+)\}|(\w+))")


def substitute_variable(title: str, name: str, value: str) -> str:
    """Replace ``$name`` / ``${name}`` in ``title``; other placeholders are kept."""

    def _replace(match: re.Match[str]) -> str:
        placeholder = match.group(1) or match.group(2)
        return value if placeholder == name else match.group(0)

    return _PLACEHOLDER.sub(_replace, title)


def _max_panel_id(rows: Sequence[Row]) -> int:
    return max((panel.id for row in rows for panel in row.panels), default=0)


def _layout_key(row: Row) -> list[tuple[str, str]]:
    return [(panel.type, panel.title) for panel in row.panels]


@dataclass
class _ExpansionPass:
    """State for one left-to-right pass over a dashboard's rows."""

    dashboard: Dashboard
    original: list[Row]
    built: list[Row] = field(default_factory=list)
    claimed: set[int] = field(default_factory=set)
    panel_ids: Iterator[int] = field(init=False)

    def __post_init__(self) -> None:
        self.panel_ids = itertools.count(_max_panel_id(self.original) + 1)

    @property
    def iteration(self) -> int:
        return self.dashboard.context.iteration

    def is_claimed(self, row: Row) -> bool:
        return id(row) in self.claimed

    def claim(self, row: Row) -> None:
        self.claimed.add(id(row))
        row.repeat_iteration = self.iteration

    def clones_of(self, source: Row, source_row_id: int) -> list[Row]:
        """Unclaimed clones created for ``source_row_id``, in row order."""
        return [
            row
            for row in self.original
            if row is not source
            and row.repeat_row_id == source_row_id
            and not self.is_claimed(row)
            and _layout_key(row) == _layout_key(source)
        ]


class RowExpander:
    """Expand repeat rows of a legacy dashboard in place."""

    def __init__(self, resolver: TemplateVariableResolver) -> None:
        self._resolver = resolver

    async def expand(self, dashboard: Dashboard) -> Dashboard:
        """Expand every repeat row, drop stale clones and rebuild ``dashboard.panels``.

        Calling this again with the same iteration id leaves the rows unchanged;
        calling it with a newer iteration id refreshes clones in place and drops
        clones whose value is no longer resolved.
        """
        state = _ExpansionPass(dashboard=dashboard, original=list(dashboard.rows))

        for row in state.original:
            if row.repeat:
                state.built.extend(await self._expand_row(state, row))
                continue

            if row.is_clone:
                if state.is_claimed(row):
                    continue
                if row.repeat_iteration != state.iteration:
                    logger.debug("dropping_stale_clone", row_title=row.title, repeat_row_id=row.repeat_row_id)
                    continue

            for panel in row.panels:
                panel.row_title = row.title
            state.built.append(row)

        dashboard.rows = state.built
        dashboard.rebuild_panels()
        logger.info(
            "dashboard_expanded",
            dashboard=dashboard.title,
            rows=len(dashboard.rows),
            panels=len(dashboard.panels),
            iteration=state.iteration,
        )
        return dashboard

    async def _expand_row(self, state: _ExpansionPass, source: Row) -> list[Row]:
        variable = state.dashboard.templating_variable(source.repeat)
        if variable is None:
            logger.debug("repeat_variable_not_templated", row_title=source.title, variable=source.repeat)
            return [source]

        source_row_id = len(state.built) + 1
        existing = state.clones_of(source, source_row_id)

        try:
            values = await self._resolver.resolve(variable)
        except (MalformedTemplateQuery, ResolverUpstreamError) as exc:
            logger.error(
                "template_variable_resolution_failed",
                variable=variable.name,
                row_title=source.title,
                error=exc.message,
                kept_clones=len(existing),
            )
            for clone in existing:
                state.claim(clone)
            return [source, *existing]

        if not values:
            return [source]

        if source.title_template is None:
            source.title_template = source.title
        name = source.repeat

        rows: list[Row] = []
        for index, value in enumerate(values):
            title = substitute_variable(source.title_template, name, value)
            if index == 0:
                target = source
            else:
                target = self._take_clone(existing, name, value)
                if target is None:
                    target = self._new_clone(state, source)
                    logger.debug("created_row_clone", row_title=title, panels=len(target.panels))
                target.repeat = ""
                target.repeat_row_id = source_row_id
                state.claim(target)

            target.title = title
            for panel in target.panels:
                panel.row_title = title
                panel.scoped_vars = {name: ScopedVar(text=value, value=value)}
            rows.append(target)
        return rows

    @staticmethod
    def _take_clone(candidates: list[Row], name: str, value: str) -> Row | None:
        """Pop the clone already showing ``value``, else the first leftover clone."""
        if not candidates:
            return None
        for index, clone in enumerate(candidates):
            scoped = [p.scoped_vars.get(name) for p in clone.panels]
            if scoped and all(s is not None and s.value == value for s in scoped):
                return candidates.pop(index)
        return candidates.pop(0)

    @staticmethod
    def _new_clone(state: _ExpansionPass, source: Row) -> Row:
        panels = []
        for panel in source.panels:
            copy = panel.copy()
            copy.id = next(state.panel_ids)
            panels.append(copy)
        return Row(
            id=source.id,
            show_title=source.show_title,
            title=source.title,
            panels=panels,
        )


async def build_dashboard(
    payload: Mapping[str, Any],
    context: RenderContext,
    resolver: TemplateVariableResolver,
    variables: Mapping[str, Sequence[str]] | None = None,
) -> Dashboard:
    """Decode a dashboard payload and expand repeat rows when it is row-based.

    Dashboards with a flat ``panels`` array are a pure projection: no expansion.
    """
    dashboard = Dashboard.from_json(payload, context, variables)
    if dashboard.is_legacy:
        await RowExpander(resolver).expand(dashboard)
    return dashboard
