"""Tests for dashboard JSON decoding and schema routing."""

from unittest.mock import AsyncMock

import pytest

from dashreport.grafana.expander import build_dashboard
from dashreport.grafana.models import (
    Dashboard,
    Panel,
    RenderContext,
    Row,
    TemplatingVariable,
    next_iteration,
    summarize_variables,
)
from dashreport.grafana.resolver import StaticResolver


@pytest.fixture
def context():
    return RenderContext(base_url="http://grafana.test", iteration=1)


class TestDecoding:
    def test_legacy_rows(self, legacy_payload, context):
        dashboard = Dashboard.from_json(legacy_payload, context)

        assert dashboard.title == "TiKV"
        assert dashboard.slug == "tikv"
        assert dashboard.is_legacy
        assert [row.title for row in dashboard.rows] == ["Cluster", "Host $host", "Footer"]
        assert dashboard.rows[1].repeat == "host"
        assert dashboard.rows[1].is_visible
        assert [p.id for p in dashboard.panels] == [1, 2, 3, 4]

    def test_templating_list(self, legacy_payload, context):
        dashboard = Dashboard.from_json(legacy_payload, context)

        variable = dashboard.templating_variable("host")
        assert variable == TemplatingVariable(
            name="host",
            datasource="tidb-cluster",
            query="label_values(tikv_engine_size_bytes, instance)",
        )
        assert dashboard.templating_variable("missing") is None

    def test_datasource_object(self):
        variable = TemplatingVariable.from_dict(
            {"name": "db", "datasource": {"type": "prometheus", "uid": "P1"}, "query": {"query": "label_values(up, db)"}}
        )
        assert variable.datasource == "P1"
        assert variable.query == "label_values(up, db)"

    def test_clone_fields(self):
        row = Row.from_dict({"title": "r", "repeatRowId": 2, "repeatIteration": 99, "panels": []})
        assert row.is_clone
        assert row.repeat_iteration == 99

    def test_scoped_vars(self):
        panel = Panel.from_dict({"id": 7, "type": "graph", "scopedVars": {"host": {"text": "a", "value": "a"}}})
        assert panel.scoped_vars["host"].value == "a"
        assert not panel.is_singlestat

    def test_panel_copy_is_independent(self):
        panel = Panel.from_dict({"id": 7, "scopedVars": {"host": {"text": "a", "value": "a"}}})
        copy = panel.copy()
        copy.scoped_vars["host"].value = "b"
        assert panel.scoped_vars["host"].value == "a"

    def test_variable_summary(self, legacy_payload, context):
        dashboard = Dashboard.from_json(legacy_payload, context, {"host": ["a", "b"], "db": ["x"]})
        assert dashboard.variable_values == "a, b, x"
        assert summarize_variables({}) == ""


class TestSchemaRouting:
    @pytest.mark.asyncio
    async def test_rows_use_expansion(self, legacy_payload, context):
        resolver = StaticResolver({"host": ["a", "b"]})

        dashboard = await build_dashboard(legacy_payload, context, resolver)

        assert [row.title for row in dashboard.rows] == ["Cluster", "Host a", "Host b", "Footer"]

    @pytest.mark.asyncio
    async def test_flat_panels_skip_expansion(self, current_payload, context):
        resolver = AsyncMock()

        dashboard = await build_dashboard(current_payload, context, resolver)

        assert not dashboard.is_legacy
        assert dashboard.rows == []
        assert [p.id for p in dashboard.panels] == [11, 12, 14]
        assert all(p.type != "row" for p in dashboard.panels)
        resolver.resolve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_rows_fall_back_to_panels(self, context):
        payload = {"dashboard": {"title": "x", "rows": [], "panels": [{"id": 1, "type": "graph"}]}}

        dashboard = await build_dashboard(payload, context, AsyncMock())

        assert [p.id for p in dashboard.panels] == [1]


def test_iterations_increase():
    first = next_iteration()
    second = next_iteration()
    assert second > first
    assert RenderContext(base_url="x").iteration > second
