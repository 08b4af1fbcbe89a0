"""Grafana dashboards: models, variable resolution, row expansion and the HTTP client."""

from dashreport.grafana.client import GrafanaClient, GrafanaV4Client, GrafanaV5Client, new_client
from dashreport.grafana.expander import RowExpander, build_dashboard, substitute_variable
from dashreport.grafana.models import (
    Dashboard,
    Panel,
    RenderContext,
    Row,
    ScopedVar,
    TemplatingVariable,
    next_iteration,
)
from dashreport.grafana.resolver import (
    PrometheusSeriesResolver,
    StaticResolver,
    TemplateVariableResolver,
    parse_label_values_query,
)
from dashreport.grafana.timerange import TimeRange

__all__ = [
    "Dashboard",
    "GrafanaClient",
    "GrafanaV4Client",
    "GrafanaV5Client",
    "Panel",
    "PrometheusSeriesResolver",
    "RenderContext",
    "Row",
    "RowExpander",
    "ScopedVar",
    "StaticResolver",
    "TemplateVariableResolver",
    "TemplatingVariable",
    "TimeRange",
    "build_dashboard",
    "new_client",
    "next_iteration",
    "parse_label_values_query",
    "substitute_variable",
]
