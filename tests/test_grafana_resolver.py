"""Tests for template variable resolution through the series API."""

from datetime import datetime, timezone

import httpx
import pytest
import respx

from dashreport.core.errors import MalformedTemplateQuery, ResolverUpstreamError
from dashreport.grafana.models import TemplatingVariable
from dashreport.grafana.resolver import (
    PrometheusSeriesResolver,
    StaticResolver,
    collect_label_values,
    parse_label_values_query,
)
from dashreport.grafana.timerange import TimeRange

SERIES_PATH = "/api/datasources/proxy/1/api/v1/series"
NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def time_range():
    return TimeRange("now-1h", "now", clock=lambda: NOW)


@pytest.fixture
def resolver(time_range):
    return PrometheusSeriesResolver("http://grafana.test/", "secret-token", time_range)


@pytest.fixture
def variable():
    return TemplatingVariable(name="host", datasource="prom", query="label_values(up, instance)")


class TestParseQuery:
    def test_metric_and_label(self):
        assert parse_label_values_query("label_values(up, job)") == ("up", "job")

    def test_whitespace_tolerated(self):
        assert parse_label_values_query("  label_values( tikv_store_size ,instance ) ") == (
            "tikv_store_size",
            "instance",
        )

    @pytest.mark.parametrize("query", ["label_values(bad_format)", "up", "label_values(up, job) + 1", ""])
    def test_malformed(self, query):
        with pytest.raises(MalformedTemplateQuery):
            parse_label_values_query(query)


def test_collect_dedups_sorts_and_skips_non_strings():
    series = [
        {"instance": "b"},
        {"instance": "a"},
        {"instance": "b"},
        {"job": "tikv"},
        {"instance": 3},
    ]
    assert collect_label_values(series, "instance") == ["a", "b"]


class TestPrometheusSeriesResolver:
    @pytest.mark.asyncio
    @respx.mock
    async def test_resolves_sorted_unique_values(self, resolver, variable):
        route = respx.get(host="grafana.test", path=SERIES_PATH).mock(
            return_value=httpx.Response(
                200,
                json={
                    "status": "success",
                    "data": [
                        {"__name__": "up", "instance": "b"},
                        {"__name__": "up", "instance": "a"},
                        {"__name__": "up", "instance": "b"},
                    ],
                },
            )
        )

        values = await resolver.resolve(variable)

        assert values == ["a", "b"]
        request = route.calls.last.request
        assert request.url.params["match[]"] == "up"
        assert request.url.params["start"] == str(int(NOW.timestamp()) - 3600)
        assert request.url.params["end"] == str(int(NOW.timestamp()))
        assert request.headers["Authorization"] == "Bearer secret-token"

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_token_no_auth_header(self, time_range, variable):
        resolver = PrometheusSeriesResolver("http://grafana.test", None, time_range, datasource_id=3)
        route = respx.get(host="grafana.test", path="/api/datasources/proxy/3/api/v1/series").mock(
            return_value=httpx.Response(200, json={"status": "success", "data": []})
        )

        assert await resolver.resolve(variable) == []
        assert "Authorization" not in route.calls.last.request.headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_status_in_envelope(self, resolver, variable):
        respx.get(host="grafana.test", path=SERIES_PATH).mock(
            return_value=httpx.Response(200, json={"status": "error", "error": "bad match"})
        )

        with pytest.raises(ResolverUpstreamError, match="bad match"):
            await resolver.resolve(variable)

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_status(self, resolver, variable):
        respx.get(host="grafana.test", path=SERIES_PATH).mock(return_value=httpx.Response(502))

        with pytest.raises(ResolverUpstreamError):
            await resolver.resolve(variable)

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error(self, resolver, variable):
        respx.get(host="grafana.test", path=SERIES_PATH).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(ResolverUpstreamError):
            await resolver.resolve(variable)

    @pytest.mark.asyncio
    @respx.mock
    async def test_not_json(self, resolver, variable):
        respx.get(host="grafana.test", path=SERIES_PATH).mock(
            return_value=httpx.Response(200, text="<html>login</html>")
        )

        with pytest.raises(ResolverUpstreamError):
            await resolver.resolve(variable)

    @pytest.mark.asyncio
    @respx.mock
    async def test_unexpected_shape(self, resolver, variable):
        respx.get(host="grafana.test", path=SERIES_PATH).mock(
            return_value=httpx.Response(200, json={"status": "success", "data": ["a", "b"]})
        )

        with pytest.raises(ResolverUpstreamError, match="unexpected"):
            await resolver.resolve(variable)

    @pytest.mark.asyncio
    async def test_malformed_query_makes_no_request(self, resolver):
        bad = TemplatingVariable(name="host", query="label_values(bad_format)")

        with respx.mock(assert_all_called=False) as mock:
            route = mock.get(host="grafana.test", path=SERIES_PATH)
            with pytest.raises(MalformedTemplateQuery):
                await resolver.resolve(bad)
            assert not route.called


@pytest.mark.asyncio
async def test_static_resolver():
    resolver = StaticResolver({"host": ["b", "a", "b"]})

    assert await resolver.resolve(TemplatingVariable(name="host")) == ["a", "b"]
    assert await resolver.resolve(TemplatingVariable(name="other")) == []


@pytest.mark.asyncio
async def test_invalid_base_url_is_upstream_error(time_range, variable):
    resolver = PrometheusSeriesResolver("http://grafana.test/\x01", None, time_range)

    with pytest.raises(ResolverUpstreamError):
        await resolver.resolve(variable)
