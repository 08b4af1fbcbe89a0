"""
Template variable resolution.

Repeat rows are expanded once per value of a templating variable. Values of
``label_values(metric, label)`` queries are looked up through the Prometheus
series API behind Grafana's datasource proxy.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from dashreport.core.errors import MalformedTemplateQuery, ResolverUpstreamError
from dashreport.grafana.models import TemplatingVariable
from dashreport.grafana.timerange import TimeRange

logger = structlog.get_logger()

DEFAULT_USER_AGENT = "dashreport-resolver/0.1.0"
DEFAULT_RESOLVER_TIMEOUT = 300.0

LABEL_VALUES_PATTERN = re.compile(r"^\s*label_values\(\s*(\w+)\s*,\s*(\w+)\s*\)\s*$")


class TemplateVariableResolver(Protocol):
    """Anything that can turn a templating variable into its ordered values."""

    async def resolve(self, variable: TemplatingVariable) -> list[str]: ...


class SeriesResponse(BaseModel):
    """Envelope returned by ``/api/v1/series``."""

    status: str
    data: list[dict[str, Any]] = []
    error: str | None = None


def parse_label_values_query(query: str) -> tuple[str, str]:
    """Split ``label_values(metric, label)`` into ``(metric, label)``."""
    match = LABEL_VALUES_PATTERN.match(query)
    if not match:
        raise MalformedTemplateQuery(
            "templating query is not label_values(metric, label)",
            details={"query": query},
        )
    return match.group(1), match.group(2)


def collect_label_values(series: Sequence[Mapping[str, Any]], label: str) -> list[str]:
    """Sorted, de-duplicated string values of ``label``; other value types are skipped."""
    values = {item[label] for item in series if isinstance(item.get(label), str)}
    return sorted(values)


class PrometheusSeriesResolver:
    """Resolve ``label_values`` variables through the Grafana datasource proxy."""

    def __init__(
        self,
        base_url: str,
        token: str | None,
        time_range: TimeRange,
        *,
        datasource_id: int = 1,
        timeout: float = DEFAULT_RESOLVER_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._time_range = time_range
        self._datasource_id = datasource_id
        self._timeout = timeout
        self._user_agent = user_agent

    def series_url(self) -> str:
        return f"{self._base_url}/api/datasources/proxy/{self._datasource_id}/api/v1/series"

    async def resolve(self, variable: TemplatingVariable) -> list[str]:
        metric, label = parse_label_values_query(variable.query)
        url = self.series_url()
        params = {
            "match[]": metric,
            "start": self._time_range.start_unix(),
            "end": self._time_range.end_unix(),
        }
        headers = {"User-Agent": self._user_agent}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        logger.info("resolving_template_variable", variable=variable.name, metric=metric, label=label)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, params=params, headers=headers)
                resp.raise_for_status()
                envelope = SeriesResponse.model_validate(resp.json())
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ResolverUpstreamError(
                f"series request failed: {exc}", details={"variable": variable.name}
            ) from exc
        except ValidationError as exc:
            raise ResolverUpstreamError(
                "unexpected series response shape", details={"variable": variable.name}
            ) from exc
        except ValueError as exc:
            raise ResolverUpstreamError(
                f"series response is not JSON: {exc}", details={"variable": variable.name}
            ) from exc

        if envelope.status != "success":
            raise ResolverUpstreamError(
                f"series API returned status {envelope.status!r}: {envelope.error or 'unknown error'}",
                details={"variable": variable.name},
            )

        values = collect_label_values(envelope.data, label)
        logger.debug("resolved_template_variable", variable=variable.name, count=len(values))
        return values


class StaticResolver:
    """Resolve variables from a fixed mapping of name to values."""

    def __init__(self, values: Mapping[str, Sequence[str]]) -> None:
        self._values = {name: list(v) for name, v in values.items()}

    async def resolve(self, variable: TemplatingVariable) -> list[str]:
        return sorted(set(self._values.get(variable.name, [])))
