from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from dashreport.core.errors import ConfigurationError, DashboardFetchError
from dashreport.grafana.models import Panel
from dashreport.grafana.resolver import DEFAULT_RESOLVER_TIMEOUT, PrometheusSeriesResolver
from dashreport.grafana.timerange import TimeRange

logger = structlog.get_logger()

DEFAULT_USER_AGENT = "dashreport-grafana/0.1.0"


class GrafanaClient:
    """Grafana HTTP API access for report generation.

    Subclasses choose how a dashboard is addressed (slug or uid).
    """

    api_version = ""
    dashboard_path = ""
    render_path = ""

    def __init__(
        self,
        url: str,
        token: str | None = None,
        variables: Mapping[str, Sequence[str]] | None = None,
        *,
        timeout: float = 60.0,
        datasource_id: int = 1,
        resolver_timeout: float = DEFAULT_RESOLVER_TIMEOUT,
        graph_size: tuple[int, int] = (1000, 500),
        singlestat_size: tuple[int, int] = (300, 150),
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._token = token
        self.variables = {name: list(values) for name, values in (variables or {}).items()}
        self._timeout = timeout
        self._datasource_id = datasource_id
        self._resolver_timeout = resolver_timeout
        self._graph_size = graph_size
        self._singlestat_size = singlestat_size
        self._user_agent = user_agent
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def token(self) -> str | None:
        return self._token

    async def __aenter__(self) -> GrafanaClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": self._user_agent}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def dashboard_url(self, dash_name: str) -> str:
        return self._base_url + self.dashboard_path.format(name=quote(dash_name, safe=""))

    def panel_png_url(self, dash_name: str) -> str:
        return self._base_url + self.render_path.format(name=quote(dash_name, safe=""))

    def panel_png_params(self, panel: Panel, time_range: TimeRange) -> list[tuple[str, str]]:
        width, height = self._singlestat_size if panel.is_singlestat else self._graph_size
        params = [
            ("panelId", str(panel.id)),
            ("from", time_range.from_),
            ("to", time_range.to),
            ("width", str(width)),
            ("height", str(height)),
        ]
        for name, values in self.variables.items():
            key = name if name.startswith("var-") else f"var-{name}"
            params.extend((key, value) for value in values)
        return params

    def resolver(self, time_range: TimeRange) -> PrometheusSeriesResolver:
        """Template variable resolver sharing this client's Grafana and credentials."""
        return PrometheusSeriesResolver(
            self._base_url,
            self._token,
            time_range,
            datasource_id=self._datasource_id,
            timeout=self._resolver_timeout,
        )

    async def get_dashboard(self, dash_name: str) -> dict[str, Any]:
        """Fetch the dashboard JSON envelope (``{"dashboard": ..., "meta": ...}``)."""
        url = self.dashboard_url(dash_name)
        logger.info("fetching_dashboard", dashboard=dash_name, api=self.api_version)
        try:
            resp = await self._http().get(url, headers=self._headers())
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DashboardFetchError(
                f"error fetching dashboard {dash_name}: {exc}", details={"dashboard": dash_name}
            ) from exc
        except ValueError as exc:
            raise DashboardFetchError(
                f"dashboard {dash_name} is not valid JSON: {exc}", details={"dashboard": dash_name}
            ) from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("dashboard", payload), dict):
            raise DashboardFetchError(
                f"unexpected dashboard payload for {dash_name}", details={"dashboard": dash_name}
            )
        return payload

    async def download_panel_png(
        self,
        panel: Panel,
        dash_name: str,
        time_range: TimeRange,
        destination: Path,
    ) -> int:
        """Stream one rendered panel into ``destination``; returns the bytes written.

        Raises ``httpx.HTTPError`` or ``httpx.InvalidURL`` for request failures and
        ``OSError`` for file errors. File writes run in a worker thread.
        """
        url = self.panel_png_url(dash_name)
        params = self.panel_png_params(panel, time_range)
        written = 0
        async with self._http().stream("GET", url, params=params, headers=self._headers()) as resp:
            resp.raise_for_status()
            fh = await asyncio.to_thread(open, destination, "wb")
            try:
                async for chunk in resp.aiter_bytes():
                    await asyncio.to_thread(fh.write, chunk)
                    written += len(chunk)
            finally:
                await asyncio.to_thread(fh.close)
        return written


class GrafanaV4Client(GrafanaClient):
    """Grafana 4.x: dashboards addressed by slug."""

    api_version = "v4"
    dashboard_path = "/api/dashboards/db/{name}"
    render_path = "/render/dashboard-solo/db/{name}"


class GrafanaV5Client(GrafanaClient):
    """Grafana 5.x and later: dashboards addressed by uid."""

    api_version = "v5"
    dashboard_path = "/api/dashboards/uid/{name}"
    render_path = "/render/d-solo/{name}/_"


_CLIENTS: dict[str, type[GrafanaClient]] = {
    GrafanaV4Client.api_version: GrafanaV4Client,
    GrafanaV5Client.api_version: GrafanaV5Client,
}


def new_client(api_version: str, url: str, **kwargs: Any) -> GrafanaClient:
    """Build the client for ``api_version`` (``v4`` or ``v5``)."""
    try:
        client_cls = _CLIENTS[api_version]
    except KeyError:
        raise ConfigurationError(
            f"unsupported Grafana API version: {api_version}",
            details={"supported": sorted(_CLIENTS)},
        ) from None
    return client_cls(url, **kwargs)
