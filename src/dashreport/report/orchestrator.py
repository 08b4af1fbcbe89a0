"""Report generation: dashboard -> expanded panels -> panel images -> PDF.

After reading (and closing) the file returned by ``Report.generate()``, call
``Report.clean()`` to delete the PDF together with the temporary build files.
``Report`` is also an async context manager that cleans up on exit.
"""

from __future__ import annotations

import asyncio
import shutil
import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, BinaryIO

import structlog

from dashreport.config.layout import LayoutConfig, load_layout
from dashreport.config.settings import Settings
from dashreport.core.errors import (
    AssemblyError,
    ConfigurationError,
    DashboardFetchError,
    ImageFetchError,
    ReportGenerationError,
)
from dashreport.grafana.client import GrafanaClient, new_client
from dashreport.grafana.expander import build_dashboard
from dashreport.grafana.models import Dashboard, RenderContext
from dashreport.grafana.resolver import TemplateVariableResolver
from dashreport.grafana.timerange import TimeRange
from dashreport.logging import bind_context
from dashreport.report.assembler import DocumentAssembler
from dashreport.report.fetcher import PanelImageFetcher

logger = structlog.get_logger()

IMAGE_DIR = "images"
REPORT_PDF = "report.pdf"


class Report:
    """One report generation run with its own temporary directory."""

    def __init__(
        self,
        client: GrafanaClient,
        dash_name: str,
        time_range: TimeRange,
        *,
        layout: LayoutConfig | None = None,
        font_dir: str | Path = "",
        tmp_root: str | Path = "tmp",
        resolver: TemplateVariableResolver | None = None,
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._dash_name = dash_name
        self._time_range = time_range
        self._assembler = DocumentAssembler(layout, font_dir)
        self._resolver = resolver
        self._owns_client = owns_client
        self.tmp_dir = Path(tmp_root) / str(uuid.uuid4())
        self.dashboard: Dashboard | None = None
        self._pdf: BinaryIO | None = None

    @property
    def image_dir(self) -> Path:
        return self.tmp_dir / IMAGE_DIR

    @property
    def pdf_path(self) -> Path:
        return self.tmp_dir / REPORT_PDF

    async def __aenter__(self) -> Report:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Clean up, and close the Grafana client when this report created it."""
        self.clean()
        if self._owns_client:
            await self._client.aclose()

    async def generate(self) -> BinaryIO:
        """Build the report and return the PDF opened for reading."""
        log = bind_context(dashboard=self._dash_name, time_range=str(self._time_range))
        try:
            self.image_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            cause = ConfigurationError(
                f"cannot create report directory {self.tmp_dir}: {exc}",
                details={"path": str(self.tmp_dir)},
            )
            raise ReportGenerationError("setup", cause) from exc

        try:
            payload = await self._client.get_dashboard(self._dash_name)
        except DashboardFetchError as exc:
            raise ReportGenerationError("dashboard fetch", exc) from exc

        context = RenderContext(
            base_url=self._client.base_url,
            api_token=self._client.token,
            time_range=self._time_range,
        )
        resolver = self._resolver or self._client.resolver(self._time_range)
        try:
            dashboard = await build_dashboard(payload, context, resolver, self._client.variables)
        except (TypeError, ValueError, AttributeError) as exc:
            cause = DashboardFetchError(
                f"error decoding dashboard {self._dash_name}: {exc}",
                details={"dashboard": self._dash_name},
            )
            raise ReportGenerationError("dashboard decode", cause) from exc
        self.dashboard = dashboard
        log.info("dashboard_ready", panels=len(dashboard.panels), iteration=context.iteration)

        fetcher = PanelImageFetcher(self._client, self.image_dir)
        try:
            result = await fetcher.fetch_all(dashboard.panels, self._dash_name, self._time_range)
            result.raise_for_errors()
        except ImageFetchError as exc:
            raise ReportGenerationError("image fetch", exc) from exc

        try:
            await asyncio.to_thread(
                self._assembler.assemble,
                dashboard,
                self._time_range,
                fetcher.image_path,
                self.pdf_path,
            )
        except AssemblyError as exc:
            raise ReportGenerationError("document assembly", exc) from exc

        self._pdf = open(self.pdf_path, "rb")
        log.info("report_generated", path=str(self.pdf_path))
        return self._pdf

    def clean(self) -> None:
        """Close the PDF handle if still open and delete the temporary directory."""
        if self._pdf is not None and not self._pdf.closed:
            self._pdf.close()
        self._pdf = None
        try:
            shutil.rmtree(self.tmp_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("tmp_dir_cleanup_failed", path=str(self.tmp_dir), error=str(exc))


def new_report(
    settings: Settings,
    dash_name: str,
    time_range: TimeRange,
    *,
    api_version: str | None = None,
    api_token: str | None = None,
    variables: Mapping[str, Sequence[str]] | None = None,
) -> Report:
    """Build a ``Report`` wired from application settings.

    The report owns its Grafana client; use ``async with`` or ``aclose()``.
    """
    client = new_client(
        api_version or settings.grafana_api,
        settings.grafana_url,
        token=api_token or settings.grafana_token,
        variables=variables,
        timeout=settings.http_timeout,
        datasource_id=settings.datasource_proxy_id,
        resolver_timeout=settings.resolver_timeout,
        graph_size=(settings.graph_width, settings.graph_height),
        singlestat_size=(settings.singlestat_width, settings.singlestat_height),
    )
    return Report(
        client,
        dash_name,
        time_range,
        layout=load_layout(settings.layout_file),
        font_dir=settings.font_dir,
        tmp_root=settings.tmp_dir,
        owns_client=True,
    )
