"""Parallel panel image download.

Panel images are fetched by a fixed pool of workers so large dashboards do not
overwhelm the Grafana image renderer. Each worker keeps its own tally; the
fetcher merges them once every worker has finished.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import structlog

from dashreport.core.errors import ImageFetchError, PanelFetchFailure
from dashreport.grafana.client import GrafanaClient
from dashreport.grafana.models import Panel
from dashreport.grafana.timerange import TimeRange

logger = structlog.get_logger()

WORKER_COUNT = 5


def image_file_name(panel_id: int) -> str:
    return f"image{panel_id}.png"


@dataclass
class FetchResult:
    """Outcome of fetching every panel image of a dashboard."""

    success_count: int = 0
    errors: list[PanelFetchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ImageFetchError(self.errors)


class PanelImageFetcher:
    """Download one PNG per panel into ``image_dir``."""

    def __init__(self, client: GrafanaClient, image_dir: Path) -> None:
        self._client = client
        self._image_dir = Path(image_dir)

    @property
    def image_dir(self) -> Path:
        return self._image_dir

    def image_path(self, panel: Panel) -> Path:
        return self._image_dir / image_file_name(panel.id)

    async def fetch_all(
        self,
        panels: Sequence[Panel],
        dash_name: str,
        time_range: TimeRange,
    ) -> FetchResult:
        """Fetch every panel image; a failed panel never stops the others."""
        self._image_dir.mkdir(parents=True, exist_ok=True)

        queue: asyncio.Queue[Panel] = asyncio.Queue()
        for panel in panels:
            queue.put_nowait(panel)

        worker_results = await asyncio.gather(
            *(self._worker(queue, dash_name, time_range) for _ in range(WORKER_COUNT))
        )

        result = FetchResult()
        for success_count, failures in worker_results:
            result.success_count += success_count
            result.errors.extend(failures)
        result.errors.sort(key=lambda failure: failure.panel_id)

        logger.info(
            "panel_images_fetched",
            dashboard=dash_name,
            panels=len(panels),
            succeeded=result.success_count,
            failed=len(result.errors),
        )
        return result

    async def _worker(
        self,
        queue: asyncio.Queue[Panel],
        dash_name: str,
        time_range: TimeRange,
    ) -> tuple[int, list[PanelFetchFailure]]:
        success_count = 0
        failures: list[PanelFetchFailure] = []
        while True:
            try:
                panel = queue.get_nowait()
            except asyncio.QueueEmpty:
                return success_count, failures

            destination = self.image_path(panel)
            try:
                size = await self._client.download_panel_png(panel, dash_name, time_range, destination)
            except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
                logger.error("panel_image_failed", panel_id=panel.id, panel_title=panel.title, error=str(exc))
                failures.append(PanelFetchFailure(panel.id, str(exc)))
                destination.unlink(missing_ok=True)
            else:
                logger.debug("panel_image_written", panel_id=panel.id, path=str(destination), bytes=size)
                success_count += 1
