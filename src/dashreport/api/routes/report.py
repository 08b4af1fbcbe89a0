"""Report download routes.

``/api/report/{dash_name}`` addresses dashboards by slug (Grafana 4),
``/api/v5/report/{dash_name}`` by uid (Grafana 5+). Query parameters:
``from``, ``to``, ``apitoken`` and any number of ``var-<name>=<value>``.
"""

from __future__ import annotations

from collections.abc import Iterator

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.datastructures import QueryParams

from dashreport.config import Settings, get_settings
from dashreport.core.errors import DashReportError, format_error_message
from dashreport.grafana.timerange import TimeRange
from dashreport.report import new_report

logger = structlog.get_logger()

router = APIRouter()

CHUNK_SIZE = 64 * 1024


def dashboard_variables(params: QueryParams) -> dict[str, list[str]]:
    """Collect ``var-<name>`` query parameters, keyed by bare variable name."""
    variables: dict[str, list[str]] = {}
    for key in params.keys():
        if key.startswith("var-"):
            variables[key.removeprefix("var-")] = params.getlist(key)
    return variables


async def serve_report(
    request: Request,
    dash_name: str,
    api_version: str,
    settings: Settings,
) -> StreamingResponse:
    params = request.query_params
    try:
        time_range = TimeRange.create(params.get("from"), params.get("to"))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    variables = dashboard_variables(params)
    logger.info(
        "report_requested",
        dashboard=dash_name,
        api=api_version,
        time_range=str(time_range),
        variables=variables,
    )

    report = new_report(
        settings,
        dash_name,
        time_range,
        api_version=api_version,
        api_token=params.get("apitoken"),
        variables=variables,
    )
    try:
        pdf = await report.generate()
    except DashReportError as exc:
        await report.aclose()
        logger.error("report_failed", dashboard=dash_name, error=exc.message, details=exc.details)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=format_error_message(exc)
        ) from exc
    except Exception:
        await report.aclose()
        raise

    def _chunks() -> Iterator[bytes]:
        yield from iter(lambda: pdf.read(CHUNK_SIZE), b"")

    return StreamingResponse(
        _chunks(),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{dash_name}.pdf"'},
        background=BackgroundTask(report.aclose),
    )


@router.get("/api/report/{dash_name}")
async def report_v4(
    dash_name: str,
    request: Request,
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> StreamingResponse:
    return await serve_report(request, dash_name, "v4", settings)


@router.get("/api/v5/report/{dash_name}")
async def report_v5(
    dash_name: str,
    request: Request,
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> StreamingResponse:
    return await serve_report(request, dash_name, "v5", settings)
