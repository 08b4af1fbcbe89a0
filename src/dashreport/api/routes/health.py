from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from dashreport.config import Settings, get_settings

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    grafana_url: str
    grafana_api: str
    version: str = "0.1.0"


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check(settings: Settings = Depends(get_settings)) -> HealthResponse:  # noqa: B008
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        grafana_url=settings.grafana_url,
        grafana_api=settings.grafana_api,
    )
