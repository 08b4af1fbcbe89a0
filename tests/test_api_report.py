"""Tests for the report download API."""

import io
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import QueryParams

from dashreport.api.main import create_app
from dashreport.api.routes.report import dashboard_variables
from dashreport.config import Settings, get_settings
from dashreport.core.errors import (
    AssemblyError,
    DashboardFetchError,
    ImageFetchError,
    PanelFetchFailure,
    ReportGenerationError,
)

PDF_BYTES = b"%PDF-1.3 fake report"


@pytest.fixture
def settings(tmp_path):
    return Settings(_env_file=None, grafana_url="http://grafana.test", tmp_dir=str(tmp_path))


@pytest.fixture
def client(settings):
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    return TestClient(app)


@pytest.fixture
def fake_report():
    report = MagicMock()
    report.generate = AsyncMock(return_value=io.BytesIO(PDF_BYTES))
    report.aclose = AsyncMock()
    return report


def test_dashboard_variables():
    params = QueryParams("from=now-1h&var-host=a&var-host=b&var-db=x&apitoken=t")

    assert dashboard_variables(params) == {"host": ["a", "b"], "db": ["x"]}


class TestReportEndpoint:
    """Tests for /api/report and /api/v5/report."""

    def test_streams_pdf(self, client, settings, fake_report):
        with patch("dashreport.api.routes.report.new_report", return_value=fake_report) as factory:
            response = client.get(
                "/api/report/tikv",
                params=[("from", "now-6h"), ("to", "now"), ("apitoken", "t"), ("var-host", "a"), ("var-host", "b")],
            )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == PDF_BYTES

        args, kwargs = factory.call_args
        assert args[0] is settings
        assert args[1] == "tikv"
        assert str(args[2]) == "now-6h to now"
        assert kwargs == {"api_version": "v4", "api_token": "t", "variables": {"host": ["a", "b"]}}
        fake_report.aclose.assert_awaited_once()

    def test_v5_route(self, client, fake_report):
        with patch("dashreport.api.routes.report.new_report", return_value=fake_report) as factory:
            response = client.get("/api/v5/report/abc123")

        assert response.status_code == 200
        assert factory.call_args.kwargs["api_version"] == "v5"
        assert str(factory.call_args.args[2]) == "now-1h to now"

    def test_bad_time_range(self, client):
        with patch("dashreport.api.routes.report.new_report") as factory:
            response = client.get("/api/report/tikv", params={"from": "yesterday"})

        assert response.status_code == 400
        factory.assert_not_called()

    @pytest.mark.parametrize(
        ("stage", "cause"),
        [
            ("dashboard fetch", DashboardFetchError("error fetching dashboard tikv: 404", details={"dashboard": "tikv"})),
            ("document assembly", AssemblyError("bad font", details={"dashboard": "tikv"})),
            ("image fetch", ImageFetchError([PanelFetchFailure(3, "500")])),
        ],
    )
    def test_generation_failure(self, client, fake_report, stage, cause):
        """Stage failures, including ones whose details name the dashboard, become a 500 with the message."""
        fake_report.generate.side_effect = ReportGenerationError(stage, cause)

        with patch("dashreport.api.routes.report.new_report", return_value=fake_report):
            response = client.get("/api/report/tikv")

        assert response.status_code == 500
        assert stage in response.json()["detail"]
        fake_report.aclose.assert_awaited_once()

    def test_unexpected_failure_still_cleans_up(self, settings, fake_report):
        app = create_app()
        app.dependency_overrides[get_settings] = lambda: settings
        client = TestClient(app, raise_server_exceptions=False)
        fake_report.generate.side_effect = RuntimeError("boom")

        with patch("dashreport.api.routes.report.new_report", return_value=fake_report):
            response = client.get("/api/report/tikv")

        assert response.status_code == 500
        fake_report.aclose.assert_awaited_once()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["grafana_url"] == "http://grafana.test"
