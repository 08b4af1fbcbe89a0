"""Root test configuration."""

import io
import logging

import pytest
import structlog
from PIL import Image

GRAFANA_URL = "http://grafana.test"


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def png_bytes():
    """A tiny valid PNG, as returned by the Grafana image renderer."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 4), color=(30, 120, 200)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def legacy_payload():
    """Row-based dashboard with one repeating row between two plain rows."""
    return {
        "dashboard": {
            "title": "TiKV",
            "templating": {
                "list": [
                    {
                        "name": "host",
                        "datasource": "tidb-cluster",
                        "query": "label_values(tikv_engine_size_bytes, instance)",
                    }
                ]
            },
            "rows": [
                {
                    "id": 1,
                    "showTitle": True,
                    "title": "Cluster",
                    "panels": [{"id": 1, "type": "graph", "title": "QPS"}],
                },
                {
                    "id": 2,
                    "showTitle": True,
                    "title": "Host $host",
                    "repeat": "host",
                    "panels": [
                        {"id": 2, "type": "graph", "title": "CPU"},
                        {"id": 3, "type": "singlestat", "title": "Up"},
                    ],
                },
                {
                    "id": 3,
                    "title": "Footer",
                    "panels": [{"id": 4, "type": "graph", "title": "Latency"}],
                },
            ],
        },
        "meta": {"slug": "tikv"},
    }


@pytest.fixture
def current_payload():
    """Flat-panel dashboard with row pseudo-panels, one of them collapsed."""
    return {
        "dashboard": {
            "title": "TiDB",
            "panels": [
                {"id": 10, "type": "row", "title": "Server"},
                {"id": 11, "type": "graph", "title": "Duration"},
                {"id": 12, "type": "singlestat", "title": "Uptime"},
                {
                    "id": 13,
                    "type": "row",
                    "title": "Collapsed",
                    "collapsed": True,
                    "panels": [{"id": 14, "type": "graph", "title": "GC"}],
                },
            ],
        },
        "meta": {"slug": "tidb"},
    }
