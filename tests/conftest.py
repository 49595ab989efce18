"""Root test configuration."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
import structlog

from dynatrace_sli.clients.dynatrace import DynatraceClient
from dynatrace_sli.config.settings import DynatraceConfig
from dynatrace_sli.context import DeliveryContext, PlaceholderResolver
from dynatrace_sli.metrics.query import QueryBuilder

API_URL = "https://tenant.live.dynatrace.com"
DASHBOARD_ID = "12345678-1111-4222-8333-123456789abc"

WINDOW_START = datetime(2021, 1, 1, 12, 0, tzinfo=timezone.utc)
WINDOW_END = WINDOW_START + timedelta(minutes=5)
START_MS = "1609502400000"
END_MS = "1609502700000"


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
def config():
    return DynatraceConfig(
        api_url=API_URL,
        headers={"Authorization": "Api-Token test-token", "Accept": "application/json"},
    )


@pytest.fixture
def client(config):
    client = DynatraceClient(config)
    yield client
    client.close()


@pytest.fixture
def context():
    return DeliveryContext(
        project="sockshop",
        stage="staging",
        service="carts",
        deployment="primary",
        test_strategy="performance",
        labels={"owner": "team-a"},
    )


@pytest.fixture
def query_builder(context):
    return QueryBuilder(API_URL, PlaceholderResolver(context))


@pytest.fixture
def window():
    return WINDOW_START, WINDOW_END


@pytest.fixture
def metric_definition():
    """Factory for /api/v2/metrics/{id} payloads."""

    def build(metric_id, *, unit="", dimensions=(), aggregation="avg", entity_type=()):
        return {
            "metricId": metric_id,
            "displayName": metric_id,
            "unit": unit,
            "defaultAggregation": {"type": aggregation},
            "dimensionDefinitions": [
                {"key": key, "name": key, "type": "ENTITY" if key.startswith("dt.entity.") else "STRING"}
                for key in dimensions
            ],
            "entityType": list(entity_type),
        }

    return build


@pytest.fixture
def metrics_result():
    """Factory for /api/v2/metrics/query payloads: rows are (dimensions, values) pairs."""

    def build(metric_id, rows):
        return {
            "totalCount": len(rows),
            "nextPageKey": None,
            "result": [
                {
                    "metricId": metric_id,
                    "data": [
                        {"dimensions": list(dimensions), "timestamps": [1609502700000], "values": list(values)}
                        for dimensions, values in rows
                    ],
                }
            ],
        }

    return build


@pytest.fixture
def dashboard_json():
    """Factory for /api/config/v1/dashboards/{id} payloads."""

    def build(tiles, *, management_zone=None, name="KQG;project=sockshop;service=carts;stage=staging"):
        metadata = {"name": name, "shared": True, "owner": "admin"}
        if management_zone is not None:
            metadata["dashboardFilter"] = {
                "timeframe": "",
                "managementZone": {"id": management_zone, "name": "zone"},
            }
        return {
            "metadata": {"configurationVersions": [3], "clusterVersion": "1.210"},
            "id": DASHBOARD_ID,
            "dashboardMetadata": metadata,
            "tiles": tiles,
        }

    return build
