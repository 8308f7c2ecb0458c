"""Shared fixtures for the ServiceNow MCP tests."""

from unittest.mock import AsyncMock

import pytest

from servicenow_mcp.client import ServiceNowClient
from servicenow_mcp.config import InstanceConfig

SYS_ID = "9d385017c611228701d22104cc95c371"
INSTANCE_URL = "https://dev12345.service-now.com"


@pytest.fixture
def instance_config():
    return InstanceConfig(url=INSTANCE_URL, username="admin", password="secret")


@pytest.fixture
def incident():
    """An incident record as returned by the Table API."""
    return {
        "sys_id": SYS_ID,
        "number": "INC0010001",
        "short_description": "Email server down",
        "state": "1",
        "priority": "1",
        "urgency": "1",
        "impact": "2",
        "sys_created_on": "2025-01-15 09:30:00",
        "sys_updated_on": "2025-01-15 09:30:00",
        "sys_created_by": "admin",
        "sys_updated_by": "admin",
    }


@pytest.fixture
def store():
    """A ServiceNowClient stand-in whose API calls are AsyncMocks."""
    client = AsyncMock(spec=ServiceNowClient)
    client.instance_url = INSTANCE_URL
    client.query_table.return_value = []
    return client
