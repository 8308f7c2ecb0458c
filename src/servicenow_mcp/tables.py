"""Generic tools that are not tied to the incident table."""

import json
import logging
from typing import Any

from .client import ServiceNowClient
from .errors import StoreConnectionError
from .schemas import TableQueryInput, validate

logger = logging.getLogger(__name__)


async def table_query(client: ServiceNowClient, args: Any) -> str:
    """Query any table. Filter values are sent as given, without label conversion."""
    params: TableQueryInput = validate("servicenow_query", args)

    logger.info(f"Querying table {params.table} (limit: {params.limit}) [SNMCP-TABLE]")
    results = await client.query_table(
        params.table, params.filter_expression(), limit=params.limit
    )

    if not results:
        return f'No records found in table "{params.table}".'

    return (
        f'Found {len(results)} record(s) in table "{params.table}":\n\n'
        f"{json.dumps(results, indent=2)}"
    )


async def check_connection(client: ServiceNowClient, args: Any) -> str:
    """Verify credentials and connectivity for the selected instance."""
    validate("servicenow_test_connection", args)

    logger.info(f"Testing connection to {client.instance_url} [SNMCP-CONNTEST]")
    if not await client.test_connection():
        raise StoreConnectionError(
            f"test_connection({client.instance_url})",
            "Failed to connect to ServiceNow instance. "
            "Please check your credentials and instance URL.",
        )

    return f"✓ Successfully connected to ServiceNow instance at {client.instance_url}"
