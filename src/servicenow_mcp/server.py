"""
ServiceNow MCP Server

Exposes ServiceNow incident management via Model Context Protocol.
Uses FastMCP for server implementation.
"""

import os
import logging
from typing import Any, Awaitable, Callable, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from . import incidents, tables
from .client import ServiceNowClient
from .config import ServiceNowConfig, load_config
from .errors import ServiceNowMCPError
from .schemas import InstanceName

# Configure logging (stderr; stdout carries the MCP protocol)
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("ServiceNow")

_config: Optional[ServiceNowConfig] = None
_clients: dict[str, ServiceNowClient] = {}

Handler = Callable[[ServiceNowClient, dict[str, Any]], Awaitable[str]]

# Tool arguments that select or guard a record; never taken from additional_fields
RESERVED_ARGUMENTS = frozenset({"identifier", "confirm", "instance"})


def get_config() -> ServiceNowConfig:
    """Load configuration on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def get_client(instance: Optional[str] = None) -> ServiceNowClient:
    """Get or create the client for an instance (the default instance when None)."""
    config = get_config()
    name = instance or config.default_instance
    if name not in _clients:
        _clients[name] = ServiceNowClient(config.instance(name), timeout=config.timeout)
    return _clients[name]


def _payload(**arguments: Any) -> dict[str, Any]:
    """Collect the arguments the caller actually supplied."""
    payload = {key: value for key, value in arguments.items() if value is not None}
    # AIDEV-NOTE: passthrough-fields; additional_fields are flattened so they reach the record as columns
    extra = payload.pop("additional_fields", None) or {}
    for key, value in extra.items():
        if key in RESERVED_ARGUMENTS:
            logger.warning(f"Ignoring reserved key in additional_fields: {key} [SNMCP-RESERVED]")
            continue
        payload.setdefault(key, value)
    return payload


async def _run(tool_name: str, handler: Handler, payload: dict[str, Any]) -> str:
    """Run a tool handler against the selected instance, reporting failures as tool errors."""
    logger.info(f"Tool call: {tool_name} with arguments: {sorted(payload)} [SNMCP-CALL]")
    try:
        client = get_client(payload.get("instance"))
        return await handler(client, payload)
    except ServiceNowMCPError as e:
        logger.error(f"{tool_name} failed: {e} [SNMCP-ERR]")
        raise ToolError(f"Error: {e}") from e


@mcp.tool()
async def incident_query(
    filter: Optional[dict[str, Any]] = None,
    limit: int = 100,
    fields: Optional[list[str]] = None,
    instance: Optional[InstanceName] = None,
) -> str:
    """
    Query ServiceNow incidents with optional filters.

    Args:
        filter: Filter criteria as field/value pairs. state, priority, urgency and
                impact accept either codes or labels, e.g. {"state": "New"} or
                {"state": "1"}. Use {"operator": ..., "value": ...} for other
                comparisons; operators: =, !=, >, >=, <, <=, LIKE, STARTSWITH,
                ENDSWITH, CONTAINS, IN, NOT IN, ISEMPTY, ISNOTEMPTY.
                All conditions must match (no OR).
        limit: Maximum number of records to return (default: 100, max: 1000)
        fields: Specific fields to return, e.g. ["number", "short_description", "state"].
                Returns all fields if not specified.
        instance: ServiceNow instance to use (primary, dev, test, prod)

    Returns:
        Number of incidents found followed by the records as JSON.

    Examples:
        - {"filter": {"state": "New", "priority": "Critical"}}
        - {"filter": {"assigned_to": "john.doe"}}
        - {"filter": {"priority": {"operator": "<=", "value": "2"}}, "limit": 10}
    """
    return await _run(
        "incident_query",
        incidents.incident_query,
        _payload(filter=filter, limit=limit, fields=fields, instance=instance),
    )


@mcp.tool()
async def incident_get(
    identifier: str,
    fields: Optional[list[str]] = None,
    instance: Optional[InstanceName] = None,
) -> str:
    """
    Get a specific incident by incident number or sys_id.

    Args:
        identifier: Incident number (e.g. "INC0010001") or sys_id (32-character hex string)
        fields: Specific fields to return. Returns all fields if not specified.
        instance: ServiceNow instance to use (primary, dev, test, prod)

    Example:
        {"identifier": "INC0010001", "fields": ["short_description", "state", "priority"]}
    """
    return await _run(
        "incident_get",
        incidents.incident_get,
        _payload(identifier=identifier, fields=fields, instance=instance),
    )


@mcp.tool()
async def incident_create(
    short_description: str,
    description: Optional[str] = None,
    priority: Optional[str] = None,
    urgency: Optional[str] = None,
    impact: Optional[str] = None,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    assignment_group: Optional[str] = None,
    assigned_to: Optional[str] = None,
    caller_id: Optional[str] = None,
    additional_fields: Optional[dict[str, Any]] = None,
    instance: Optional[InstanceName] = None,
) -> str:
    """
    Create a new ServiceNow incident.

    Args:
        short_description: Brief description of the incident (required)
        description: Detailed description with more context
        priority: "Critical"/"1", "High"/"2", "Moderate"/"3", "Low"/"4" or "Planning"/"5"
        urgency: "High"/"1", "Medium"/"2" or "Low"/"3"
        impact: "High"/"1" (affects many users), "Medium"/"2" or "Low"/"3"
        category: Incident category (e.g. "Hardware", "Software", "Network")
        subcategory: Incident subcategory
        assignment_group: Assignment group name or sys_id
        assigned_to: Assigned user name or sys_id
        caller_id: Caller user name or sys_id
        additional_fields: Any other incident fields to set, sent to ServiceNow unchanged
        instance: ServiceNow instance to use (primary, dev, test, prod)

    Returns:
        The new incident number and sys_id, followed by the created record.

    Example:
        {"short_description": "Database connection timeout", "priority": "High", "urgency": "High"}
    """
    return await _run(
        "incident_create",
        incidents.incident_create,
        _payload(
            short_description=short_description,
            description=description,
            priority=priority,
            urgency=urgency,
            impact=impact,
            category=category,
            subcategory=subcategory,
            assignment_group=assignment_group,
            assigned_to=assigned_to,
            caller_id=caller_id,
            additional_fields=additional_fields,
            instance=instance,
        ),
    )


@mcp.tool()
async def incident_update(
    identifier: str,
    state: Optional[str] = None,
    priority: Optional[str] = None,
    urgency: Optional[str] = None,
    impact: Optional[str] = None,
    short_description: Optional[str] = None,
    description: Optional[str] = None,
    work_notes: Optional[str] = None,
    comments: Optional[str] = None,
    assignment_group: Optional[str] = None,
    assigned_to: Optional[str] = None,
    close_code: Optional[str] = None,
    close_notes: Optional[str] = None,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    additional_fields: Optional[dict[str, Any]] = None,
    instance: Optional[InstanceName] = None,
) -> str:
    """
    Update an existing incident by incident number or sys_id.

    Provide only the fields you want to change.

    Args:
        identifier: Incident number (e.g. "INC0010001") or sys_id to update
        state: "New"/"1", "In Progress"/"2", "On Hold"/"3", "Resolved"/"6",
               "Closed"/"7" or "Canceled"/"8"
        priority: "Critical"/"1", "High"/"2", "Moderate"/"3", "Low"/"4" or "Planning"/"5"
        urgency: "High"/"1", "Medium"/"2" or "Low"/"3"
        impact: "High"/"1", "Medium"/"2" or "Low"/"3"
        short_description: Brief description of the incident
        description: Detailed description of the incident
        work_notes: Internal work notes (visible to IT staff only)
        comments: Customer-visible comments
        assignment_group: Assignment group name or sys_id
        assigned_to: Assigned user name or sys_id
        close_code: Resolution code (required when resolving/closing)
        close_notes: Resolution notes (required when resolving/closing)
        category: Incident category
        subcategory: Incident subcategory
        additional_fields: Any other incident fields to set, sent to ServiceNow unchanged
        instance: ServiceNow instance to use (primary, dev, test, prod)

    Examples:
        - {"identifier": "INC0010001", "state": "In Progress", "work_notes": "Working on this"}
        - {"identifier": "INC0010001", "state": "Resolved", "close_notes": "Issue fixed"}
    """
    return await _run(
        "incident_update",
        incidents.incident_update,
        _payload(
            identifier=identifier,
            state=state,
            priority=priority,
            urgency=urgency,
            impact=impact,
            short_description=short_description,
            description=description,
            work_notes=work_notes,
            comments=comments,
            assignment_group=assignment_group,
            assigned_to=assigned_to,
            close_code=close_code,
            close_notes=close_notes,
            category=category,
            subcategory=subcategory,
            additional_fields=additional_fields,
            instance=instance,
        ),
    )


@mcp.tool()
async def incident_delete(
    identifier: str,
    confirm: bool = False,
    instance: Optional[InstanceName] = None,
) -> str:
    """
    Delete an incident by incident number or sys_id.

    CAUTION: This is a destructive operation and requires explicit confirmation.

    Args:
        identifier: Incident number (e.g. "INC0010001") or sys_id
        confirm: REQUIRED. Must be true to confirm deletion.
        instance: ServiceNow instance to use (primary, dev, test, prod)

    Example:
        {"identifier": "INC0010001", "confirm": true}
    """
    return await _run(
        "incident_delete",
        incidents.incident_delete,
        _payload(identifier=identifier, confirm=confirm, instance=instance),
    )


@mcp.tool()
async def servicenow_query(
    table: str,
    filter: Optional[dict[str, Any]] = None,
    limit: int = 100,
    instance: Optional[InstanceName] = None,
) -> str:
    """
    Query any ServiceNow table with filters. Generic tool for advanced users.

    Args:
        table: Table name (e.g. "incident", "sc_req_item", "sc_task")
        filter: Filter criteria as field/value pairs, same format as incident_query.
                Values are sent exactly as given (no label conversion).
        limit: Maximum number of records to return (default: 100, max: 1000)
        instance: ServiceNow instance to use (primary, dev, test, prod)
    """
    return await _run(
        "servicenow_query",
        tables.table_query,
        _payload(table=table, filter=filter, limit=limit, instance=instance),
    )


@mcp.tool()
async def servicenow_test_connection(instance: Optional[InstanceName] = None) -> str:
    """
    Test connection to a ServiceNow instance to verify credentials and connectivity.

    Args:
        instance: Instance name (primary, dev, test, prod). Uses the default instance if not specified.
    """
    return await _run(
        "servicenow_test_connection",
        tables.check_connection,
        _payload(instance=instance),
    )


def main():
    """Main entry point for the MCP server."""
    try:
        config = get_config()
    except ServiceNowMCPError as e:
        logger.error(f"Configuration error: {e} [SNMCP-NOCONFIG]")
        raise SystemExit(1) from e

    logger.info(f"Configured instances: {', '.join(config.instances)} [SNMCP-INIT]")
    logger.info(f"Default instance: {config.default_instance} [SNMCP-INIT]")
    logger.info("Starting ServiceNow MCP Server [SNMCP-START]")
    mcp.run()


if __name__ == "__main__":
    main()
