"""
Incident tools: query, get, create, update and delete records in the
ServiceNow ``incident`` table.

Each function validates the raw tool arguments, talks to the Table API
through a ServiceNowClient and returns text for the assistant. Validation
failures raise ValidationFailure before any API call; API failures raise
StoreError and are never retried. An identifier that matches no incident is
reported in the returned text, not raised.
"""

import json
import logging
from typing import Any

from .client import ServiceNowClient
from .filters import serialize
from .resolver import find_by_number, is_sys_id, resolve_identifier
from .schemas import (
    IncidentCreateInput,
    IncidentDeleteInput,
    IncidentGetInput,
    IncidentQueryInput,
    IncidentUpdateInput,
    validate,
)

logger = logging.getLogger(__name__)

INCIDENT_TABLE = "incident"


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2)


def _not_found(identifier: str) -> str:
    return f'Incident "{identifier}" not found.'


async def incident_query(client: ServiceNowClient, args: Any) -> str:
    """Query incidents with optional filters."""
    params: IncidentQueryInput = validate("incident_query", args)
    expression = params.filter_expression()

    logger.info(f"Querying incidents: query='{serialize(expression)}' limit={params.limit} [SNMCP-QUERY]")
    results = await client.query_table(
        INCIDENT_TABLE, expression, limit=params.limit, fields=params.fields
    )

    if not results:
        logger.info("No incidents matched [SNMCP-NORES]")
        return "No incidents found matching the criteria."

    logger.info(f"Returned {len(results)} incidents [SNMCP-OK]")
    return f"Found {len(results)} incident(s):\n\n{_dump(results)}"


async def incident_get(client: ServiceNowClient, args: Any) -> str:
    """Get one incident by number or sys_id."""
    params: IncidentGetInput = validate("incident_get", args)
    identifier = params.identifier

    logger.info(f"Getting incident: {identifier} [SNMCP-GET]")
    if is_sys_id(identifier):
        incident = await client.get_record(INCIDENT_TABLE, identifier, fields=params.fields)
    else:
        incident = await find_by_number(client, INCIDENT_TABLE, identifier, fields=params.fields)
        if incident is None:
            return _not_found(identifier)

    return f"Incident Details:\n\n{_dump(incident)}"


async def incident_create(client: ServiceNowClient, args: Any) -> str:
    """Create an incident. Undeclared fields are passed through to ServiceNow."""
    params: IncidentCreateInput = validate("incident_create", args)
    data = params.record_data()

    logger.info(f"Creating incident with fields: {sorted(data)} [SNMCP-CREATE]")
    incident = await client.create_record(INCIDENT_TABLE, data)

    logger.info(f"Created incident {incident.get('number')} [SNMCP-OK]")
    return (
        "✓ Incident created successfully!\n\n"
        f"Incident Number: {incident.get('number')}\n"
        f"Sys ID: {incident.get('sys_id')}\n\n"
        f"Details:\n{_dump(incident)}"
    )


async def incident_update(client: ServiceNowClient, args: Any) -> str:
    """Update an incident by number or sys_id. Only the given fields change."""
    params: IncidentUpdateInput = validate("incident_update", args)

    resolved = await resolve_identifier(client, INCIDENT_TABLE, params.identifier)
    if resolved is None:
        return _not_found(params.identifier)

    data = params.record_data()
    logger.info(f"Updating incident {resolved.sys_id} fields: {sorted(data)} [SNMCP-UPDATE]")
    incident = await client.update_record(INCIDENT_TABLE, resolved.sys_id, data)

    return (
        "✓ Incident updated successfully!\n\n"
        f"Incident Number: {incident.get('number')}\n\n"
        f"Updated Details:\n{_dump(incident)}"
    )


async def incident_delete(client: ServiceNowClient, args: Any) -> str:
    """Delete an incident by number or sys_id. Requires confirm=true."""
    params: IncidentDeleteInput = validate("incident_delete", args)

    resolved = await resolve_identifier(
        client, INCIDENT_TABLE, params.identifier, fetch_number=True
    )
    if resolved is None:
        return _not_found(params.identifier)

    logger.warning(f"Deleting incident {resolved.number} ({resolved.sys_id}) [SNMCP-DELETE]")
    await client.delete_record(INCIDENT_TABLE, resolved.sys_id)

    return f"✓ Incident {resolved.number} deleted successfully."
