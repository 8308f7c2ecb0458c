"""Resolve a user-supplied record identifier to a sys_id."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from .client import ServiceNowClient
from .filters import FilterExpression, FilterLiteral

logger = logging.getLogger(__name__)

SYS_ID_PATTERN = re.compile(r"^[a-f0-9]{32}$", re.IGNORECASE)

LOOKUP_FIELDS = ["sys_id", "number"]


@dataclass(frozen=True)
class ResolvedIdentifier:
    sys_id: str
    # None when the identifier was a sys_id and no lookup was made
    number: Optional[str] = None


def is_sys_id(identifier: str) -> bool:
    """True for 32-character hex strings, the format of ServiceNow sys_ids."""
    return SYS_ID_PATTERN.match(identifier) is not None


def number_filter(identifier: str) -> FilterExpression:
    return FilterExpression({"number": FilterLiteral(identifier)})


async def find_by_number(
    client: ServiceNowClient,
    table: str,
    number: str,
    *,
    fields: Optional[list[str]] = None,
) -> Optional[dict[str, Any]]:
    """
    Read the record whose number is ``number``, or None when there is none.

    The returned record's number is checked against the one asked for, so a
    query that matched some other record is treated as no match. ``number``
    is added to ``fields`` when a field list is given without it.
    """
    if fields is not None and "number" not in fields:
        fields = [*fields, "number"]

    results = await client.query_table(table, number_filter(number), limit=1, fields=fields)
    if not results:
        logger.info(f"No {table} record with number {number} [SNMCP-NOTFOUND]")
        return None

    record = results[0]
    # number comparisons in the Table API are case-insensitive
    if str(record.get("number", "")).casefold() != number.casefold():
        logger.warning(
            f"Lookup of {table} number {number!r} returned {record.get('number')!r} [SNMCP-MISMATCH]"
        )
        return None
    return record


async def resolve_identifier(
    client: ServiceNowClient,
    table: str,
    identifier: str,
    *,
    fetch_number: bool = False,
) -> Optional[ResolvedIdentifier]:
    """
    Turn a sys_id or record number (e.g. "INC0010001") into a sys_id.

    A sys_id is used as-is without any API call, unless fetch_number is set,
    in which case the record is read to learn its number. Anything else is
    looked up by number. Returns None when no record has that number.

    The result may be stale by the time the caller uses it; ServiceNow
    offers no way to lock a record between the lookup and the write.
    """
    if is_sys_id(identifier):
        if not fetch_number:
            return ResolvedIdentifier(sys_id=identifier)
        record = await client.get_record(table, identifier, fields=LOOKUP_FIELDS)
        return ResolvedIdentifier(sys_id=record["sys_id"], number=record.get("number"))

    logger.info(f"Looking up {table} by number: {identifier} [SNMCP-LOOKUP]")
    record = await find_by_number(client, table, identifier, fields=LOOKUP_FIELDS)
    if record is None:
        return None
    return ResolvedIdentifier(sys_id=record["sys_id"], number=record.get("number"))
