"""
Human-readable labels for ServiceNow choice fields.

ServiceNow stores incident state, priority, urgency and impact as numeric
codes. AI callers tend to use the labels shown in the UI, so tool inputs
accept either form and are normalized to codes before any API call.
"""

from types import MappingProxyType

STATE = "state"
PRIORITY = "priority"
URGENCY = "urgency"

STATE_LABELS = MappingProxyType({
    "New": "1",
    "In Progress": "2",
    "On Hold": "3",
    "Resolved": "6",
    "Closed": "7",
    "Canceled": "8",
})

PRIORITY_LABELS = MappingProxyType({
    "Critical": "1",
    "High": "2",
    "Moderate": "3",
    "Low": "4",
    "Planning": "5",
})

# Impact uses the same scale as urgency
URGENCY_LABELS = MappingProxyType({
    "High": "1",
    "Medium": "2",
    "Low": "3",
})

_TABLES = MappingProxyType({
    STATE: STATE_LABELS,
    PRIORITY: PRIORITY_LABELS,
    URGENCY: URGENCY_LABELS,
})

# Incident fields that carry a coded value, and the label table each uses
FIELD_KINDS = MappingProxyType({
    "state": STATE,
    "priority": PRIORITY,
    "urgency": URGENCY,
    "impact": URGENCY,
})


def normalize(kind: str, value: str) -> str:
    """
    Convert a label to its code.

    Lookup is case-sensitive. Values that are not a known label (codes
    included) are returned unchanged.
    """
    return _TABLES[kind].get(value, value)


def accepted_values(kind: str) -> tuple[str, ...]:
    """All values accepted as input for a kind: codes first, then labels."""
    table = _TABLES[kind]
    return tuple(table.values()) + tuple(table.keys())
