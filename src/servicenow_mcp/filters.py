"""
Filter expressions and their ServiceNow encoded-query form.

A filter maps field names to either a plain value (equality) or an
operator/value pair:

    {"state": "1", "priority": {"operator": "<=", "value": "3"}}

which serializes to ``state=1^priority<=3``. Fragments are always ANDed;
the encoded-query OR (``^OR``) and grouping (``^NQ``) forms are not
supported.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

Scalar = Union[str, int, float, bool]

QUERY_SEPARATOR = "^"


class Operator(str, Enum):
    """Encoded-query operators. The value is the text placed between field and value."""

    EQ = "="
    NEQ = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "LIKE"
    STARTSWITH = "STARTSWITH"
    ENDSWITH = "ENDSWITH"
    CONTAINS = "CONTAINS"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_EMPTY = "ISEMPTY"
    IS_NOT_EMPTY = "ISNOTEMPTY"

    @property
    def symbol(self) -> str:
        return self.value


def _check_scalar(value: Any) -> None:
    if not isinstance(value, (str, int, float, bool)):
        raise TypeError(
            f"Filter values must be a string, number or boolean, got {type(value).__name__}"
        )


@dataclass(frozen=True)
class FilterLiteral:
    """Equality against a single value."""

    value: Scalar

    def __post_init__(self):
        _check_scalar(self.value)


@dataclass(frozen=True)
class FilterOperator:
    """Comparison using an explicit operator."""

    operator: Operator
    value: Scalar

    def __post_init__(self):
        if not isinstance(self.operator, Operator):
            object.__setattr__(self, "operator", Operator(self.operator))
        _check_scalar(self.value)


FilterValue = Union[FilterLiteral, FilterOperator]


class FilterExpression(Mapping):
    """Immutable field -> FilterValue mapping. Iteration order is insertion order."""

    def __init__(self, entries: Mapping[str, FilterValue] | None = None):
        checked = {}
        for field, value in (entries or {}).items():
            if not isinstance(field, str) or not field:
                raise ValueError("Filter field names must be non-empty strings")
            if not isinstance(value, (FilterLiteral, FilterOperator)):
                raise TypeError(f"Unsupported filter value for '{field}': {value!r}")
            checked[field] = value
        self._entries = MappingProxyType(checked)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "FilterExpression":
        """
        Build an expression from tool-payload shaped data.

        Each value may be a scalar, a FilterValue, or a mapping with
        ``operator`` and ``value`` keys.
        """
        entries = {}
        for field, value in (raw or {}).items():
            if isinstance(value, (FilterLiteral, FilterOperator)):
                entries[field] = value
            elif isinstance(value, Mapping):
                entries[field] = FilterOperator(value["operator"], value["value"])
            else:
                entries[field] = FilterLiteral(value)
        return cls(entries)

    def __getitem__(self, field: str) -> FilterValue:
        return self._entries[field]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"FilterExpression({dict(self._entries)!r})"


def format_value(value: Scalar) -> str:
    """
    Render a scalar the way the Table API expects it in an encoded query.

    A ``^`` inside the value is doubled, the encoded-query escape, so a value
    can never start a condition of its own.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).replace(QUERY_SEPARATOR, QUERY_SEPARATOR * 2)


def serialize(expression: Mapping[str, FilterValue]) -> str:
    """
    Serialize a filter expression to an encoded query string.

    Returns an empty string for an empty expression; callers must then omit
    the ``sysparm_query`` parameter rather than send it empty.
    """
    fragments = []
    for field, value in expression.items():
        if isinstance(value, FilterOperator):
            fragments.append(f"{field}{value.operator.symbol}{format_value(value.value)}")
        else:
            fragments.append(f"{field}={format_value(value.value)}")
    return QUERY_SEPARATOR.join(fragments)
