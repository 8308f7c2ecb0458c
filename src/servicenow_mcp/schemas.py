"""
Input validation for the ServiceNow MCP tools.

Each tool has a pydantic model describing its arguments. Validation runs in
two steps: pydantic checks types, required fields, enumerated values and
lengths, then label values (e.g. "Critical") are normalized to the codes
ServiceNow stores (e.g. "1"). Every problem found is reported at once via
ValidationFailure, never just the first one.
"""

from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from .errors import ValidationFailure
from .filters import FilterExpression, FilterLiteral, FilterOperator, FilterValue, Operator
from .vocabulary import FIELD_KINDS, PRIORITY, STATE, URGENCY, accepted_values, normalize

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000

InstanceName = Literal["primary", "dev", "test", "prod"]


def _required_text(message: str) -> AfterValidator:
    def check(value: str) -> str:
        if not value:
            raise PydanticCustomError("string_too_short", message)
        return value
    return AfterValidator(check)


def _coded(kind: str) -> AfterValidator:
    def to_code(value: str) -> str:
        return normalize(kind, value)
    return AfterValidator(to_code)


Identifier = Annotated[StrictStr, _required_text("Identifier cannot be empty")]
Limit = Annotated[StrictInt, Field(ge=1, le=MAX_LIMIT)]
FieldName = Annotated[StrictStr, Field(min_length=1)]

StateValue = Annotated[Literal[accepted_values(STATE)], _coded(STATE)]
PriorityValue = Annotated[Literal[accepted_values(PRIORITY)], _coded(PRIORITY)]
UrgencyValue = Annotated[Literal[accepted_values(URGENCY)], _coded(URGENCY)]


# ============================================================================
# Query filters
# ============================================================================


def _scalar(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)):
        return value
    raise PydanticCustomError(
        "filter_value_type", "Filter values must be a string, number or boolean"
    )


class QueryCondition(BaseModel):
    """A filter entry given as {"operator": ..., "value": ...}."""

    operator: Operator
    value: Annotated[Any, AfterValidator(_scalar)]

    def to_filter_value(self) -> FilterValue:
        return FilterOperator(self.operator, self.value)


class EqualsCondition(QueryCondition):
    """A filter entry given as a bare value."""

    def to_filter_value(self) -> FilterValue:
        return FilterLiteral(self.value)


def _as_condition(value: Any) -> Any:
    if isinstance(value, (QueryCondition, Mapping)):
        return value
    return EqualsCondition(operator=Operator.EQ, value=_scalar(value))


FilterEntry = Annotated[QueryCondition, BeforeValidator(_as_condition)]
Filter = dict[FieldName, FilterEntry]


def _normalize_condition(field: str, condition: QueryCondition) -> QueryCondition:
    kind = FIELD_KINDS.get(field)
    if kind is None or not isinstance(condition.value, str):
        return condition
    if condition.operator in (Operator.IN, Operator.NOT_IN):
        value = ",".join(normalize(kind, item.strip()) for item in condition.value.split(","))
    else:
        value = normalize(kind, condition.value)
    return condition.model_copy(update={"value": value})


class FilteredQuery(BaseModel):
    filter: Optional[Filter] = None
    limit: Limit = DEFAULT_LIMIT
    instance: Optional[InstanceName] = None

    def filter_expression(self) -> FilterExpression:
        return FilterExpression(
            {field: condition.to_filter_value() for field, condition in (self.filter or {}).items()}
        )


# ============================================================================
# Incident tools
# ============================================================================


class IncidentQueryInput(FilteredQuery):
    fields: Optional[list[StrictStr]] = None

    @model_validator(mode="after")
    def normalize_filter(self) -> "IncidentQueryInput":
        if self.filter:
            self.filter = {
                field: _normalize_condition(field, condition)
                for field, condition in self.filter.items()
            }
        return self


class IncidentGetInput(BaseModel):
    identifier: Identifier
    fields: Optional[list[StrictStr]] = None
    instance: Optional[InstanceName] = None


class RecordInput(BaseModel):
    """
    Base for tools that write a record.

    Fields not declared on the model are kept as-is and sent to ServiceNow
    unchanged, so callers can set any column of the table.
    """

    model_config = ConfigDict(extra="allow")

    excluded_fields: ClassVar[frozenset[str]] = frozenset({"instance"})
    # When set, declared fields given as "" are left out instead of sent
    skip_empty_fields: ClassVar[bool] = False

    def _sendable(self, value: Any) -> bool:
        if value is None:
            return False
        return not (self.skip_empty_fields and value == "")

    def record_data(self) -> dict[str, Any]:
        data = {
            name: getattr(self, name)
            for name in type(self).model_fields
            if name not in self.excluded_fields and self._sendable(getattr(self, name))
        }
        data.update(self.model_extra or {})
        return data


class IncidentCreateInput(RecordInput):
    skip_empty_fields: ClassVar[bool] = True

    short_description: Annotated[
        StrictStr, _required_text("Short description is required and cannot be empty")
    ]
    description: Optional[StrictStr] = None
    priority: Optional[PriorityValue] = None
    urgency: Optional[UrgencyValue] = None
    impact: Optional[UrgencyValue] = None
    category: Optional[StrictStr] = None
    subcategory: Optional[StrictStr] = None
    assignment_group: Optional[StrictStr] = None
    assigned_to: Optional[StrictStr] = None
    caller_id: Optional[StrictStr] = None
    instance: Optional[InstanceName] = None


class IncidentUpdateInput(RecordInput):
    excluded_fields: ClassVar[frozenset[str]] = frozenset({"identifier", "instance"})

    identifier: Identifier
    state: Optional[StateValue] = None
    priority: Optional[PriorityValue] = None
    urgency: Optional[UrgencyValue] = None
    impact: Optional[UrgencyValue] = None
    short_description: Optional[StrictStr] = None
    description: Optional[StrictStr] = None
    work_notes: Optional[StrictStr] = None
    comments: Optional[StrictStr] = None
    assignment_group: Optional[StrictStr] = None
    assigned_to: Optional[StrictStr] = None
    close_code: Optional[StrictStr] = None
    close_notes: Optional[StrictStr] = None
    category: Optional[StrictStr] = None
    subcategory: Optional[StrictStr] = None
    instance: Optional[InstanceName] = None


class IncidentDeleteInput(BaseModel):
    identifier: Identifier
    confirm: StrictBool
    instance: Optional[InstanceName] = None

    @field_validator("confirm")
    @classmethod
    def require_confirmation(cls, value: bool) -> bool:
        if value is not True:
            raise PydanticCustomError(
                "confirmation_required",
                "Deletion requires explicit confirmation. Set confirm to true.",
            )
        return value


# ============================================================================
# Generic tools
# ============================================================================


class TableQueryInput(FilteredQuery):
    table: Annotated[StrictStr, _required_text("Table name cannot be empty")]


class ConnectionCheckInput(BaseModel):
    instance: Optional[InstanceName] = None


SCHEMAS: dict[str, type[BaseModel]] = {
    "incident_query": IncidentQueryInput,
    "incident_get": IncidentGetInput,
    "incident_create": IncidentCreateInput,
    "incident_update": IncidentUpdateInput,
    "incident_delete": IncidentDeleteInput,
    "servicenow_query": TableQueryInput,
    "servicenow_test_connection": ConnectionCheckInput,
}


def _issue_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)


def validate(operation: str, payload: Any) -> BaseModel:
    """
    Validate a raw tool payload against the operation's schema.

    Returns the normalized model, with defaults applied. Raises
    ValidationFailure listing every violation found.
    """
    schema = SCHEMAS[operation]
    try:
        return schema.model_validate({} if payload is None else payload)
    except ValidationError as exc:
        raise ValidationFailure(
            [(_issue_path(error["loc"]), error["msg"]) for error in exc.errors()]
        ) from None
