"""Property model: comparisons, condition matching and placeholder substitution."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from metagraph.errors import InvalidParameterError
from metagraph.models.element import Element
from metagraph.models.options import (
    ComparisonOperator,
    MatchCriteria,
    PropertyCondition,
    SearchConditions,
    SequencingOrder,
)

# Built-in header fields that can be used in conditions like properties
HEADER_FIELDS = (
    "guid",
    "type_name",
    "status",
    "anchor_guid",
    "created_by",
    "created_at",
    "updated_by",
    "updated_at",
    "version",
)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")


def get_element_value(element: Element, field: str) -> Any:
    """Get a field value from an element (header fields, then properties)."""
    if field in HEADER_FIELDS:
        value = getattr(element, field)
        if field == "status":
            return value.value
        return value
    return element.properties.get(field)


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a caller-supplied regular expression, case-insensitively."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise InvalidParameterError(
            f"Invalid search expression {pattern!r}: {e}", parameter_name="search_string"
        ) from e


def compare_values(value: Any, operator: ComparisonOperator, target: Any) -> bool:
    """Compare a stored value against a condition value."""
    # Handle null checks first
    if operator == ComparisonOperator.IS_NULL:
        return value is None
    if operator == ComparisonOperator.NOT_NULL:
        return value is not None

    # Handle missing values
    if value is None:
        return False

    if operator == ComparisonOperator.EQ:
        return value == target
    elif operator == ComparisonOperator.NEQ:
        return value != target
    elif operator == ComparisonOperator.LIKE:
        if isinstance(target, re.Pattern):
            pattern = target
        else:
            pattern = compile_pattern(str(target))
        if isinstance(value, list):
            return any(pattern.search(str(v)) for v in value)
        return pattern.search(str(value)) is not None

    # Ordering operations
    elif operator in (
        ComparisonOperator.GT,
        ComparisonOperator.GTE,
        ComparisonOperator.LT,
        ComparisonOperator.LTE,
    ):
        try:
            if operator == ComparisonOperator.GT:
                return value > target
            if operator == ComparisonOperator.GTE:
                return value >= target
            if operator == ComparisonOperator.LT:
                return value < target
            return value <= target
        except TypeError:
            return False

    # Set operations
    elif operator == ComparisonOperator.IN:
        if isinstance(target, (list, tuple, set)):
            return value in target
        return value == target

    return False


def matches_condition(element: Element, condition: PropertyCondition) -> bool:
    value = get_element_value(element, condition.property_name)
    return compare_values(value, condition.operator, condition.value)


def matches_conditions(element: Element, search: SearchConditions) -> bool:
    """Evaluate a set of conditions against a single element."""
    if not search.conditions:
        return True

    results = (matches_condition(element, c) for c in search.conditions)
    if search.match_criteria == MatchCriteria.ALL:
        return all(results)
    elif search.match_criteria == MatchCriteria.ANY:
        return any(results)
    else:  # NONE
        return not any(results)


def precompile_conditions(search: SearchConditions) -> SearchConditions:
    """Compile LIKE patterns once so they are not recompiled per element."""
    compiled = []
    for condition in search.conditions:
        if condition.operator == ComparisonOperator.LIKE and isinstance(condition.value, str):
            condition = condition.model_copy(update={"value": compile_pattern(condition.value)})
        compiled.append(condition)
    return search.model_copy(update={"conditions": compiled})


def merge_properties(
    current: dict[str, Any], update: dict[str, Any] | None, merge: bool
) -> dict[str, Any]:
    """Combine a stored property bag with an update.

    In merge mode only named properties change and a ``None`` value removes
    the property. In replace mode the update becomes the whole bag.
    """
    if not merge:
        return {k: v for k, v in (update or {}).items() if v is not None}
    merged = dict(current)
    for name, value in (update or {}).items():
        if value is None:
            merged.pop(name, None)
        else:
            merged[name] = value
    return merged


def find_placeholders(value: Any) -> set[str]:
    """Return every ``{{token}}`` name used inside a value."""
    if isinstance(value, str):
        return set(PLACEHOLDER_PATTERN.findall(value))
    if isinstance(value, list):
        tokens: set[str] = set()
        for item in value:
            tokens |= find_placeholders(item)
        return tokens
    if isinstance(value, dict):
        tokens = set()
        for item in value.values():
            tokens |= find_placeholders(item)
        return tokens
    return set()


def substitute_placeholders(
    value: Any,
    placeholders: dict[str, str],
    allow_unresolved: bool = False,
) -> Any:
    """Replace ``{{token}}`` markers in string values, recursing into lists and maps.

    Raises InvalidParameterError naming the unresolved tokens unless
    ``allow_unresolved`` is set, in which case they are left in place.
    """
    if not allow_unresolved:
        missing = find_placeholders(value) - set(placeholders)
        if missing:
            raise InvalidParameterError(
                f"Unresolved placeholders: {', '.join(sorted(missing))}",
                parameter_name="placeholder_properties",
            )

    def replace(match: re.Match[str]) -> str:
        token = match.group(1)
        if token in placeholders:
            return str(placeholders[token])
        return match.group(0)

    if isinstance(value, str):
        return PLACEHOLDER_PATTERN.sub(replace, value)
    if isinstance(value, list):
        return [substitute_placeholders(v, placeholders, True) for v in value]
    if isinstance(value, dict):
        return {k: substitute_placeholders(v, placeholders, True) for k, v in value.items()}
    return value


def is_effective(
    effective_from: datetime | None,
    effective_to: datetime | None,
    effective_time: datetime | None,
) -> bool:
    """Check an instance's effectivity window against a point in time."""
    if effective_time is None:
        return True
    if effective_from is not None and effective_time < effective_from:
        return False
    if effective_to is not None and effective_time >= effective_to:
        return False
    return True


def sort_elements(
    elements: list[Element],
    order: SequencingOrder,
    sequencing_property: str | None = None,
) -> list[Element]:
    """Order elements by a sequencing order."""
    if order == SequencingOrder.ANY:
        return elements
    if order == SequencingOrder.GUID:
        return sorted(elements, key=lambda e: e.guid)
    if order == SequencingOrder.CREATION_DATE_RECENT:
        return sorted(elements, key=lambda e: e.created_at, reverse=True)
    if order == SequencingOrder.CREATION_DATE_OLDEST:
        return sorted(elements, key=lambda e: e.created_at)
    if order == SequencingOrder.LAST_UPDATE_RECENT:
        return sorted(elements, key=lambda e: e.updated_at, reverse=True)
    if order == SequencingOrder.LAST_UPDATE_OLDEST:
        return sorted(elements, key=lambda e: e.updated_at)

    if not sequencing_property:
        raise InvalidParameterError(
            f"Sequencing order {order.value} needs a sequencing property",
            parameter_name="sequencing_property",
        )

    # Elements without the property sort last in either direction
    present = [e for e in elements if get_element_value(e, sequencing_property) is not None]
    absent = [e for e in elements if get_element_value(e, sequencing_property) is None]
    try:
        present.sort(
            key=lambda e: get_element_value(e, sequencing_property),
            reverse=order == SequencingOrder.PROPERTY_DESCENDING,
        )
    except TypeError:
        present.sort(
            key=lambda e: str(get_element_value(e, sequencing_property)),
            reverse=order == SequencingOrder.PROPERTY_DESCENDING,
        )
    return present + absent
