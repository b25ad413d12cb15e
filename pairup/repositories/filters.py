"""
OData filter builders.

Produce filter strings in the form Azure Table Storage expects. Filters are
treated as opaque strings once built; they are only ever concatenated.
"""

from datetime import datetime, timezone
from typing import Optional


class QueryComparisons:
    """Comparison operators."""
    EQUAL = "eq"
    NOT_EQUAL = "ne"
    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "ge"
    LESS_THAN = "lt"
    LESS_THAN_OR_EQUAL = "le"


class TableOperators:
    """Logical operators."""
    AND = "and"
    OR = "or"
    NOT = "not"


def is_blank(value: Optional[str]) -> bool:
    """True for None, empty or whitespace-only strings."""
    return value is None or not value.strip()


def generate_filter_condition(property_name: str, operation: str, value: str) -> str:
    """
    Build a string comparison, e.g. ``RowKey eq 'abc'``.

    Single quotes in the value are doubled.
    """
    escaped = value.replace("'", "''")
    return f"{property_name} {operation} '{escaped}'"


def generate_filter_condition_for_bool(property_name: str, operation: str, value: bool) -> str:
    return f"{property_name} {operation} {'true' if value else 'false'}"


def generate_filter_condition_for_date(property_name: str, operation: str, value: datetime) -> str:
    """
    Build a datetime comparison, e.g. ``Timestamp le datetime'2024-01-01T00:00:00.0000000Z'``.

    Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    formatted = value.strftime("%Y-%m-%dT%H:%M:%S.%f") + "0Z"
    return f"{property_name} {operation} datetime'{formatted}'"


def combine_filters(filter_a: str, operator: str, filter_b: str) -> str:
    """Join two filters with a logical operator, parenthesizing each side."""
    return f"({filter_a}) {operator} ({filter_b})"


def combine_filters_with_and(filter_a: Optional[str], filter_b: Optional[str]) -> str:
    """
    AND two filters, ignoring blank ones.

    Both blank gives a blank filter, which matches everything.
    """
    if is_blank(filter_a) and is_blank(filter_b):
        return ""
    if is_blank(filter_a):
        return filter_b
    if is_blank(filter_b):
        return filter_a

    return combine_filters(filter_a, TableOperators.AND, filter_b)
