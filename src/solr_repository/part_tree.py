"""
Query derivation from method names.

A derivable method name has the form::

    <subject>_by_<part>[_and_<part>...][_or_<part>...][_order_by_<field>_<asc|desc>...]

where ``subject`` is one of find, read, get, query, search, count, delete or
remove, and every part is a field name optionally followed by a keyword such
as ``greater_than`` or ``starting_with``. ``_and_`` binds tighter than ``_or_``.
"""

import re
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from .exceptions import QueryCreationError
from .query import Direction, Order, Sort

PREFIX = re.compile(r"^(find|read|get|query|search|count|delete|remove)_by_(.+)$")
ORDER_BY = "_order_by_"


class PartType(str, Enum):
    SIMPLE_PROPERTY = "simple_property"
    NEGATING_SIMPLE_PROPERTY = "negating_simple_property"
    STARTING_WITH = "starting_with"
    ENDING_WITH = "ending_with"
    CONTAINING = "containing"
    BETWEEN = "between"
    GREATER_THAN = "greater_than"
    GREATER_THAN_EQUAL = "greater_than_equal"
    LESS_THAN = "less_than"
    LESS_THAN_EQUAL = "less_than_equal"
    IN = "in"
    NOT_IN = "not_in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    TRUE = "true"
    FALSE = "false"
    NEAR = "near"
    WITHIN = "within"


ARGUMENT_COUNTS: Dict[PartType, int] = {
    PartType.BETWEEN: 2,
    PartType.NEAR: 2,
    PartType.WITHIN: 2,
    PartType.IS_NULL: 0,
    PartType.IS_NOT_NULL: 0,
    PartType.TRUE: 0,
    PartType.FALSE: 0,
}

KEYWORDS: Dict[str, PartType] = {
    "is": PartType.SIMPLE_PROPERTY,
    "equals": PartType.SIMPLE_PROPERTY,
    "is_not": PartType.NEGATING_SIMPLE_PROPERTY,
    "not": PartType.NEGATING_SIMPLE_PROPERTY,
    "like": PartType.STARTING_WITH,
    "starting_with": PartType.STARTING_WITH,
    "starts_with": PartType.STARTING_WITH,
    "ending_with": PartType.ENDING_WITH,
    "ends_with": PartType.ENDING_WITH,
    "containing": PartType.CONTAINING,
    "contains": PartType.CONTAINING,
    "between": PartType.BETWEEN,
    "greater_than": PartType.GREATER_THAN,
    "after": PartType.GREATER_THAN,
    "greater_than_equal": PartType.GREATER_THAN_EQUAL,
    "less_than": PartType.LESS_THAN,
    "before": PartType.LESS_THAN,
    "less_than_equal": PartType.LESS_THAN_EQUAL,
    "in": PartType.IN,
    "not_in": PartType.NOT_IN,
    "is_null": PartType.IS_NULL,
    "null": PartType.IS_NULL,
    "is_not_null": PartType.IS_NOT_NULL,
    "not_null": PartType.IS_NOT_NULL,
    "exists": PartType.IS_NOT_NULL,
    "true": PartType.TRUE,
    "is_true": PartType.TRUE,
    "false": PartType.FALSE,
    "is_false": PartType.FALSE,
    "near": PartType.NEAR,
    "within": PartType.WITHIN,
}

# Longest keywords first so "is_not_null" wins over "not_null" and "null".
_KEYWORDS_BY_LENGTH: List[Tuple[str, PartType]] = sorted(
    KEYWORDS.items(), key=lambda item: len(item[0]), reverse=True
)


class Part:
    """A single predicate of a derived query."""

    def __init__(self, source: str):
        self.source = source
        self.field, self.type = self._parse(source)

    @staticmethod
    def _parse(source: str) -> Tuple[str, PartType]:
        for keyword, part_type in _KEYWORDS_BY_LENGTH:
            suffix = "_" + keyword
            if source.endswith(suffix) and len(source) > len(suffix):
                return source[: -len(suffix)], part_type
        if source in KEYWORDS:
            raise QueryCreationError(f"Missing field name before '{source}'")
        return source, PartType.SIMPLE_PROPERTY

    @property
    def argument_count(self) -> int:
        return ARGUMENT_COUNTS.get(self.type, 1)

    def __repr__(self) -> str:
        return f"Part(field={self.field!r}, type={self.type.value})"


class PartTree:
    """Parsed representation of a derivable method name."""

    def __init__(self, method_name: str):
        match = PREFIX.match(method_name)
        if not match:
            raise QueryCreationError(
                f"Cannot derive a query from method name '{method_name}'"
            )
        self.method_name = method_name
        self.subject = match.group(1)

        predicate, _, order = match.group(2).partition(ORDER_BY)
        if not predicate:
            raise QueryCreationError(f"No criteria in method name '{method_name}'")

        self.or_parts: List[List[Part]] = []
        for or_source in predicate.split("_or_"):
            and_sources = or_source.split("_and_")
            if any(not source for source in and_sources):
                raise QueryCreationError(f"Empty criteria in method name '{method_name}'")
            self.or_parts.append([Part(source) for source in and_sources])

        self.sort: Optional[Sort] = self._parse_order(order) if order else None

    @classmethod
    def is_derivable(cls, method_name: str) -> bool:
        return PREFIX.match(method_name) is not None

    @staticmethod
    def _parse_order(source: str) -> Sort:
        orders: List[Order] = []
        field_tokens: List[str] = []
        for token in source.split("_"):
            if token in ("asc", "desc") and field_tokens:
                orders.append(Order("_".join(field_tokens), Direction(token)))
                field_tokens = []
            else:
                field_tokens.append(token)
        if field_tokens:
            orders.append(Order("_".join(field_tokens), Direction.ASC))
        return Sort(tuple(orders))

    @property
    def is_count(self) -> bool:
        return self.subject == "count"

    @property
    def is_delete(self) -> bool:
        return self.subject in ("delete", "remove")

    @property
    def parts(self) -> Iterator[Part]:
        for and_parts in self.or_parts:
            yield from and_parts

    @property
    def argument_count(self) -> int:
        return sum(part.argument_count for part in self.parts)
