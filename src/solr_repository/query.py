"""
In-memory model of a Solr search request.

Criteria form an immutable tree that can be combined with ``&``, ``|`` and
``~``. A Query wraps the root criteria together with filter queries, paging,
sorting and the request level options; FacetQuery and HighlightQuery add
facet and highlight options. Building any of these never contacts Solr.
"""

import copy
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, Iterator, List, Optional, Tuple, Union

from .geo import Distance, GeoLocation


class Operator(str, Enum):
    """Boolean operator applied between bare query terms."""

    AND = "AND"
    OR = "OR"
    NONE = "NONE"


class Direction(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class Field:
    """Name of an indexed field."""

    name: str

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Field name must not be empty")

    def __str__(self) -> str:
        return self.name


def field_name(field: Union[str, Field]) -> str:
    return field.name if isinstance(field, Field) else field


@dataclass(frozen=True)
class Order:
    field: str
    direction: Direction = Direction.ASC


@dataclass(frozen=True)
class Sort:
    """Ordered list of sort instructions."""

    orders: Tuple[Order, ...] = ()

    @classmethod
    def by(cls, *fields: Union[str, Field], direction: Direction = Direction.ASC) -> "Sort":
        return cls(tuple(Order(field_name(field), direction) for field in fields))

    def and_(self, other: Optional["Sort"]) -> "Sort":
        if not other:
            return self
        return Sort(self.orders + other.orders)

    def __iter__(self) -> Iterator[Order]:
        return iter(self.orders)

    def __bool__(self) -> bool:
        return bool(self.orders)


@dataclass(frozen=True)
class PageRequest:
    """Zero based page number plus page size."""

    page: int
    size: int
    sort: Optional[Sort] = None

    def __post_init__(self) -> None:
        if self.page < 0:
            raise ValueError("Page index must not be less than zero")
        if self.size < 1:
            raise ValueError("Page size must not be less than one")

    @property
    def offset(self) -> int:
        return self.page * self.size


class PredicateKey(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    EXPRESSION = "expression"
    BETWEEN = "between"
    FUZZY = "fuzzy"
    NEAR = "near"
    WITHIN = "within"


@dataclass(frozen=True)
class Predicate:
    key: PredicateKey
    value: Any


@dataclass(frozen=True)
class Range:
    lower: Any = None
    upper: Any = None
    include_lower: bool = True
    include_upper: bool = True


class Node:
    """Base of the criteria tree."""

    def __and__(self, other: "Node") -> "Conjunction":
        return Conjunction.combine(Operator.AND, self, other)

    def __or__(self, other: "Node") -> "Conjunction":
        return Conjunction.combine(Operator.OR, self, other)

    def __invert__(self) -> "Node":
        return Negation(self)


@dataclass(frozen=True)
class Criteria(Node):
    """Predicates on a single field. Every builder method returns a new instance."""

    field: str
    predicates: Tuple[Predicate, ...] = ()
    negated: bool = False
    boost_factor: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "field", field_name(self.field))

    @classmethod
    def where(cls, field: Union[str, Field]) -> "Criteria":
        return cls(field_name(field))

    def _with(self, key: PredicateKey, value: Any) -> "Criteria":
        return replace(self, predicates=self.predicates + (Predicate(key, value),))

    def is_(self, value: Any) -> "Criteria":
        return self._with(PredicateKey.EQUALS, value)

    def is_not(self, value: Any) -> "Criteria":
        return self.is_(value).not_()

    def in_(self, values: Iterable[Any]) -> "Criteria":
        values = [values] if isinstance(values, (str, bytes)) else list(values)
        if not values:
            raise ValueError(f"'in' on field '{self.field}' needs at least one value")
        criteria = self
        for value in values:
            criteria = criteria.is_(value)
        return criteria

    def contains(self, value: str) -> "Criteria":
        return self._with(PredicateKey.CONTAINS, value)

    def starts_with(self, value: str) -> "Criteria":
        return self._with(PredicateKey.STARTS_WITH, value)

    def ends_with(self, value: str) -> "Criteria":
        return self._with(PredicateKey.ENDS_WITH, value)

    def expression(self, value: str) -> "Criteria":
        return self._with(PredicateKey.EXPRESSION, value)

    def fuzzy(self, value: str, distance: Optional[float] = None) -> "Criteria":
        if distance is not None and not 0 <= distance <= 2:
            raise ValueError("Fuzzy distance must be between 0 and 2")
        return self._with(PredicateKey.FUZZY, (value, distance))

    def between(
        self,
        lower: Any,
        upper: Any,
        include_lower: bool = True,
        include_upper: bool = True,
    ) -> "Criteria":
        if lower is None and upper is None:
            raise ValueError("Range requires at least one of lower or upper value")
        return self._with(
            PredicateKey.BETWEEN, Range(lower, upper, include_lower, include_upper)
        )

    def greater_than(self, value: Any) -> "Criteria":
        return self._with(PredicateKey.BETWEEN, Range(value, None, False, True))

    def greater_than_equal(self, value: Any) -> "Criteria":
        return self._with(PredicateKey.BETWEEN, Range(value, None, True, True))

    def less_than(self, value: Any) -> "Criteria":
        return self._with(PredicateKey.BETWEEN, Range(None, value, True, False))

    def less_than_equal(self, value: Any) -> "Criteria":
        return self._with(PredicateKey.BETWEEN, Range(None, value, True, True))

    def is_not_null(self) -> "Criteria":
        return self._with(PredicateKey.BETWEEN, Range())

    def is_null(self) -> "Criteria":
        return self.is_not_null().not_()

    def near(self, location: GeoLocation, distance: Distance) -> "Criteria":
        return self._with(PredicateKey.NEAR, (location, distance))

    def within(self, location: GeoLocation, distance: Distance) -> "Criteria":
        return self._with(PredicateKey.WITHIN, (location, distance))

    def boost(self, factor: float) -> "Criteria":
        if factor < 0:
            raise ValueError("Boost must not be negative")
        return replace(self, boost_factor=factor)

    def not_(self) -> "Criteria":
        return replace(self, negated=True)

    def __invert__(self) -> "Criteria":
        return replace(self, negated=not self.negated)


@dataclass(frozen=True)
class SimpleStringCriteria(Node):
    """Raw predicate text passed to Solr as is."""

    query_string: str


@dataclass(frozen=True)
class Function:
    """A Solr function such as ``termfreq(name,'term')``."""

    name: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class FunctionCriteria(Node):
    function: Function


@dataclass(frozen=True)
class Negation(Node):
    child: Node


@dataclass(frozen=True)
class Conjunction(Node):
    operator: Operator
    children: Tuple[Node, ...] = ()

    @classmethod
    def combine(cls, operator: Operator, left: Node, right: Node) -> "Conjunction":
        children: List[Node] = []
        for node in (left, right):
            if isinstance(node, Conjunction) and node.operator == operator:
                children.extend(node.children)
            else:
                children.append(node)
        return cls(operator, tuple(children))


@dataclass(frozen=True)
class Join:
    """Cross collection join applied to the main query."""

    from_field: str
    to_field: str
    from_index: Optional[str] = None


class Query:
    """A single search request. Mutators return ``self`` for chaining."""

    def __init__(self, criteria: Optional[Node] = None):
        self.criteria: Optional[Node] = criteria
        self.filter_queries: List["Query"] = []
        self.page_request: Optional[PageRequest] = None
        self.sort: Optional[Sort] = None
        self.default_operator: Optional[Operator] = None
        self.time_allowed: Optional[int] = None
        self.def_type: Optional[str] = None
        self.request_handler: Optional[str] = None
        self.projection_on_fields: List[str] = []
        self.join: Optional[Join] = None

    def add_criteria(self, criteria: Node) -> "Query":
        if self.criteria is None:
            self.criteria = criteria
        else:
            self.criteria = self.criteria & criteria
        return self

    def add_filter_query(self, filter_query: Union["Query", Node]) -> "Query":
        if isinstance(filter_query, Node):
            filter_query = Query(filter_query)
        self.filter_queries.append(filter_query)
        return self

    def set_page_request(self, page_request: Optional[PageRequest]) -> "Query":
        self.page_request = page_request
        if page_request is not None:
            self.add_sort(page_request.sort)
        return self

    def add_sort(self, sort: Optional[Sort]) -> "Query":
        if not sort:
            return self
        self.sort = sort if self.sort is None else self.sort.and_(sort)
        return self

    def set_default_operator(self, operator: Optional[Operator]) -> "Query":
        if operator is not None and operator != Operator.NONE:
            self.default_operator = operator
        return self

    def set_time_allowed(self, time_allowed: Optional[int]) -> "Query":
        if time_allowed is None or time_allowed <= 0:
            self.time_allowed = None
        else:
            self.time_allowed = time_allowed
        return self

    def set_def_type(self, def_type: Optional[str]) -> "Query":
        if def_type and def_type.strip():
            self.def_type = def_type
        return self

    def set_request_handler(self, request_handler: Optional[str]) -> "Query":
        if request_handler and request_handler.strip():
            self.request_handler = request_handler
        return self

    def add_projection_on_field(self, field: Union[str, Field]) -> "Query":
        if not field:
            raise ValueError("Projection field name must not be empty")
        self.projection_on_fields.append(field_name(field))
        return self

    def set_join(self, join: Optional[Join]) -> "Query":
        self.join = join
        return self

    @property
    def offset(self) -> Optional[int]:
        return self.page_request.offset if self.page_request else None

    @property
    def rows(self) -> Optional[int]:
        return self.page_request.size if self.page_request else None

    def _copy_into(self, target: "Query") -> "Query":
        target.criteria = self.criteria
        target.filter_queries = list(self.filter_queries)
        target.page_request = self.page_request
        target.sort = self.sort
        target.default_operator = self.default_operator
        target.time_allowed = self.time_allowed
        target.def_type = self.def_type
        target.request_handler = self.request_handler
        target.projection_on_fields = list(self.projection_on_fields)
        target.join = self.join
        return target

    def copy(self) -> "Query":
        duplicate = copy.copy(self)
        return self._copy_into(duplicate)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(criteria={self.criteria!r}, "
            f"filters={len(self.filter_queries)}, page={self.page_request!r})"
        )


class FacetOptions:
    """Facet fields, facet queries and pivots requested alongside a query."""

    DEFAULT_FACET_LIMIT = 10
    DEFAULT_FACET_MIN_COUNT = 1

    def __init__(self, *field_names: str):
        self.facet_on_fields: List[str] = list(field_names)
        self.facet_queries: List[Query] = []
        self.facet_on_pivots: List[str] = []
        self.facet_limit: int = self.DEFAULT_FACET_LIMIT
        self.facet_min_count: int = self.DEFAULT_FACET_MIN_COUNT
        self.facet_prefix: Optional[str] = None

    def add_facet_on_field(self, field_name: str) -> "FacetOptions":
        self.facet_on_fields.append(field_name)
        return self

    def add_facet_on_fieldnames(self, field_names: Iterable[str]) -> "FacetOptions":
        for field_name in field_names:
            self.add_facet_on_field(field_name)
        return self

    def add_facet_query(self, facet_query: Query) -> "FacetOptions":
        self.facet_queries.append(facet_query)
        return self

    def add_facet_on_pivot(self, pivot: Union[str, Iterable[str]]) -> "FacetOptions":
        if not isinstance(pivot, str):
            pivot = ",".join(pivot)
        if "," not in pivot:
            raise ValueError("Pivot needs at least two fields")
        self.facet_on_pivots.append(pivot)
        return self

    def set_facet_limit(self, limit: int) -> "FacetOptions":
        if limit < 1:
            raise ValueError("Facet limit must be greater than zero")
        self.facet_limit = limit
        return self

    def set_facet_min_count(self, min_count: int) -> "FacetOptions":
        if min_count < 0:
            raise ValueError("Facet min count must not be negative")
        self.facet_min_count = min_count
        return self

    def set_facet_prefix(self, prefix: Optional[str]) -> "FacetOptions":
        self.facet_prefix = prefix
        return self

    def has_facets(self) -> bool:
        return bool(self.facet_on_fields or self.facet_queries or self.facet_on_pivots)


class HighlightParams:
    """Solr highlight parameter names."""

    HIGHLIGHT = "hl"
    FIELDS = "hl.fl"
    FRAGSIZE = "hl.fragsize"
    SNIPPETS = "hl.snippets"
    QUERY = "hl.q"
    FORMATTER = "hl.formatter"
    SIMPLE_PRE = "hl.simple.pre"
    SIMPLE_POST = "hl.simple.post"
    TAG_PRE = "hl.tag.pre"
    TAG_POST = "hl.tag.post"
    SIMPLE = "simple"


@dataclass(frozen=True)
class HighlightParameter:
    name: str
    value: Any


class HighlightOptions:
    """Highlighting settings. No fields means every field is highlighted."""

    ALL_FIELDS = "*"

    def __init__(self) -> None:
        self.fields: List[str] = []
        self.fragsize: Optional[int] = None
        self.nr_snipplets: Optional[int] = None
        self.query: Optional[Query] = None
        self.formatter: Optional[str] = None
        self.simple_prefix: Optional[str] = None
        self.simple_postfix: Optional[str] = None
        self.highlight_parameters: List[HighlightParameter] = []

    def add_field(self, field_name: str) -> "HighlightOptions":
        self.fields.append(field_name)
        return self

    def add_fields(self, field_names: Iterable[str]) -> "HighlightOptions":
        for field_name in field_names:
            self.add_field(field_name)
        return self

    def has_fields(self) -> bool:
        return bool(self.fields)

    def set_fragsize(self, fragsize: int) -> "HighlightOptions":
        self.fragsize = fragsize
        return self

    def set_nr_snipplets(self, nr_snipplets: int) -> "HighlightOptions":
        self.nr_snipplets = nr_snipplets
        return self

    def set_query(self, query: Optional[Query]) -> "HighlightOptions":
        self.query = query
        return self

    def set_formatter(self, formatter: Optional[str]) -> "HighlightOptions":
        self.formatter = formatter
        return self

    def set_simple_prefix(self, prefix: str) -> "HighlightOptions":
        self.simple_prefix = prefix
        return self

    def set_simple_postfix(self, postfix: str) -> "HighlightOptions":
        self.simple_postfix = postfix
        return self

    def add_highlight_parameter(
        self, parameter: Union[HighlightParameter, str], value: Any = None
    ) -> "HighlightOptions":
        if isinstance(parameter, str):
            parameter = HighlightParameter(parameter, value)
        self.highlight_parameters.append(parameter)
        return self

    def get_highlight_parameter_value(self, name: str) -> Any:
        for parameter in self.highlight_parameters:
            if parameter.name == name:
                return parameter.value
        return None


class FacetQuery(Query):
    def __init__(
        self,
        criteria: Optional[Node] = None,
        facet_options: Optional[FacetOptions] = None,
    ):
        super().__init__(criteria)
        self.facet_options = facet_options

    def set_facet_options(self, facet_options: FacetOptions) -> "FacetQuery":
        self.facet_options = facet_options
        return self

    @classmethod
    def from_query(cls, source: Query) -> "FacetQuery":
        return source._copy_into(cls())


class HighlightQuery(Query):
    def __init__(
        self,
        criteria: Optional[Node] = None,
        highlight_options: Optional[HighlightOptions] = None,
    ):
        super().__init__(criteria)
        self.highlight_options = highlight_options

    def set_highlight_options(
        self, highlight_options: HighlightOptions
    ) -> "HighlightQuery":
        self.highlight_options = highlight_options
        return self

    @classmethod
    def from_query(cls, source: Query) -> "HighlightQuery":
        return source._copy_into(cls())
