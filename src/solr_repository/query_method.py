"""
Query method metadata and the decorators that declare it.

Repository methods are declared with plain Python stubs. The decorators below
attach Solr specific options to the function; QueryMethod.from_function reads
them, together with the signature and return annotation, exactly once when the
repository is created.

Example::

    class ProductRepository(SolrRepository):
        entity_type = Product

        @query("popularity:?0", filters=["inStock:true"])
        @facet(fields=["name"], prefix="?1")
        def find_by_popularity_faceted(self, popularity, prefix, page) -> FacetPage:
            ...
"""

import collections.abc
import inspect
import typing
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, validator

from .query import Operator
from .results import Page

QUERY_ATTRIBUTE = "__solr_query__"
FACET_ATTRIBUTE = "__solr_facet__"
HIGHLIGHT_ATTRIBUTE = "__solr_highlight__"
BOOST_ATTRIBUTE = "__solr_boost__"

_COLLECTION_TYPES = (
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Iterable,
    collections.abc.Collection,
    collections.abc.Sequence,
    collections.abc.Set,
)


class ResultShape(str, Enum):
    """Shape of the value a query method returns."""

    SINGLE = "single"
    COLLECTION = "collection"
    PAGE = "page"
    NUMBER = "number"


class FacetDefinition(BaseModel):
    """Facet directive of a query method."""

    fields: List[str] = []
    queries: List[str] = []
    pivots: List[str] = []
    limit: int = 10
    min_count: int = 1
    prefix: Optional[str] = None

    @validator("limit")
    def validate_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Facet limit must be greater than zero")
        return v

    @validator("min_count")
    def validate_min_count(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Facet min count must not be negative")
        return v


class HighlightDefinition(BaseModel):
    """Highlight directive of a query method. No fields means all fields."""

    fields: List[str] = []
    fragsize: Optional[int] = None
    snipplets: Optional[int] = None
    query: Optional[str] = None
    formatter: Optional[str] = None
    prefix: Optional[str] = None
    postfix: Optional[str] = None


class QueryMethod(BaseModel):
    """Everything known about one repository query method."""

    name: str
    entity_type: Any = None
    result_shape: ResultShape = ResultShape.SINGLE
    parameter_names: List[str] = []
    parameter_defaults: Dict[str, Any] = {}
    query: Optional[str] = None
    named_query_name: Optional[str] = None
    filter_queries: List[str] = []
    default_operator: Optional[Operator] = None
    time_allowed: Optional[int] = None
    def_type: Optional[str] = None
    request_handler: Optional[str] = None
    projection_fields: List[str] = []
    facet: Optional[FacetDefinition] = None
    highlight: Optional[HighlightDefinition] = None
    boosts: Dict[str, float] = {}
    delete: bool = False
    count: bool = False

    @property
    def entity_name(self) -> str:
        if self.entity_type is None:
            return "Document"
        return getattr(self.entity_type, "__name__", str(self.entity_type))

    def get_named_query_name(self) -> str:
        return self.named_query_name or f"{self.entity_name}.{self.name}"

    @property
    def has_annotated_query(self) -> bool:
        return bool(self.query and self.query.strip())

    @property
    def has_filter_query(self) -> bool:
        return bool(self.filter_queries)

    @property
    def has_projection_fields(self) -> bool:
        return bool(self.projection_fields)

    @property
    def is_facet_query(self) -> bool:
        return self.facet is not None

    @property
    def is_highlight_query(self) -> bool:
        return self.highlight is not None

    @property
    def is_page_query(self) -> bool:
        return self.result_shape == ResultShape.PAGE

    @property
    def is_collection_query(self) -> bool:
        return self.result_shape == ResultShape.COLLECTION

    @property
    def returns_number(self) -> bool:
        return self.result_shape == ResultShape.NUMBER

    @property
    def is_delete_query(self) -> bool:
        return self.delete

    @property
    def is_count_query(self) -> bool:
        return self.count

    @classmethod
    def from_function(cls, fn: Callable, entity_type: Any = None) -> "QueryMethod":
        """Build the metadata of a repository method from its declaration."""
        options: Dict[str, Any] = dict(getattr(fn, QUERY_ATTRIBUTE, {}))
        facet_options = getattr(fn, FACET_ATTRIBUTE, None)
        highlight_options = getattr(fn, HIGHLIGHT_ATTRIBUTE, None)

        returns = options.pop("returns", None)
        result_shape = ResultShape(returns) if returns else result_shape_of(fn)

        return cls(
            name=fn.__name__,
            entity_type=entity_type,
            result_shape=result_shape,
            parameter_names=parameter_names_of(fn),
            parameter_defaults=parameter_defaults_of(fn),
            facet=FacetDefinition(**facet_options) if facet_options is not None else None,
            highlight=(
                HighlightDefinition(**highlight_options)
                if highlight_options is not None
                else None
            ),
            boosts=dict(getattr(fn, BOOST_ATTRIBUTE, {})),
            **options,
        )


def parameter_names_of(fn: Callable) -> List[str]:
    """Names of the declared parameters of a method, without ``self``."""
    names = []
    for index, parameter in enumerate(inspect.signature(fn).parameters.values()):
        if index == 0 and parameter.name in ("self", "cls"):
            continue
        if parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD):
            continue
        names.append(parameter.name)
    return names


def parameter_defaults_of(fn: Callable) -> Dict[str, Any]:
    """Default values declared in a method signature, keyed by parameter name."""
    names = set(parameter_names_of(fn))
    return {
        name: parameter.default
        for name, parameter in inspect.signature(fn).parameters.items()
        if name in names and parameter.default is not parameter.empty
    }


def result_shape_of(fn: Callable) -> ResultShape:
    """Derive the result shape from a method's return annotation."""
    try:
        return_type = typing.get_type_hints(fn).get("return")
    except Exception:
        return_type = getattr(fn, "__annotations__", {}).get("return")

    if return_type is None:
        return ResultShape.SINGLE

    origin = typing.get_origin(return_type) or return_type
    if isinstance(origin, type):
        if issubclass(origin, Page):
            return ResultShape.PAGE
        if origin in (int, float):
            return ResultShape.NUMBER
        if issubclass(origin, (str, bytes, dict, BaseModel)):
            return ResultShape.SINGLE
        if issubclass(origin, _COLLECTION_TYPES):
            return ResultShape.COLLECTION
    return ResultShape.SINGLE


def is_declared_query_method(fn: Callable) -> bool:
    return any(
        hasattr(fn, attribute)
        for attribute in (QUERY_ATTRIBUTE, FACET_ATTRIBUTE, HIGHLIGHT_ATTRIBUTE)
    )


def query(
    value: Optional[str] = None,
    *,
    name: Optional[str] = None,
    filters: Iterable[str] = (),
    fields: Iterable[str] = (),
    default_operator: Optional[Operator] = None,
    time_allowed: Optional[int] = None,
    def_type: Optional[str] = None,
    request_handler: Optional[str] = None,
    delete: bool = False,
    count: bool = False,
    returns: Optional[ResultShape] = None,
):
    """
    Declare the Solr query of a repository method.

    Args:
        value: Query string, may contain ``?<index>`` placeholders. When
            omitted the query is looked up by name or derived from the
            method name.
        name: Named query to use instead of ``<Entity>.<method>``.
        filters: Filter queries, may contain placeholders.
        fields: Projection; only these fields are returned.
        default_operator: Operator between bare terms (``q.op``).
        time_allowed: Time budget in milliseconds, values <= 0 mean unlimited.
        def_type: Query parser to use (``defType``).
        request_handler: Request handler to send the query to.
        delete: Delete the matching documents instead of returning them.
        count: Return the number of matching documents.
        returns: Explicit result shape, overriding the return annotation.
    """

    def decorator(fn: Callable) -> Callable:
        setattr(
            fn,
            QUERY_ATTRIBUTE,
            {
                "query": value,
                "named_query_name": name,
                "filter_queries": list(filters),
                "projection_fields": list(fields),
                "default_operator": default_operator,
                "time_allowed": time_allowed,
                "def_type": def_type,
                "request_handler": request_handler,
                "delete": delete,
                "count": count,
                "returns": returns,
            },
        )
        return fn

    return decorator


def facet(
    fields: Iterable[str] = (),
    queries: Iterable[str] = (),
    pivots: Iterable[str] = (),
    limit: int = 10,
    min_count: int = 1,
    prefix: Optional[str] = None,
):
    """Request facet counts for a paged query method."""

    def decorator(fn: Callable) -> Callable:
        setattr(
            fn,
            FACET_ATTRIBUTE,
            {
                "fields": list(fields),
                "queries": list(queries),
                "pivots": [p if isinstance(p, str) else ",".join(p) for p in pivots],
                "limit": limit,
                "min_count": min_count,
                "prefix": prefix,
            },
        )
        return fn

    return decorator


def highlight(
    fields: Iterable[str] = (),
    fragsize: Optional[int] = None,
    snipplets: Optional[int] = None,
    query: Optional[str] = None,
    formatter: Optional[str] = None,
    prefix: Optional[str] = None,
    postfix: Optional[str] = None,
):
    """Request highlighted snippets for a paged query method."""

    def decorator(fn: Callable) -> Callable:
        setattr(
            fn,
            HIGHLIGHT_ATTRIBUTE,
            {
                "fields": list(fields),
                "fragsize": fragsize,
                "snipplets": snipplets,
                "query": query,
                "formatter": formatter,
                "prefix": prefix,
                "postfix": postfix,
            },
        )
        return fn

    return decorator


def boost(**factors: float):
    """Boost derived criteria per field, e.g. ``@boost(name=2.0)``."""

    def decorator(fn: Callable) -> Callable:
        setattr(fn, BOOST_ATTRIBUTE, dict(factors))
        return fn

    return decorator
