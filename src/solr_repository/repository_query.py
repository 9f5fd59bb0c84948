"""
Repository queries: derivation of a Query from a method call and its dispatch.

AbstractSolrQuery holds the call pipeline shared by all query methods.
Subclasses only decide how the base query is created: from a query string
(StringBasedSolrQuery) or from the method name (PartTreeSolrQuery).
"""

import logging
from functools import reduce
from typing import Any, Iterator, Mapping, Optional, Sequence

from .converters import ConversionService, default_conversion_service
from .exceptions import ParameterBindingError, QueryCreationError
from .execution import DispatchFlags, ExecutionKind, create_execution, select_execution
from .parameters import ParameterAccessor, replace_placeholders
from .part_tree import Part, PartTree, PartType
from .query import (
    Criteria,
    FacetOptions,
    FacetQuery,
    HighlightOptions,
    HighlightParams,
    HighlightQuery,
    Node,
    Query,
    SimpleStringCriteria,
)
from .query_method import QueryMethod
from .solr_client import SolrOperations
from .transaction import Transaction, TransactionManager

logger = logging.getLogger(__name__)


class AbstractSolrQuery:
    """Base implementation of a Solr specific repository query."""

    def __init__(
        self,
        operations: SolrOperations,
        method: QueryMethod,
        conversion_service: Optional[ConversionService] = None,
        transaction_manager: Optional[TransactionManager] = None,
    ):
        if operations is None:
            raise ValueError("operations must not be None")
        if method is None:
            raise ValueError("method must not be None")
        self.operations = operations
        self.method = method
        self.conversion_service = conversion_service or default_conversion_service
        self.transaction_manager = transaction_manager

    @property
    def query_method(self) -> QueryMethod:
        return self.method

    def execute(
        self,
        args: Sequence[Any] = (),
        kwargs: Optional[Mapping[str, Any]] = None,
        transaction: Optional[Transaction] = None,
    ) -> Any:
        """
        Execute the query method for one call.

        Args:
            args: Positional arguments of the call.
            kwargs: Keyword arguments of the call, bound by parameter name.
            transaction: Transaction a delete should defer its commit to.
                Defaults to the current transaction of the transaction manager.
        """
        accessor = ParameterAccessor(
            self.method.parameter_names, args, kwargs, self.method.parameter_defaults
        )

        query = self.create_query(accessor)
        self._decorate_with_filter_query(query, accessor)
        self._set_default_query_operator_if_defined(query)
        self._set_allowed_query_execution_time(query)
        self._set_def_type_if_defined(query)
        self._set_request_handler_if_defined(query)

        kind = select_execution(self.dispatch_flags())

        if kind == ExecutionKind.FACET_PAGE:
            query = FacetQuery.from_query(query).set_facet_options(
                self.extract_facet_options(accessor)
            )
        elif kind == ExecutionKind.HIGHLIGHT_PAGE:
            query = HighlightQuery.from_query(query).set_highlight_options(
                self.extract_highlight_options(accessor)
            )

        if kind == ExecutionKind.DELETE and transaction is None and self.transaction_manager:
            transaction = self.transaction_manager.current()

        execution = create_execution(
            kind, self.operations, self.method, accessor.pageable, transaction
        )
        return execution.execute(query)

    def create_query(self, accessor: ParameterAccessor) -> Query:
        raise NotImplementedError

    def is_count_query(self) -> bool:
        return self.method.is_count_query

    def is_delete_query(self) -> bool:
        return self.method.is_delete_query

    def dispatch_flags(self) -> DispatchFlags:
        return DispatchFlags(
            is_count=self.is_count_query(),
            is_delete=self.is_delete_query(),
            is_paged=self.method.is_page_query,
            is_collection=self.method.is_collection_query,
            is_facet=self.method.is_facet_query,
            is_highlight=self.method.is_highlight_query,
            returns_number=self.method.returns_number,
        )

    def replace_placeholders(
        self, text: Optional[str], accessor: ParameterAccessor
    ) -> Optional[str]:
        return replace_placeholders(text, accessor, self.conversion_service)

    def create_query_from_string(self, query_string: str, accessor: ParameterAccessor) -> Query:
        return Query(SimpleStringCriteria(self.replace_placeholders(query_string, accessor)))

    def append_projection(self, query: Query) -> None:
        if self.method.has_projection_fields:
            for field_name in self.method.projection_fields:
                query.add_projection_on_field(field_name)

    def _decorate_with_filter_query(self, query: Query, accessor: ParameterAccessor) -> None:
        if self.method.has_filter_query:
            for filter_query in self.method.filter_queries:
                query.add_filter_query(self.create_query_from_string(filter_query, accessor))

    def _set_default_query_operator_if_defined(self, query: Query) -> None:
        query.set_default_operator(self.method.default_operator)

    def _set_allowed_query_execution_time(self, query: Query) -> None:
        if self.method.time_allowed is not None:
            query.set_time_allowed(self.method.time_allowed)

    def _set_def_type_if_defined(self, query: Query) -> None:
        query.set_def_type(self.method.def_type)

    def _set_request_handler_if_defined(self, query: Query) -> None:
        query.set_request_handler(self.method.request_handler)

    def extract_facet_options(self, accessor: ParameterAccessor) -> FacetOptions:
        definition = self.method.facet
        options = FacetOptions()
        if definition.fields:
            options.add_facet_on_fieldnames(definition.fields)
        for query_string in definition.queries:
            options.add_facet_query(self.create_query_from_string(query_string, accessor))
        for pivot in definition.pivots:
            options.add_facet_on_pivot(pivot)
        options.set_facet_limit(definition.limit)
        options.set_facet_min_count(definition.min_count)
        options.set_facet_prefix(self.replace_placeholders(definition.prefix, accessor))
        return options

    def extract_highlight_options(self, accessor: ParameterAccessor) -> HighlightOptions:
        definition = self.method.highlight
        options = HighlightOptions()
        if definition.fields:
            options.add_fields(definition.fields)
        if definition.fragsize is not None:
            options.set_fragsize(definition.fragsize)
        if definition.snipplets is not None:
            options.set_nr_snipplets(definition.snipplets)
        if definition.query is not None:
            options.set_query(self.create_query_from_string(definition.query, accessor))
        self._append_highlight_format_options(options)
        return options

    def _append_highlight_format_options(self, options: HighlightOptions) -> None:
        definition = self.method.highlight
        formatter = definition.formatter
        if formatter is not None:
            options.set_formatter(formatter)

        simple = is_simple_highlighting_option(formatter)
        if definition.prefix is not None:
            if simple:
                options.set_simple_prefix(definition.prefix)
            else:
                options.add_highlight_parameter(HighlightParams.TAG_PRE, definition.prefix)
        if definition.postfix is not None:
            if simple:
                options.set_simple_postfix(definition.postfix)
            else:
                options.add_highlight_parameter(HighlightParams.TAG_POST, definition.postfix)


def is_simple_highlighting_option(formatter: Optional[str]) -> bool:
    return formatter is None or formatter.lower() == HighlightParams.SIMPLE


class StringBasedSolrQuery(AbstractSolrQuery):
    """Query method backed by an annotated or named query string."""

    def __init__(
        self,
        operations: SolrOperations,
        method: QueryMethod,
        query_string: Optional[str] = None,
        conversion_service: Optional[ConversionService] = None,
        transaction_manager: Optional[TransactionManager] = None,
    ):
        super().__init__(operations, method, conversion_service, transaction_manager)
        self.raw_query_string = query_string or method.query
        if not self.raw_query_string:
            raise QueryCreationError(f"No query string for method '{method.name}'")

    def create_query(self, accessor: ParameterAccessor) -> Query:
        query = self.create_query_from_string(self.raw_query_string, accessor)
        self.append_projection(query)
        query.add_sort(accessor.sort)
        return query


class PartTreeSolrQuery(AbstractSolrQuery):
    """Query method derived from its name, e.g. ``find_by_name_and_popularity``."""

    def __init__(
        self,
        operations: SolrOperations,
        method: QueryMethod,
        conversion_service: Optional[ConversionService] = None,
        transaction_manager: Optional[TransactionManager] = None,
    ):
        super().__init__(operations, method, conversion_service, transaction_manager)
        self.tree = PartTree(method.name)

    def is_count_query(self) -> bool:
        return self.tree.is_count or super().is_count_query()

    def is_delete_query(self) -> bool:
        return self.tree.is_delete or super().is_delete_query()

    def create_query(self, accessor: ParameterAccessor) -> Query:
        if len(accessor) < self.tree.argument_count:
            raise ParameterBindingError(
                f"Method '{self.method.name}' needs {self.tree.argument_count} "
                f"argument(s) but got {len(accessor)}"
            )

        values = iter(accessor)
        or_nodes = []
        for and_parts in self.tree.or_parts:
            criteria = [self._create_criteria(part, values) for part in and_parts]
            or_nodes.append(reduce(lambda left, right: left & right, criteria))
        root: Node = reduce(lambda left, right: left | right, or_nodes)

        query = Query(root)
        self.append_projection(query)
        query.add_sort(self.tree.sort)
        query.add_sort(accessor.sort)
        return query

    def _create_criteria(self, part: Part, values: Iterator[Any]) -> Criteria:
        criteria = Criteria(part.field)
        part_type = part.type

        if part_type == PartType.SIMPLE_PROPERTY:
            value = next(values)
            criteria = criteria.is_null() if value is None else criteria.is_(value)
        elif part_type == PartType.NEGATING_SIMPLE_PROPERTY:
            criteria = criteria.is_not(next(values))
        elif part_type == PartType.STARTING_WITH:
            criteria = criteria.starts_with(next(values))
        elif part_type == PartType.ENDING_WITH:
            criteria = criteria.ends_with(next(values))
        elif part_type == PartType.CONTAINING:
            criteria = criteria.contains(next(values))
        elif part_type == PartType.BETWEEN:
            criteria = criteria.between(next(values), next(values))
        elif part_type == PartType.GREATER_THAN:
            criteria = criteria.greater_than(next(values))
        elif part_type == PartType.GREATER_THAN_EQUAL:
            criteria = criteria.greater_than_equal(next(values))
        elif part_type == PartType.LESS_THAN:
            criteria = criteria.less_than(next(values))
        elif part_type == PartType.LESS_THAN_EQUAL:
            criteria = criteria.less_than_equal(next(values))
        elif part_type == PartType.IN:
            criteria = criteria.in_(next(values))
        elif part_type == PartType.NOT_IN:
            criteria = criteria.in_(next(values)).not_()
        elif part_type == PartType.IS_NULL:
            criteria = criteria.is_null()
        elif part_type == PartType.IS_NOT_NULL:
            criteria = criteria.is_not_null()
        elif part_type == PartType.TRUE:
            criteria = criteria.is_(True)
        elif part_type == PartType.FALSE:
            criteria = criteria.is_(False)
        elif part_type == PartType.NEAR:
            criteria = criteria.near(next(values), next(values))
        elif part_type == PartType.WITHIN:
            criteria = criteria.within(next(values), next(values))
        else:
            raise QueryCreationError(f"Unsupported keyword {part_type.value}")

        factor = self.method.boosts.get(part.field)
        if factor is not None:
            criteria = criteria.boost(factor)
        return criteria
