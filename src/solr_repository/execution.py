"""
Execution strategies for repository queries.

The strategy is chosen once per call from a fixed decision table over the
method's dispatch flags; see ``select_execution`` for the precedence.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .exceptions import InvalidDataAccessApiUsageError
from .query import FacetQuery, HighlightQuery, PageRequest, Query
from .query_method import QueryMethod
from .results import FacetPage, HighlightPage, Page
from .solr_client import SolrOperations
from .transaction import Transaction

logger = logging.getLogger(__name__)

# Rows requested when every matching document has to be fetched.
UNBOUNDED_ROWS = 2**31 - 1


class ExecutionKind(str, Enum):
    COUNT = "count"
    DELETE = "delete"
    FACET_PAGE = "facet_page"
    HIGHLIGHT_PAGE = "highlight_page"
    PAGE = "page"
    COLLECTION = "collection"
    SINGLE = "single"


@dataclass(frozen=True)
class DispatchFlags:
    is_count: bool = False
    is_delete: bool = False
    is_paged: bool = False
    is_collection: bool = False
    is_facet: bool = False
    is_highlight: bool = False
    returns_number: bool = False


def select_execution(flags: DispatchFlags) -> ExecutionKind:
    """
    Pick the execution strategy for a call.

    Precedence: count+delete conflict, facet+highlight conflict, count,
    delete, paged (facet page, highlight page, plain page), collection,
    single entity.

    Raises:
        InvalidDataAccessApiUsageError: For count combined with delete and for
            facet combined with highlight.
    """
    if flags.is_count and flags.is_delete:
        raise InvalidDataAccessApiUsageError(
            "Cannot execute 'delete' and 'count' at the same time."
        )
    if flags.is_facet and flags.is_highlight:
        raise InvalidDataAccessApiUsageError("Facet and Highlight cannot be combined.")
    if flags.is_count:
        return ExecutionKind.COUNT
    if flags.is_delete:
        return ExecutionKind.DELETE
    if flags.is_paged:
        if flags.is_facet:
            return ExecutionKind.FACET_PAGE
        if flags.is_highlight:
            return ExecutionKind.HIGHLIGHT_PAGE
        return ExecutionKind.PAGE
    if flags.is_collection:
        return ExecutionKind.COLLECTION
    return ExecutionKind.SINGLE


class QueryExecution:
    """Runs a finished query against Solr and shapes the result."""

    def __init__(self, operations: SolrOperations, method: QueryMethod):
        self.operations = operations
        self.method = method

    def execute(self, query: Query) -> Any:
        raise NotImplementedError

    def execute_find(self, query: Query) -> Page:
        return self.operations.query_for_page(query, self.method.entity_type)


class CollectionExecution(QueryExecution):
    """
    Returns the documents of a query as a list.

    Without a page request the matching documents are counted first and then
    fetched as one page of that size.
    """

    def __init__(
        self,
        operations: SolrOperations,
        method: QueryMethod,
        pageable: Optional[PageRequest] = None,
    ):
        super().__init__(operations, method)
        self.pageable = pageable

    def execute(self, query: Query) -> Any:
        pageable = self.pageable
        if pageable is None:
            pageable = PageRequest(0, max(1, self.operations.count(query)))
        query.set_page_request(pageable)
        return list(self.execute_find(query).content)


class PagedExecution(QueryExecution):
    def __init__(
        self,
        operations: SolrOperations,
        method: QueryMethod,
        pageable: Optional[PageRequest],
    ):
        super().__init__(operations, method)
        if pageable is None:
            raise InvalidDataAccessApiUsageError(
                f"Paged query method '{method.name}' requires a PageRequest argument"
            )
        self.pageable = pageable

    def execute(self, query: Query) -> Any:
        query.set_page_request(self.pageable)
        return self.execute_find(query)


class FacetPageExecution(PagedExecution):
    def execute_find(self, query: Query) -> FacetPage:
        if not isinstance(query, FacetQuery):
            raise TypeError("Facet page execution requires a FacetQuery")
        return self.operations.query_for_facet_page(query, self.method.entity_type)


class HighlightPageExecution(PagedExecution):
    def execute_find(self, query: Query) -> HighlightPage:
        if not isinstance(query, HighlightQuery):
            raise TypeError("Highlight page execution requires a HighlightQuery")
        return self.operations.query_for_highlight_page(query, self.method.entity_type)


class SingleEntityExecution(QueryExecution):
    def execute(self, query: Query) -> Any:
        return self.operations.query_for_object(query, self.method.entity_type)


class CountExecution(QueryExecution):
    def execute(self, query: Query) -> int:
        return int(self.operations.count(query))


class DeleteExecution(QueryExecution):
    """
    Deletes the documents matching a query.

    Returns the deleted documents for collection methods and their number for
    numeric methods, both captured before the delete is sent. The commit is
    issued right away unless a transaction is active, in which case a
    synchronization is registered with it before deleting.
    """

    def __init__(
        self,
        operations: SolrOperations,
        method: QueryMethod,
        transaction: Optional[Transaction] = None,
    ):
        super().__init__(operations, method)
        self.transaction = transaction

    def _in_transaction(self) -> bool:
        return self.transaction is not None and self.transaction.is_active

    def execute(self, query: Query) -> Any:
        if self._in_transaction():
            self.transaction.register_solr_synchronization(self.operations)

        result = self._count_or_get_documents_for_delete(query)

        self.operations.delete(query)
        if not self._in_transaction():
            self.operations.commit()
        else:
            logger.debug("Delete inside transaction, commit deferred")

        return result

    def _count_or_get_documents_for_delete(self, query: Query) -> Any:
        result = None
        if self.method.is_collection_query:
            clone = query.copy().set_page_request(PageRequest(0, UNBOUNDED_ROWS))
            result = list(self.execute_find(clone).content)
        if self.method.returns_number:
            result = self.operations.count(query)
        return result


def create_execution(
    kind: ExecutionKind,
    operations: SolrOperations,
    method: QueryMethod,
    pageable: Optional[PageRequest] = None,
    transaction: Optional[Transaction] = None,
) -> QueryExecution:
    """Instantiate the execution for a selected kind."""
    logger.debug(f"Executing '{method.name}' as {kind.value}")
    if kind == ExecutionKind.COUNT:
        return CountExecution(operations, method)
    if kind == ExecutionKind.DELETE:
        return DeleteExecution(operations, method, transaction)
    if kind == ExecutionKind.FACET_PAGE:
        return FacetPageExecution(operations, method, pageable)
    if kind == ExecutionKind.HIGHLIGHT_PAGE:
        return HighlightPageExecution(operations, method, pageable)
    if kind == ExecutionKind.PAGE:
        return PagedExecution(operations, method, pageable)
    if kind == ExecutionKind.COLLECTION:
        return CollectionExecution(operations, method, pageable)
    return SingleEntityExecution(operations, method)
