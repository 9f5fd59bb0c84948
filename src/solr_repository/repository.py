"""
Repositories and the factory that wires their query methods.

A repository is a subclass of SolrRepository naming its ``entity_type`` and
declaring query methods as stubs. The factory replaces every query method of
a new repository instance with a callable that runs the matching repository
query. Lookup order per method: named query, ``@query`` string, derivation
from the method name.
"""

import functools
import inspect
import logging
import weakref
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from .config import Config
from .converters import ConversionService
from .exceptions import QueryCreationError
from .part_tree import PartTree
from .query import Criteria, PageRequest, Query, Sort
from .query_method import QueryMethod, is_declared_query_method
from .repository_query import AbstractSolrQuery, PartTreeSolrQuery, StringBasedSolrQuery
from .results import Page
from .solr_client import ID_FIELD, SOLRClient, SolrOperations
from .transaction import Transaction, TransactionManager

logger = logging.getLogger(__name__)


class SolrRepository:
    """CRUD operations for one entity type plus the declared query methods."""

    entity_type: Optional[type] = None

    def __init__(
        self,
        operations: SolrOperations,
        transaction_manager: Optional[TransactionManager] = None,
        commit_on_write: bool = True,
        page_size: int = 1000,
    ):
        self.operations = operations
        self.transaction_manager = transaction_manager
        self.commit_on_write = commit_on_write
        self.page_size = page_size
        self.query_methods: Dict[str, AbstractSolrQuery] = {}

    def _current_transaction(self) -> Optional[Transaction]:
        if self.transaction_manager is None:
            return None
        return self.transaction_manager.current()

    def _write(self, action: Callable[[], None]) -> None:
        transaction = self._current_transaction()
        if transaction is not None:
            transaction.register_solr_synchronization(self.operations)
        action()
        if transaction is None and self.commit_on_write:
            self.operations.commit()

    def save(self, entity: Any) -> Any:
        self._write(lambda: self.operations.save_bean(entity))
        return entity

    def save_all(self, entities: Iterable[Any]) -> List[Any]:
        entities = list(entities)
        if entities:
            self._write(lambda: self.operations.save_beans(entities))
        return entities

    def find_one(self, doc_id: Any) -> Any:
        return self.operations.get_by_id(doc_id, self.entity_type)

    def exists(self, doc_id: Any) -> bool:
        return self.operations.count(Query(Criteria(ID_FIELD).is_(doc_id))) > 0

    def count(self) -> int:
        return self.operations.count(Query())

    def find_page(self, page_request: PageRequest) -> Page:
        return self.operations.query_for_page(
            Query().set_page_request(page_request), self.entity_type
        )

    def find_all(self, sort: Optional[Sort] = None) -> List[Any]:
        """Fetch every document, ``page_size`` documents per request."""
        results: List[Any] = []
        page_number = 0
        while True:
            page = self.find_page(PageRequest(page_number, self.page_size, sort))
            results.extend(page.content)
            if not page.content or not page.has_next:
                return results
            page_number += 1

    def delete(self, entity: Any) -> None:
        self.delete_by_id(entity_id(entity))

    def delete_by_id(self, doc_id: Union[Any, List[Any]]) -> None:
        self._write(lambda: self.operations.delete_by_id(doc_id))

    def delete_all(self) -> None:
        self._write(lambda: self.operations.delete(Query()))


def entity_id(entity: Any) -> Any:
    if isinstance(entity, Mapping):
        doc_id = entity.get(ID_FIELD)
    else:
        doc_id = getattr(entity, ID_FIELD, None)
    if doc_id is None:
        raise ValueError(f"Entity {entity!r} has no '{ID_FIELD}'")
    return doc_id


def load_named_queries(path: Union[str, Path]) -> Dict[str, str]:
    """
    Read named queries from a properties file.

    Each line has the form ``<Entity>.<method>=<query>``; blank lines and lines
    starting with ``#`` or ``!`` are ignored.
    """
    named_queries: Dict[str, str] = {}
    for line_number, line in enumerate(Path(path).read_text().splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith(("#", "!")):
            continue
        name, separator, value = line.partition("=")
        if not separator or not name.strip():
            raise ValueError(f"Invalid named query at {path}:{line_number}: {line}")
        named_queries[name.strip()] = value.strip()
    logger.info(f"Loaded {len(named_queries)} named queries from {path}")
    return named_queries


class SolrRepositoryFactory:
    """Creates repositories and resolves their query methods."""

    def __init__(
        self,
        operations: SolrOperations,
        named_queries: Optional[Mapping[str, str]] = None,
        transaction_manager: Optional[TransactionManager] = None,
        conversion_service: Optional[ConversionService] = None,
        commit_on_write: bool = True,
        page_size: int = 1000,
    ):
        if operations is None:
            raise ValueError("operations must not be None")
        self.operations = operations
        self.named_queries: Dict[str, str] = dict(named_queries or {})
        self.transaction_manager = transaction_manager
        self.conversion_service = conversion_service
        self.commit_on_write = commit_on_write
        self.page_size = page_size
        self._operations_by_entity: "weakref.WeakKeyDictionary[type, SolrOperations]" = (
            weakref.WeakKeyDictionary()
        )

    @classmethod
    def from_config(
        cls,
        config: Config,
        operations: Optional[SolrOperations] = None,
        transaction_manager: Optional[TransactionManager] = None,
    ) -> "SolrRepositoryFactory":
        """Create a factory, and a SOLRClient unless one is given, from configuration."""
        named_queries = None
        if config.repository.named_queries_file is not None:
            named_queries = load_named_queries(config.repository.named_queries_file)
        return cls(
            operations or SOLRClient(config.solr),
            named_queries=named_queries,
            transaction_manager=transaction_manager,
            commit_on_write=config.repository.commit_on_write,
            page_size=config.solr.max_rows,
        )

    def get_repository(self, repository_class: Type[SolrRepository]) -> SolrRepository:
        entity_type = repository_class.entity_type
        operations = self._select_operations(entity_type)
        repository = repository_class(
            operations,
            transaction_manager=self.transaction_manager,
            commit_on_write=self.commit_on_write,
            page_size=self.page_size,
        )

        for name, fn in self._query_method_functions(repository_class):
            method = QueryMethod.from_function(fn, entity_type)
            repository_query = self.resolve_query(method, operations)
            repository.query_methods[name] = repository_query
            setattr(repository, name, _make_invoker(repository_query, fn))
            logger.debug(
                f"Resolved {repository_class.__name__}.{name} as "
                f"{type(repository_query).__name__}"
            )
        return repository

    def resolve_query(
        self, method: QueryMethod, operations: Optional[SolrOperations] = None
    ) -> AbstractSolrQuery:
        operations = operations or self.operations
        named_query_name = method.get_named_query_name()

        if named_query_name in self.named_queries:
            return StringBasedSolrQuery(
                operations,
                method,
                self.named_queries[named_query_name],
                conversion_service=self.conversion_service,
                transaction_manager=self.transaction_manager,
            )
        if method.has_annotated_query:
            return StringBasedSolrQuery(
                operations,
                method,
                conversion_service=self.conversion_service,
                transaction_manager=self.transaction_manager,
            )
        if method.named_query_name:
            raise QueryCreationError(f"Named query '{method.named_query_name}' not found")
        return PartTreeSolrQuery(
            operations,
            method,
            conversion_service=self.conversion_service,
            transaction_manager=self.transaction_manager,
        )

    def _select_operations(self, entity_type: Optional[type]) -> SolrOperations:
        core = getattr(entity_type, "__solr_core__", None) if entity_type else None
        if not core or not hasattr(self.operations, "for_collection"):
            return self.operations
        if entity_type not in self._operations_by_entity:
            self._operations_by_entity[entity_type] = self.operations.for_collection(core)
        return self._operations_by_entity[entity_type]

    @staticmethod
    def _query_method_functions(
        repository_class: Type[SolrRepository],
    ) -> List[Tuple[str, Callable]]:
        functions = []
        for name, fn in inspect.getmembers(repository_class, inspect.isfunction):
            if name.startswith("_"):
                continue
            if is_declared_query_method(fn) or (
                PartTree.is_derivable(name) and not hasattr(SolrRepository, name)
            ):
                functions.append((name, fn))
        return functions


def _make_invoker(repository_query: AbstractSolrQuery, fn: Callable) -> Callable:
    @functools.wraps(fn)
    def invoke(*args: Any, **kwargs: Any) -> Any:
        return repository_query.execute(args, kwargs)

    invoke.repository_query = repository_query
    return invoke
