"""
SOLR Client for the repository layer.

This module provides the pysolr backed implementation of the search operations
used by repository queries: paged, faceted and highlighted queries, counts,
deletes, writes and commits. It includes connection management, result mapping
and error handling.
"""

import dataclasses
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

import pysolr
from pydantic import BaseModel

from .config import SOLRConfig
from .exceptions import SOLRConnectionError, SOLRQueryError
from .query import Criteria, FacetQuery, HighlightQuery, PageRequest, Query
from .query_parser import QueryParser
from .results import (
    FacetFieldEntry,
    FacetPage,
    FacetPivotEntry,
    FacetQueryEntry,
    HighlightEntry,
    HighlightPage,
    Page,
)

logger = logging.getLogger(__name__)

ID_FIELD = "id"


class SolrOperations(Protocol):
    """Search backend contract used by query executions and repositories."""

    def query_for_page(self, query: Query, entity_type: Optional[type]) -> Page:
        ...

    def query_for_facet_page(
        self, query: FacetQuery, entity_type: Optional[type]
    ) -> FacetPage:
        ...

    def query_for_highlight_page(
        self, query: HighlightQuery, entity_type: Optional[type]
    ) -> HighlightPage:
        ...

    def query_for_object(self, query: Query, entity_type: Optional[type]) -> Any:
        ...

    def count(self, query: Query) -> int:
        ...

    def delete(self, query: Query) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


def map_document(doc: Dict[str, Any], entity_type: Optional[type]) -> Any:
    """Map a Solr document onto the entity type of a repository."""
    if entity_type is None or entity_type is dict:
        return dict(doc)
    if isinstance(entity_type, type) and issubclass(entity_type, BaseModel):
        return entity_type(**doc)
    if dataclasses.is_dataclass(entity_type):
        names = {f.name for f in dataclasses.fields(entity_type)}
        return entity_type(**{k: v for k, v in doc.items() if k in names})
    return dict(doc)


def to_document(entity: Any) -> Dict[str, Any]:
    """Turn an entity into the document sent to Solr."""
    if isinstance(entity, BaseModel):
        return entity.dict(exclude_none=True)
    if dataclasses.is_dataclass(entity) and not isinstance(entity, type):
        return {k: v for k, v in dataclasses.asdict(entity).items() if v is not None}
    if isinstance(entity, dict):
        return dict(entity)
    raise TypeError(f"Cannot convert {type(entity).__name__} into a Solr document")


class SOLRClient:
    """
    A SOLR client implementing the operations repository queries run against.

    This client handles connection management, parameter construction through
    the QueryParser, result mapping into pages and error handling.
    """

    def __init__(
        self,
        config: SOLRConfig,
        solr: Optional[pysolr.Solr] = None,
        collection: Optional[str] = None,
        query_parser: Optional[QueryParser] = None,
    ):
        """
        Initialize the SOLR client.

        Args:
            config: SOLR configuration object.
            solr: Optional pre-configured pysolr instance.
            collection: Collection to bind to. Defaults to the configured one.
            query_parser: Optional parser used to build request parameters.
        """
        self.config = config
        self.collection = collection or config.collection
        self.query_parser = query_parser or QueryParser()
        self._collection_clients: Dict[str, "SOLRClient"] = {}
        self._solr = solr
        if self._solr is None:
            self._initialize_connection()

    def _initialize_connection(self) -> None:
        """Initialize the SOLR connection."""
        try:
            collection_url = self.config.collection_url(self.collection)

            self._solr = pysolr.Solr(
                collection_url,
                auth=self.config.auth,
                timeout=self.config.timeout,
                verify=self.config.verify_ssl,
                session=self._create_session(),
            )

            self._ping_with_retry()
            logger.info(f"Successfully connected to SOLR at {collection_url}")

        except Exception as e:
            logger.error(f"Failed to connect to SOLR: {e}")
            raise SOLRConnectionError(f"Failed to connect to SOLR: {e}")

    def _create_session(self):
        """Create a requests session with connection pooling."""
        import requests
        from requests.adapters import HTTPAdapter
        from urllib3.util.retry import Retry

        session = requests.Session()

        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
        )

        adapter = HTTPAdapter(
            max_retries=retry_strategy, pool_connections=10, pool_maxsize=20
        )

        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"Connection": "keep-alive"})

        return session

    def _ping_with_retry(self, max_retries: int = 3) -> None:
        """Ping SOLR with retry logic."""
        for attempt in range(max_retries):
            try:
                self._solr.ping()
                return
            except Exception as e:
                if attempt == max_retries - 1:
                    raise
                logger.warning(
                    f"SOLR ping attempt {attempt + 1} failed: {e}. Retrying..."
                )
                time.sleep(0.5 * (attempt + 1))

    def ping(self) -> bool:
        """
        Test the SOLR connection.

        Returns:
            True if the connection is successful, False otherwise.
        """
        try:
            if self._solr:
                self._solr.ping()
                return True
        except Exception as e:
            logger.warning(f"SOLR ping failed: {e}")
        return False

    def for_collection(self, collection: str) -> "SOLRClient":
        """Return a client bound to another collection of the same Solr instance."""
        if collection == self.collection:
            return self
        if collection not in self._collection_clients:
            self._collection_clients[collection] = SOLRClient(
                self.config, collection=collection, query_parser=self.query_parser
            )
        return self._collection_clients[collection]

    def _search(self, query: Query, **overrides: Any) -> pysolr.Results:
        """
        Execute a query against SOLR.

        Raises:
            SOLRQueryError: If the query fails.
        """
        try:
            params = self.query_parser.construct_solr_params(query)
            params.update(overrides)
            q = params.pop("q")

            logger.debug(
                f"Executing SOLR search on {self.collection} "
                f"(handler={query.request_handler}) with q={q!r} params: {params}"
            )
            return self._solr.search(q, search_handler=query.request_handler, **params)

        except pysolr.SolrError as e:
            logger.error(f"SOLR query error: {e}")
            raise SOLRQueryError(f"SOLR query failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected error during search: {e}")
            raise SOLRQueryError(f"Unexpected error during search: {e}")

    def query_for_page(self, query: Query, entity_type: Optional[type] = None) -> Page:
        response = self._search(query)
        return Page(**self._page_fields(query, response, entity_type))

    def query_for_facet_page(
        self, query: FacetQuery, entity_type: Optional[type] = None
    ) -> FacetPage:
        response = self._search(query)
        facet_fields, facet_queries, facet_pivots = self._process_facets(response)
        return FacetPage(
            **self._page_fields(query, response, entity_type),
            facet_fields=facet_fields,
            facet_queries=facet_queries,
            facet_pivots=facet_pivots,
        )

    def query_for_highlight_page(
        self, query: HighlightQuery, entity_type: Optional[type] = None
    ) -> HighlightPage:
        response = self._search(query)
        fields = self._page_fields(query, response, entity_type)
        highlighting = getattr(response, "highlighting", None) or {}

        highlighted = []
        for doc, entity in zip(response.docs, fields["content"]):
            doc_id = doc.get(ID_FIELD)
            highlights = highlighting.get(str(doc_id), {}) if doc_id is not None else {}
            highlighted.append(HighlightEntry(entity=entity, highlights=highlights))

        return HighlightPage(**fields, highlighted=highlighted)

    def query_for_object(self, query: Query, entity_type: Optional[type] = None) -> Any:
        single = query.copy().set_page_request(PageRequest(0, 1))
        response = self._search(single)
        if not response.docs:
            return None
        return map_document(response.docs[0], entity_type)

    def count(self, query: Query) -> int:
        response = self._search(query, start=0, rows=0)
        return int(response.hits)

    def get_by_id(self, doc_id: Any, entity_type: Optional[type] = None) -> Any:
        return self.query_for_object(Query(Criteria(ID_FIELD).is_(doc_id)), entity_type)

    def save_bean(self, entity: Any) -> None:
        self.save_beans([entity])

    def save_beans(self, entities: Iterable[Any]) -> None:
        documents = [to_document(entity) for entity in entities]
        if not documents:
            return
        try:
            logger.debug(f"Adding {len(documents)} documents to {self.collection}")
            self._solr.add(documents, commit=False)
        except pysolr.SolrError as e:
            logger.error(f"SOLR update error: {e}")
            raise SOLRQueryError(f"SOLR update failed: {e}")

    def delete(self, query: Query) -> None:
        query_string = self.query_parser.get_delete_query_string(query)
        try:
            logger.debug(f"Deleting from {self.collection} by query: {query_string}")
            self._solr.delete(q=query_string, commit=False)
        except pysolr.SolrError as e:
            logger.error(f"SOLR delete error: {e}")
            raise SOLRQueryError(f"SOLR delete failed: {e}")

    def delete_by_id(self, ids: Union[Any, List[Any]]) -> None:
        if not isinstance(ids, list):
            ids = [ids]
        try:
            logger.debug(f"Deleting {len(ids)} documents from {self.collection} by id")
            self._solr.delete(id=[str(doc_id) for doc_id in ids], commit=False)
        except pysolr.SolrError as e:
            logger.error(f"SOLR delete error: {e}")
            raise SOLRQueryError(f"SOLR delete failed: {e}")

    def commit(self) -> None:
        try:
            self._solr.commit()
        except pysolr.SolrError as e:
            logger.error(f"SOLR commit error: {e}")
            raise SOLRQueryError(f"SOLR commit failed: {e}")

    def rollback(self) -> None:
        # pysolr has no public rollback. Solr._update posts the XML command to the
        # update handler; it is private, so pyproject pins pysolr below 4.
        try:
            self._solr._update("<rollback />", commit=False)
        except pysolr.SolrError as e:
            logger.error(f"SOLR rollback error: {e}")
            raise SOLRQueryError(f"SOLR rollback failed: {e}")

    def _page_fields(
        self, query: Query, response: pysolr.Results, entity_type: Optional[type]
    ) -> Dict[str, Any]:
        content = [map_document(doc, entity_type) for doc in response.docs]
        page_request = query.page_request
        raw = getattr(response, "raw_response", None) or {}
        return {
            "content": content,
            "total_elements": int(response.hits),
            "number": page_request.page if page_request else 0,
            "size": page_request.size if page_request else len(content),
            "max_score": raw.get("response", {}).get("maxScore"),
        }

    def _process_facets(self, response: pysolr.Results):
        """
        Process the raw facet counts of a SOLR response.

        SOLR returns facet field values as [value1, count1, value2, count2, ...].
        """
        facets = getattr(response, "facets", None) or {}

        facet_fields: Dict[str, List[FacetFieldEntry]] = {}
        for field_name, field_values in facets.get("facet_fields", {}).items():
            entries = []
            for i in range(0, len(field_values) - 1, 2):
                entries.append(
                    FacetFieldEntry(
                        field=field_name,
                        value=str(field_values[i]),
                        count=field_values[i + 1],
                    )
                )
            facet_fields[field_name] = entries

        facet_queries = [
            FacetQueryEntry(query=facet_query, count=count)
            for facet_query, count in facets.get("facet_queries", {}).items()
        ]

        facet_pivots = {
            pivot: [self._process_pivot(entry) for entry in entries]
            for pivot, entries in facets.get("facet_pivot", {}).items()
        }

        return facet_fields, facet_queries, facet_pivots

    def _process_pivot(self, entry: Dict[str, Any]) -> FacetPivotEntry:
        return FacetPivotEntry(
            field=entry["field"],
            value=entry.get("value"),
            count=entry.get("count", 0),
            pivot=[self._process_pivot(child) for child in entry.get("pivot", [])],
        )

    def close(self) -> None:
        """Close the SOLR connection."""
        for client in self._collection_clients.values():
            client.close()
        self._collection_clients.clear()
        if self._solr:
            # pysolr doesn't have an explicit close method, but we can clean up
            self._solr = None
            logger.info("SOLR connection closed")

    def __enter__(self) -> "SOLRClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.close()
