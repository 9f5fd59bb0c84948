"""
Pytest configuration and fixtures for Solr repository tests.
"""

import os
from typing import Any, List, Optional

import pytest

from solr_repository.config import Config, MCPConfig, SOLRConfig
from solr_repository.main import ENV_VARIABLES
from solr_repository.results import FacetPage, HighlightEntry, HighlightPage, Page


class RecordingSolrOperations:
    """
    In-memory stand-in for SOLRClient that records every backend call.

    Page results are sliced out of ``documents`` according to the page request
    of the query; ``count`` returns ``count_result`` when set and the number
    of documents otherwise. ``delete`` empties ``documents``.
    """

    def __init__(self, documents: Optional[List[Any]] = None, count_result: Optional[int] = None):
        self.documents = list(documents or [])
        self.count_result = count_result
        self.calls: List[str] = []
        self.queries: List[Any] = []
        self.saved: List[Any] = []
        self.deleted_ids: List[Any] = []
        self.collection = "test_collection"

    def _record(self, name: str, query: Any = None) -> None:
        self.calls.append(name)
        self.queries.append(query)

    def _page_fields(self, query: Any) -> dict:
        if query.page_request is None:
            content = list(self.documents)
            number, size = 0, len(content)
        else:
            start = query.offset
            content = self.documents[start:start + query.rows]
            number, size = query.page_request.page, query.page_request.size
        return {
            "content": content,
            "total_elements": len(self.documents),
            "number": number,
            "size": size,
        }

    def query_for_page(self, query, entity_type=None) -> Page:
        self._record("query_for_page", query)
        return Page(**self._page_fields(query))

    def query_for_facet_page(self, query, entity_type=None) -> FacetPage:
        self._record("query_for_facet_page", query)
        return FacetPage(**self._page_fields(query))

    def query_for_highlight_page(self, query, entity_type=None) -> HighlightPage:
        self._record("query_for_highlight_page", query)
        fields = self._page_fields(query)
        highlighted = [HighlightEntry(entity=doc) for doc in fields["content"]]
        return HighlightPage(**fields, highlighted=highlighted)

    def query_for_object(self, query, entity_type=None):
        self._record("query_for_object", query)
        return self.documents[0] if self.documents else None

    def count(self, query) -> int:
        self._record("count", query)
        if self.count_result is not None:
            return self.count_result
        return len(self.documents)

    def get_by_id(self, doc_id, entity_type=None):
        self._record("get_by_id", doc_id)
        for doc in self.documents:
            if doc.get("id") == doc_id:
                return doc
        return None

    def save_bean(self, entity) -> None:
        self.save_beans([entity])

    def save_beans(self, entities) -> None:
        self._record("save_beans", None)
        self.saved.extend(entities)

    def delete(self, query) -> None:
        self._record("delete", query)
        self.documents.clear()

    def delete_by_id(self, ids) -> None:
        self._record("delete_by_id", None)
        self.deleted_ids.append(ids)

    def commit(self) -> None:
        self._record("commit")

    def rollback(self) -> None:
        self._record("rollback")

    def ping(self) -> bool:
        return True


@pytest.fixture
def operations():
    """Recording operations with three documents."""
    return RecordingSolrOperations(
        documents=[
            {"id": "1", "name": "ipod", "popularity": 5},
            {"id": "2", "name": "ipad", "popularity": 3},
            {"id": "3", "name": "iphone", "popularity": 5},
        ]
    )


@pytest.fixture
def make_operations():
    """Factory for recording operations with custom documents or counts."""
    return RecordingSolrOperations


@pytest.fixture
def test_config():
    """Provide a test configuration."""
    solr_config = SOLRConfig(
        base_url="http://localhost:8983/solr",
        collection="test_collection",
        username="test_user",
        password="test_pass",
        timeout=30,
        verify_ssl=False,
        max_rows=100,
    )

    mcp_config = MCPConfig(host="localhost", port=8080, log_level="INFO")

    return Config(solr=solr_config, mcp=mcp_config)


@pytest.fixture
def mock_solr_response():
    """Mock SOLR response data for testing."""
    return {
        "responseHeader": {
            "status": 0,
            "QTime": 15,
            "params": {"q": "name:ipod", "wt": "json"},
        },
        "response": {
            "numFound": 2,
            "start": 0,
            "maxScore": 1.5,
            "docs": [
                {"id": "doc1", "name": "Test Document 1", "popularity": 5},
                {"id": "doc2", "name": "Test Document 2", "popularity": 3},
            ],
        },
        "facet_counts": {
            "facet_queries": {"popularity:[5 TO *]": 1},
            "facet_fields": {
                "category": ["books", 5, "articles", 3, "papers", 1],
                "author": ["John Doe", 4, "Jane Smith", 2],
            },
            "facet_pivot": {
                "category,author": [
                    {
                        "field": "category",
                        "value": "books",
                        "count": 5,
                        "pivot": [{"field": "author", "value": "John Doe", "count": 4}],
                    }
                ]
            },
        },
        "highlighting": {
            "doc1": {"name": ["<em>Test</em> Document 1"]},
            "doc2": {"name": ["<em>Test</em> Document 2"]},
        },
    }


@pytest.fixture(autouse=True)
def clean_env_vars():
    """Hide configuration variables from tests and drop what .env files set."""
    names = [name for name, _ in ENV_VARIABLES] + ["MCP_SERVER_HOST", "MCP_SERVER_PORT"]
    saved = {name: os.environ.pop(name) for name in names if name in os.environ}

    yield

    for name in names:
        os.environ.pop(name, None)
    os.environ.update(saved)
