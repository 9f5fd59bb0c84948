"""
Unit tests for the SOLR client module.
"""

from dataclasses import dataclass
from typing import Optional
from unittest.mock import ANY, Mock, patch

import pysolr
import pytest
from pydantic import BaseModel

from solr_repository.config import SOLRConfig
from solr_repository.exceptions import SOLRConnectionError, SOLRQueryError
from solr_repository.query import (
    Criteria,
    FacetOptions,
    FacetQuery,
    HighlightOptions,
    HighlightQuery,
    PageRequest,
    Query,
    SimpleStringCriteria,
)
from solr_repository.results import FacetPage, HighlightPage, Page
from solr_repository.solr_client import SOLRClient, map_document, to_document


class Product(BaseModel):
    id: str
    name: Optional[str] = None
    popularity: Optional[int] = None


@pytest.fixture
def solr_config():
    """Fixture providing a basic SOLR configuration."""
    return SOLRConfig(
        base_url="http://localhost:8983/solr",
        collection="test_collection",
        timeout=30,
        verify_ssl=True,
    )


@pytest.fixture
def mock_solr():
    """Fixture providing a mock SOLR instance."""
    mock = Mock(spec=pysolr.Solr)
    mock.ping.return_value = True
    return mock


@pytest.fixture
def client(solr_config, mock_solr):
    """Client bound to the mock SOLR instance."""
    return SOLRClient(solr_config, solr=mock_solr)


def name_query(page_request=None):
    return Query(Criteria("name").is_("ipod")).set_page_request(page_request)


class TestConnection:
    """Test cases for connection handling."""

    @patch("solr_repository.solr_client.pysolr.Solr")
    def test_init_success(self, mock_solr_class, solr_config):
        """Test successful SOLR client initialization."""
        mock_solr_instance = Mock()
        mock_solr_instance.ping.return_value = True
        mock_solr_class.return_value = mock_solr_instance

        client = SOLRClient(solr_config)

        mock_solr_class.assert_called_once_with(
            "http://localhost:8983/solr/test_collection/",
            auth=None,
            timeout=30,
            verify=True,
            session=ANY,
        )
        mock_solr_instance.ping.assert_called_once()
        assert client.config == solr_config
        assert client.collection == "test_collection"

    @patch("solr_repository.solr_client.pysolr.Solr")
    def test_init_with_auth(self, mock_solr_class, solr_config):
        """Test SOLR client initialization with authentication."""
        solr_config.username = "test_user"
        solr_config.password = "test_pass"
        mock_solr_class.return_value = Mock()

        SOLRClient(solr_config)

        mock_solr_class.assert_called_once_with(
            "http://localhost:8983/solr/test_collection/",
            auth=("test_user", "test_pass"),
            timeout=30,
            verify=True,
            session=ANY,
        )

    @patch("solr_repository.solr_client.time.sleep")
    @patch("solr_repository.solr_client.pysolr.Solr")
    def test_init_connection_failure(self, mock_solr_class, mock_sleep, solr_config):
        """Test SOLR client initialization with connection failure."""
        mock_solr_instance = Mock()
        mock_solr_instance.ping.side_effect = Exception("Connection failed")
        mock_solr_class.return_value = mock_solr_instance

        with pytest.raises(SOLRConnectionError, match="Failed to connect to SOLR"):
            SOLRClient(solr_config)
        assert mock_solr_instance.ping.call_count == 3

    def test_ping_success(self, client):
        """Test successful ping."""
        assert client.ping() is True

    def test_ping_failure(self, client, mock_solr):
        """Test ping failure."""
        mock_solr.ping.side_effect = Exception("Ping failed")
        assert client.ping() is False

    @patch("solr_repository.solr_client.pysolr.Solr")
    def test_for_collection(self, mock_solr_class, client):
        """Test that clients for other collections are created once and cached."""
        mock_solr_class.return_value = Mock()

        assert client.for_collection("test_collection") is client
        other = client.for_collection("manufacturers")

        assert other.collection == "manufacturers"
        assert client.for_collection("manufacturers") is other
        mock_solr_class.assert_called_once_with(
            "http://localhost:8983/solr/manufacturers/",
            auth=None,
            timeout=30,
            verify=True,
            session=ANY,
        )

    def test_close(self, client):
        client.close()
        assert client.ping() is False


class TestQueries:
    """Test cases for queries and result mapping."""

    def test_query_for_page(self, client, mock_solr, mock_solr_response):
        mock_solr.search.return_value = pysolr.Results(mock_solr_response)

        page = client.query_for_page(name_query(PageRequest(1, 2)), Product)

        mock_solr.search.assert_called_once_with(
            "name:ipod", search_handler=None, start=2, rows=2
        )
        assert isinstance(page, Page)
        assert page.total_elements == 2
        assert page.number == 1
        assert page.size == 2
        assert page.max_score == 1.5
        assert page.content[0] == Product(id="doc1", name="Test Document 1", popularity=5)

    def test_request_handler(self, client, mock_solr, mock_solr_response):
        mock_solr.search.return_value = pysolr.Results(mock_solr_response)
        query = name_query().set_request_handler("/browse")

        client.query_for_page(query)

        assert mock_solr.search.call_args[1]["search_handler"] == "/browse"

    def test_query_for_facet_page(self, client, mock_solr, mock_solr_response):
        mock_solr.search.return_value = pysolr.Results(mock_solr_response)
        query = FacetQuery(SimpleStringCriteria("*:*"), FacetOptions("category", "author"))

        page = client.query_for_facet_page(query)

        assert isinstance(page, FacetPage)
        assert mock_solr.search.call_args[1]["facet.field"] == ["category", "author"]
        categories = page.get_facet_result_page("category")
        assert [(entry.value, entry.count) for entry in categories] == [
            ("books", 5),
            ("articles", 3),
            ("papers", 1),
        ]
        assert page.facet_queries[0].query == "popularity:[5 TO *]"
        assert page.facet_queries[0].count == 1
        pivot = page.get_pivot("category,author")
        assert pivot[0].value == "books"
        assert pivot[0].pivot[0].value == "John Doe"
        assert pivot[0].pivot[0].count == 4

    def test_query_for_highlight_page(self, client, mock_solr, mock_solr_response):
        mock_solr.search.return_value = pysolr.Results(mock_solr_response)
        query = HighlightQuery(Criteria("name").is_("test"), HighlightOptions())

        page = client.query_for_highlight_page(query, Product)

        assert isinstance(page, HighlightPage)
        assert mock_solr.search.call_args[1]["hl"] == "true"
        assert page.get_highlights(page.content[0]) == {"name": ["<em>Test</em> Document 1"]}
        assert page.highlighted[1].highlights == {"name": ["<em>Test</em> Document 2"]}

    def test_query_for_object(self, client, mock_solr, mock_solr_response):
        mock_solr.search.return_value = pysolr.Results(mock_solr_response)
        query = name_query()

        result = client.query_for_object(query, Product)

        assert result.id == "doc1"
        assert mock_solr.search.call_args[1]["rows"] == 1
        assert query.page_request is None

    def test_query_for_object_without_match(self, client, mock_solr):
        mock_solr.search.return_value = pysolr.Results({"response": {"numFound": 0, "docs": []}})

        assert client.query_for_object(name_query()) is None

    def test_count(self, client, mock_solr, mock_solr_response):
        mock_solr.search.return_value = pysolr.Results(mock_solr_response)

        assert client.count(name_query(PageRequest(3, 10))) == 2
        mock_solr.search.assert_called_once_with(
            "name:ipod", search_handler=None, start=0, rows=0
        )

    def test_get_by_id(self, client, mock_solr, mock_solr_response):
        mock_solr.search.return_value = pysolr.Results(mock_solr_response)

        client.get_by_id("doc1")

        assert mock_solr.search.call_args[0][0] == "id:doc1"

    def test_query_error(self, client, mock_solr):
        mock_solr.search.side_effect = pysolr.SolrError("Bad request")

        with pytest.raises(SOLRQueryError, match="SOLR query failed"):
            client.query_for_page(name_query())

    def test_unexpected_error(self, client, mock_solr):
        mock_solr.search.side_effect = RuntimeError("socket closed")

        with pytest.raises(SOLRQueryError, match="Unexpected error during search"):
            client.count(name_query())


class TestWrites:
    """Test cases for updates, deletes, commit and rollback."""

    def test_save_beans(self, client, mock_solr):
        client.save_beans([Product(id="1", name="ipod"), {"id": "2"}])

        mock_solr.add.assert_called_once_with(
            [{"id": "1", "name": "ipod"}, {"id": "2"}], commit=False
        )

    def test_save_nothing(self, client, mock_solr):
        client.save_beans([])
        mock_solr.add.assert_not_called()

    def test_delete_by_query(self, client, mock_solr):
        client.delete(name_query())
        mock_solr.delete.assert_called_once_with(q="name:ipod", commit=False)

    def test_delete_by_query_applies_filter_queries(self, client, mock_solr):
        query = name_query()
        query.add_filter_query(Criteria("popularity").is_(5))

        client.delete(query)

        mock_solr.delete.assert_called_once_with(
            q="(name:ipod) AND (popularity:5)", commit=False
        )

    def test_delete_by_id(self, client, mock_solr):
        client.delete_by_id([1, "2"])
        mock_solr.delete.assert_called_once_with(id=["1", "2"], commit=False)

        mock_solr.delete.reset_mock()
        client.delete_by_id("3")
        mock_solr.delete.assert_called_once_with(id=["3"], commit=False)

    def test_commit_and_rollback(self, client, mock_solr):
        client.commit()
        client.rollback()

        mock_solr.commit.assert_called_once()
        mock_solr._update.assert_called_once_with("<rollback />", commit=False)

    def test_rollback_posts_xml_to_update_handler(self, client, mock_solr):
        mock_solr._update.side_effect = pysolr.SolrError("Unsupported")

        with pytest.raises(SOLRQueryError, match="SOLR rollback failed"):
            client.rollback()
        mock_solr._update.assert_called_once_with("<rollback />", commit=False)

    def test_update_error(self, client, mock_solr):
        mock_solr.delete.side_effect = pysolr.SolrError("Forbidden")

        with pytest.raises(SOLRQueryError, match="SOLR delete failed"):
            client.delete(name_query())


class TestDocumentMapping:
    def test_pydantic_entity(self):
        assert map_document({"id": "1", "name": "ipod"}, Product) == Product(id="1", name="ipod")

    def test_dataclass_entity_ignores_unknown_fields(self):
        @dataclass
        class Item:
            id: str

        assert map_document({"id": "1", "score": 2.0}, Item) == Item(id="1")

    def test_no_entity_type(self):
        assert map_document({"id": "1"}, None) == {"id": "1"}

    def test_to_document(self):
        @dataclass
        class Item:
            id: str
            name: Optional[str] = None

        assert to_document(Item(id="1")) == {"id": "1"}
        assert to_document(Product(id="1", popularity=3)) == {"id": "1", "popularity": 3}
        with pytest.raises(TypeError):
            to_document("not an entity")
