"""
Solr repository - declarative data access for Apache Solr.

Repository query methods are declared as Python stubs, either with a query
string or derived from the method name, and are turned into Solr requests
returning entities, pages, facet pages and highlight pages.
"""

__version__ = "1.0.0"

from .config import Config, get_config
from .exceptions import (
    InvalidDataAccessApiUsageError,
    ParameterBindingError,
    QueryCreationError,
    SolrRepositoryError,
    SOLRClientError,
    SOLRConnectionError,
    SOLRQueryError,
)
from .geo import Distance, GeoLocation, Metrics
from .query import (
    Criteria,
    Direction,
    FacetOptions,
    FacetQuery,
    Field,
    HighlightOptions,
    HighlightQuery,
    Operator,
    Order,
    PageRequest,
    Query,
    SimpleStringCriteria,
    Sort,
)
from .query_method import boost, facet, highlight, query
from .repository import SolrRepository, SolrRepositoryFactory, load_named_queries
from .results import FacetPage, HighlightPage, Page
from .solr_client import SOLRClient
from .transaction import Transaction, TransactionManager

__all__ = [
    "Config",
    "get_config",
    "InvalidDataAccessApiUsageError",
    "ParameterBindingError",
    "QueryCreationError",
    "SolrRepositoryError",
    "SOLRClientError",
    "SOLRConnectionError",
    "SOLRQueryError",
    "Distance",
    "GeoLocation",
    "Metrics",
    "Criteria",
    "Direction",
    "FacetOptions",
    "Field",
    "FacetQuery",
    "HighlightOptions",
    "HighlightQuery",
    "Operator",
    "Order",
    "PageRequest",
    "Query",
    "SimpleStringCriteria",
    "Sort",
    "boost",
    "facet",
    "highlight",
    "query",
    "SolrRepository",
    "SolrRepositoryFactory",
    "load_named_queries",
    "FacetPage",
    "HighlightPage",
    "Page",
    "SOLRClient",
    "Transaction",
    "TransactionManager",
]
