"""
Exceptions raised by the Solr repository layer.

Configuration and binding problems are detected before any request reaches
Solr. Backend failures are raised by the client and pass through the query
execution path unchanged.
"""


class SolrRepositoryError(Exception):
    """Base exception for the Solr repository layer."""

    pass


class InvalidDataAccessApiUsageError(SolrRepositoryError):
    """Raised when a query method is declared with an unsupported combination."""

    pass


class ParameterBindingError(SolrRepositoryError):
    """Raised when a placeholder cannot be bound to a method argument."""

    pass


class QueryCreationError(SolrRepositoryError):
    """Raised when a query cannot be derived from a method declaration."""

    pass


class SOLRClientError(SolrRepositoryError):
    """Base exception for SOLR client errors."""

    pass


class SOLRConnectionError(SOLRClientError):
    """Raised when connection to SOLR fails."""

    pass


class SOLRQueryError(SOLRClientError):
    """Raised when a SOLR query fails."""

    pass
