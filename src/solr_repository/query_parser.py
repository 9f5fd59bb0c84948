"""
Translation of the Query model into Solr request parameters.

The parameters produced here are the keyword arguments handed to
``pysolr.Solr.search``; multi-valued parameters such as ``fq`` are lists.
"""

import logging
from typing import Any, Dict, List, Optional

from .converters import ConversionService, default_conversion_service, escape_query_chars
from .query import (
    Conjunction,
    Criteria,
    FacetOptions,
    FacetQuery,
    Function,
    FunctionCriteria,
    HighlightOptions,
    HighlightParams,
    HighlightQuery,
    Negation,
    Node,
    Predicate,
    PredicateKey,
    Query,
    Range,
    SimpleStringCriteria,
    Sort,
)

logger = logging.getLogger(__name__)

MATCH_ALL = "*:*"
WILDCARD = "*"


class QueryParser:
    """Renders criteria trees and queries into Solr syntax."""

    def __init__(self, conversion_service: Optional[ConversionService] = None):
        self.conversion_service = conversion_service or default_conversion_service

    def construct_solr_params(self, query: Query) -> Dict[str, Any]:
        """
        Build the full parameter set for a query.

        Args:
            query: The query to translate.

        Returns:
            Dictionary of Solr parameters, including ``q``.
        """
        params: Dict[str, Any] = {"q": self.get_query_string(query)}

        if query.filter_queries:
            params["fq"] = [self.get_query_string(fq, with_join=False) for fq in query.filter_queries]

        if query.page_request is not None:
            params["start"] = query.offset
            params["rows"] = query.rows

        if query.sort:
            params["sort"] = self.render_sort(query.sort)

        if query.projection_on_fields:
            params["fl"] = ",".join(query.projection_on_fields)

        if query.default_operator is not None:
            params["q.op"] = query.default_operator.value

        if query.time_allowed is not None:
            params["timeAllowed"] = query.time_allowed

        if query.def_type:
            params["defType"] = query.def_type

        if isinstance(query, FacetQuery) and query.facet_options is not None:
            params.update(self.construct_facet_params(query.facet_options))

        if isinstance(query, HighlightQuery) and query.highlight_options is not None:
            params.update(self.construct_highlight_params(query.highlight_options))

        logger.debug(f"Constructed Solr params: {params}")
        return params

    def get_query_string(self, query: Query, with_join: bool = True) -> str:
        """Render the main query text of a query, including any join prefix."""
        if query.criteria is None:
            query_string = MATCH_ALL
        else:
            query_string = self.create_query_string_from_node(query.criteria)

        if with_join and query.join is not None:
            join = query.join
            local_params = f"from={join.from_field} to={join.to_field}"
            if join.from_index:
                local_params += f" fromIndex={join.from_index}"
            query_string = "{!join " + local_params + "}" + query_string
        return query_string

    def get_delete_query_string(self, query: Query) -> str:
        """
        Render a delete-by-query text matching the same documents as a search.

        Delete by query has no ``fq``, so filter queries are ANDed into the
        main query.
        """
        query_string = self.get_query_string(query)
        if not query.filter_queries:
            return query_string
        clauses = [query_string] + [
            self.get_query_string(fq, with_join=False) for fq in query.filter_queries
        ]
        return " AND ".join(f"({clause})" for clause in clauses)

    def construct_facet_params(self, options: FacetOptions) -> Dict[str, Any]:
        if not options.has_facets():
            return {}

        params: Dict[str, Any] = {
            "facet": "true",
            "facet.limit": options.facet_limit,
            "facet.mincount": options.facet_min_count,
        }
        if options.facet_on_fields:
            params["facet.field"] = list(options.facet_on_fields)
        if options.facet_queries:
            params["facet.query"] = [
                self.get_query_string(fq, with_join=False) for fq in options.facet_queries
            ]
        if options.facet_on_pivots:
            params["facet.pivot"] = list(options.facet_on_pivots)
        if options.facet_prefix:
            params["facet.prefix"] = options.facet_prefix
        return params

    def construct_highlight_params(self, options: HighlightOptions) -> Dict[str, Any]:
        params: Dict[str, Any] = {HighlightParams.HIGHLIGHT: "true"}

        if options.has_fields():
            params[HighlightParams.FIELDS] = ",".join(options.fields)
        else:
            params[HighlightParams.FIELDS] = HighlightOptions.ALL_FIELDS

        if options.fragsize is not None:
            params[HighlightParams.FRAGSIZE] = options.fragsize
        if options.nr_snipplets is not None:
            params[HighlightParams.SNIPPETS] = options.nr_snipplets
        if options.query is not None:
            params[HighlightParams.QUERY] = self.get_query_string(
                options.query, with_join=False
            )
        if options.formatter:
            params[HighlightParams.FORMATTER] = options.formatter
        if options.simple_prefix is not None:
            params[HighlightParams.SIMPLE_PRE] = options.simple_prefix
        if options.simple_postfix is not None:
            params[HighlightParams.SIMPLE_POST] = options.simple_postfix

        for parameter in options.highlight_parameters:
            params[parameter.name] = parameter.value
        return params

    @staticmethod
    def render_sort(sort: Sort) -> str:
        return ",".join(f"{order.field} {order.direction.value}" for order in sort)

    def create_query_string_from_node(self, node: Node) -> str:
        if isinstance(node, SimpleStringCriteria):
            return node.query_string
        if isinstance(node, Criteria):
            return self._render_criteria(node)
        if isinstance(node, FunctionCriteria):
            return "{!func}" + self.render_function(node.function)
        if isinstance(node, Negation):
            return "-" + self._render_nested(node.child)
        if isinstance(node, Conjunction):
            parts = [self._render_nested(child) for child in node.children]
            return f" {node.operator.value} ".join(parts)
        raise TypeError(f"Unsupported criteria node: {type(node).__name__}")

    def _render_nested(self, node: Node) -> str:
        rendered = self.create_query_string_from_node(node)
        if isinstance(node, Conjunction) and len(node.children) > 1:
            return f"({rendered})"
        return rendered

    def render_function(self, function: Function) -> str:
        args = []
        for arg in function.args:
            if isinstance(arg, Function):
                args.append(self.render_function(arg))
            elif isinstance(arg, str):
                args.append(arg)
            else:
                args.append(self.conversion_service.convert(arg))
        return f"{function.name}({','.join(args)})"

    def _render_criteria(self, criteria: Criteria) -> str:
        field_predicates: List[str] = []
        spatial: List[str] = []

        for predicate in criteria.predicates:
            if predicate.key in (PredicateKey.NEAR, PredicateKey.WITHIN):
                spatial.append(self._render_spatial(criteria.field, predicate))
            else:
                field_predicates.append(self._render_predicate(predicate))

        parts: List[str] = []
        if field_predicates:
            if len(field_predicates) == 1:
                parts.append(f"{criteria.field}:{field_predicates[0]}")
            else:
                parts.append(f"{criteria.field}:({' '.join(field_predicates)})")
        parts.extend(spatial)
        if not parts:
            raise ValueError(f"Criteria on field '{criteria.field}' has no predicates")

        rendered = " ".join(parts)
        if len(parts) > 1:
            rendered = f"({rendered})"
        if criteria.boost_factor is not None:
            rendered += f"^{criteria.boost_factor}"
        if criteria.negated:
            rendered = "-" + rendered
        return rendered

    def _render_predicate(self, predicate: Predicate) -> str:
        key = predicate.key
        value = predicate.value

        if key == PredicateKey.EQUALS:
            return self.render_value(value)
        if key == PredicateKey.EXPRESSION:
            return str(value)
        if key == PredicateKey.CONTAINS:
            return f"*{self._render_term(value)}*"
        if key == PredicateKey.STARTS_WITH:
            return f"{self._render_term(value)}*"
        if key == PredicateKey.ENDS_WITH:
            return f"*{self._render_term(value)}"
        if key == PredicateKey.FUZZY:
            term, distance = value
            suffix = "~" if distance is None else f"~{distance}"
            return self._render_term(term) + suffix
        if key == PredicateKey.BETWEEN:
            return self._render_range(value)
        raise ValueError(f"Unsupported predicate: {key}")

    def _render_range(self, value: Range) -> str:
        lower = WILDCARD if value.lower is None else self._render_term(value.lower)
        upper = WILDCARD if value.upper is None else self._render_term(value.upper)
        opening = "[" if value.include_lower else "{"
        closing = "]" if value.include_upper else "}"
        return f"{opening}{lower} TO {upper}{closing}"

    def _render_spatial(self, field_name: str, predicate: Predicate) -> str:
        location, distance = predicate.value
        parser = "bbox" if predicate.key == PredicateKey.NEAR else "geofilt"
        point = self.conversion_service.convert(location)
        radius = self.conversion_service.convert(distance)
        return "{!" + f"{parser} pt={point} sfield={field_name} d={radius}" + "}"

    def render_value(self, value: Any) -> str:
        """Render a value for an equality match; phrases are quoted."""
        if isinstance(value, str) and any(char.isspace() for char in value):
            return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
        return self._render_term(value)

    def _render_term(self, value: Any) -> str:
        if isinstance(value, str):
            return escape_query_chars(value)
        if self.conversion_service.can_convert(type(value)):
            return self.conversion_service.convert(value)
        return escape_query_chars(str(value))
