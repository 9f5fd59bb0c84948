"""
Result pages returned by query executions.
"""

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class Page(BaseModel):
    """A slice of the matching documents plus the total number of matches."""

    content: List[Any] = []
    total_elements: int = 0
    number: int = 0
    size: int = 0
    max_score: Optional[float] = None

    @property
    def total_pages(self) -> int:
        if self.size == 0:
            return 1
        return max(1, math.ceil(self.total_elements / self.size))

    @property
    def has_next(self) -> bool:
        return self.number + 1 < self.total_pages

    @property
    def number_of_elements(self) -> int:
        return len(self.content)


class FacetFieldEntry(BaseModel):
    """Count of documents for one value of a faceted field."""

    field: str
    value: str
    count: int


class FacetQueryEntry(BaseModel):
    """Count of documents matching a facet query."""

    query: str
    count: int


class FacetPivotEntry(BaseModel):
    """One node of a pivot facet tree."""

    field: str
    value: Any
    count: int
    pivot: List["FacetPivotEntry"] = []


FacetPivotEntry.update_forward_refs()


class FacetPage(Page):
    """Page carrying facet results next to the documents."""

    facet_fields: Dict[str, List[FacetFieldEntry]] = {}
    facet_queries: List[FacetQueryEntry] = []
    facet_pivots: Dict[str, List[FacetPivotEntry]] = {}

    def get_facet_result_page(self, field_name: str) -> List[FacetFieldEntry]:
        return self.facet_fields.get(field_name, [])

    def get_pivot(self, pivot: str) -> List[FacetPivotEntry]:
        return self.facet_pivots.get(pivot, [])


class HighlightEntry(BaseModel):
    """Highlighted snippets for one document, keyed by field name."""

    entity: Any
    highlights: Dict[str, List[str]] = {}


class HighlightPage(Page):
    """Page carrying per-document highlighting next to the documents."""

    highlighted: List[HighlightEntry] = []

    def get_highlights(self, entity: Any) -> Dict[str, List[str]]:
        for entry in self.highlighted:
            if entry.entity is entity or entry.entity == entity:
                return entry.highlights
        return {}
