"""
Conversion of Python values into Solr query strings.

The ConversionService is a registry of per-type converters. Lookup walks the
value's MRO first, so an exact registration always wins over a broader one
(``bool`` is never rendered by the ``Number`` converter), and then falls back
to ``issubclass`` checks so abstract types such as ``numbers.Number`` match.
"""

import numbers
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Type

from .geo import Distance, GeoLocation


Converter = Callable[[Any], str]

# Characters with meaning in the standard Lucene query syntax.
_SPECIAL_CHARS = set('\\+-!():^[]"{}~*?|&;/')


def escape_query_chars(value: str) -> str:
    """Escape Solr query syntax characters and whitespace with a backslash."""
    escaped = []
    for char in value:
        if char in _SPECIAL_CHARS or char.isspace():
            escaped.append("\\")
        escaped.append(char)
    return "".join(escaped)


def convert_datetime(value: date) -> str:
    """Render a date or datetime in the UTC form Solr date fields expect."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    formatted = value.strftime("%Y-%m-%dT%H:%M:%S") + ".%03dZ" % (
        value.microsecond // 1000
    )
    return escape_query_chars(formatted)


def convert_number(value: numbers.Number) -> str:
    """Render a number without locale grouping; negatives are escaped."""
    if isinstance(value, float):
        text = repr(value)
        if "e" in text or "E" in text:
            text = format(Decimal(text), "f")
    elif isinstance(value, Decimal):
        text = format(value, "f")
    else:
        text = str(value)

    if text.startswith("-"):
        return "\\" + text
    return text


def convert_bool(value: bool) -> str:
    return "true" if value else "false"


def convert_geo_location(value: GeoLocation) -> str:
    return f"{value.latitude},{value.longitude}"


def convert_distance(value: Distance) -> str:
    return str(value.kilometers)


class ConversionService:
    """Registry of converters turning method arguments into query text."""

    def __init__(self, register_defaults: bool = True):
        self._converters: Dict[type, Converter] = {}
        if register_defaults:
            self.add_converter(bool, convert_bool)
            self.add_converter(numbers.Number, convert_number)
            self.add_converter(datetime, convert_datetime)
            self.add_converter(date, convert_datetime)
            self.add_converter(GeoLocation, convert_geo_location)
            self.add_converter(Distance, convert_distance)

    def add_converter(self, source_type: Type, converter: Converter) -> None:
        """Register (or replace) the converter used for ``source_type``."""
        self._converters[source_type] = converter

    def _find_converter(self, source_type: type) -> Optional[Converter]:
        for candidate in source_type.__mro__:
            if candidate in self._converters:
                return self._converters[candidate]
        for registered, converter in self._converters.items():
            if issubclass(source_type, registered):
                return converter
        return None

    def can_convert(self, source_type: type) -> bool:
        return self._find_converter(source_type) is not None

    def convert(self, value: Any) -> str:
        """
        Convert a value using its registered converter.

        Raises:
            TypeError: If no converter is registered for the value's type.
        """
        converter = self._find_converter(type(value))
        if converter is None:
            raise TypeError(f"No converter registered for {type(value).__name__}")
        return converter(value)


default_conversion_service = ConversionService()
