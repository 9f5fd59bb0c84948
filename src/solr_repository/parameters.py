"""
Binding of method arguments into query strings.

Query strings may reference the bindable arguments of a repository method with
``?<index>`` placeholders. Paging and sorting arguments are not bindable; they
are picked up by the accessor and applied to the query separately.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .converters import ConversionService, default_conversion_service
from .exceptions import ParameterBindingError
from .query import PageRequest, Sort

PARAMETER_PLACEHOLDER = re.compile(r"\?(\d+)")


class ParameterAccessor:
    """
    Positional view of the arguments of one repository method call.

    Keyword arguments are placed at the position of their declared name, so
    ``find(name="x")`` and ``find("x")`` bind identically. Omitted arguments
    take the defaults declared in the method signature.
    """

    def __init__(
        self,
        parameter_names: Sequence[str],
        args: Sequence[Any] = (),
        kwargs: Optional[Mapping[str, Any]] = None,
        defaults: Optional[Mapping[str, Any]] = None,
    ):
        self.parameter_names = list(parameter_names)
        self.values = self._bind(args, kwargs or {}, defaults or {})

        self.pageable: Optional[PageRequest] = None
        self.sort: Optional[Sort] = None
        self.bindable_values: List[Any] = []
        for value in self.values:
            if isinstance(value, PageRequest):
                if self.pageable is None:
                    self.pageable = value
            elif isinstance(value, Sort):
                if self.sort is None:
                    self.sort = value
            else:
                self.bindable_values.append(value)

    def _bind(
        self,
        args: Sequence[Any],
        kwargs: Mapping[str, Any],
        defaults: Mapping[str, Any],
    ) -> List[Any]:
        values: List[Any] = list(args)
        if not kwargs and not defaults:
            return values

        missing = object()
        positions: Dict[str, int] = {
            name: index for index, name in enumerate(self.parameter_names)
        }
        slots: List[Any] = values + [missing] * (len(self.parameter_names) - len(values))
        for name, value in kwargs.items():
            if name not in positions:
                raise ParameterBindingError(f"Unknown parameter '{name}'")
            index = positions[name]
            if index < len(values):
                raise ParameterBindingError(f"Parameter '{name}' given more than once")
            slots[index] = value

        for index, name in enumerate(self.parameter_names):
            if slots[index] is missing and name in defaults:
                slots[index] = defaults[name]

        while slots and slots[-1] is missing:
            slots.pop()
        if any(slot is missing for slot in slots):
            unbound = [
                self.parameter_names[i] for i, slot in enumerate(slots) if slot is missing
            ]
            raise ParameterBindingError(f"Missing value for parameter(s): {', '.join(unbound)}")
        return slots

    def get_bindable_value(self, index: int) -> Any:
        """
        Return the bindable argument at ``index``.

        Raises:
            ParameterBindingError: If no bindable argument exists at that index.
        """
        if index < 0 or index >= len(self.bindable_values):
            raise ParameterBindingError(
                f"Invalid parameter index {index}, "
                f"{len(self.bindable_values)} bindable argument(s) available"
            )
        return self.bindable_values[index]

    def __len__(self) -> int:
        return len(self.bindable_values)

    def __iter__(self):
        return iter(self.bindable_values)


def parameter_to_string(
    value: Any, conversion_service: ConversionService = default_conversion_service
) -> str:
    """Convert a bound argument into its query string form."""
    if value is None:
        return "null"

    if conversion_service.can_convert(type(value)):
        return conversion_service.convert(value)

    if isinstance(value, (list, tuple, set, frozenset)):
        parts = []
        for item in value:
            if item is not None and conversion_service.can_convert(type(item)):
                parts.append(conversion_service.convert(item))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()

    return str(value)


def replace_placeholders(
    text: Optional[str],
    accessor: ParameterAccessor,
    conversion_service: ConversionService = default_conversion_service,
) -> Optional[str]:
    """
    Replace every ``?<index>`` in ``text`` with the converted argument.

    Text without placeholders, empty text and ``None`` are returned unchanged.
    """
    if not text or not text.strip():
        return text
    if "?" not in text:
        return text

    def substitute(match: "re.Match[str]") -> str:
        index = int(match.group(1))
        return parameter_to_string(accessor.get_bindable_value(index), conversion_service)

    return PARAMETER_PLACEHOLDER.sub(substitute, text)
