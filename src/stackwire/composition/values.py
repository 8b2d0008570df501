"""
Computed property values.

These are placeholders stored inside a ResourceSpec's properties for values
that do not exist yet when the composition is built:

- AttributeRef: an attribute of another resource, known once it materializes
- ParameterRef: a deploy-time parameter of the composition
- PseudoParameter: a value only the orchestrator knows (stack name, region)
- Join: a string assembled from literals and any of the above
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator, Tuple, Union

from stackwire.composition.paths import Segment
from stackwire.core.errors import InvalidValueError

# Attribute name that stands for the resource's primary identifier
REF_ATTRIBUTE = "Ref"


@dataclass(frozen=True)
class AttributeRef:
    """Unresolved reference to ``producer_id``'s ``attribute``."""

    producer_id: str
    attribute: str

    def __str__(self) -> str:
        return f"${{{self.producer_id}.{self.attribute}}}"


@dataclass(frozen=True)
class ParameterRef:
    """Unresolved reference to a deploy-time parameter."""

    name: str

    def __str__(self) -> str:
        return f"${{param:{self.name}}}"


@dataclass(frozen=True)
class PseudoParameter:
    """Value supplied by the orchestrator at materialization time."""

    name: str  # e.g. "AWS::StackName"

    def __str__(self) -> str:
        return f"${{{self.name}}}"


STACK_NAME = PseudoParameter("AWS::StackName")
REGION = PseudoParameter("AWS::Region")
ACCOUNT_ID = PseudoParameter("AWS::AccountId")
PSEUDO_PARAMETERS = {p.name: p for p in (STACK_NAME, REGION, ACCOUNT_ID)}

Reference = Union[AttributeRef, ParameterRef, PseudoParameter]


@dataclass(frozen=True)
class Join:
    """String concatenation of literal and referenced parts."""

    parts: Tuple[Any, ...]
    delimiter: str = ""

    def __init__(self, parts: Any, delimiter: str = "") -> None:
        object.__setattr__(self, "parts", tuple(parts))
        object.__setattr__(self, "delimiter", delimiter)

    def is_literal(self) -> bool:
        return not any(isinstance(p, (AttributeRef, ParameterRef, PseudoParameter, Join)) for p in self.parts)

    def collapse(self) -> Union["Join", str]:
        """Return the joined string once every part is a literal.

        Raises:
            InvalidValueError: If a literal part is not a string, number or bool
        """
        if self.is_literal():
            return self.delimiter.join(_join_part(p) for p in self.parts)
        return self


def _join_part(part: Any) -> str:
    # Booleans render the way the orchestrator document spells them
    if isinstance(part, bool):
        return "true" if part else "false"
    if isinstance(part, (str, int, float)):
        return str(part)
    raise InvalidValueError(f"Cannot join non-scalar value {part!r}", part)


def iter_references(
    value: Any, path: Tuple[Segment, ...] = ()
) -> Iterator[Tuple[Tuple[Segment, ...], Reference]]:
    """Yield ``(path, reference)`` for every placeholder inside ``value``.

    References nested in a Join report the Join's own path.
    """
    if isinstance(value, (AttributeRef, ParameterRef, PseudoParameter)):
        yield path, value
    elif isinstance(value, Join):
        for part in value.parts:
            for _, ref in iter_references(part, path):
                yield path, ref
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from iter_references(item, path + (key,))
    elif isinstance(value, list):
        for index, item in enumerate(value):
            yield from iter_references(item, path + (index,))


def substitute(value: Any, replace: Callable[[Reference], Any]) -> Any:
    """Return ``value`` with references swapped by ``replace``.

    ``replace`` returns the reference itself to leave it unresolved. Joins
    whose parts all become literal collapse to a plain string.
    """
    if isinstance(value, (AttributeRef, ParameterRef, PseudoParameter)):
        return replace(value)
    if isinstance(value, Join):
        return Join([substitute(p, replace) for p in value.parts], value.delimiter).collapse()
    if isinstance(value, dict):
        return {k: substitute(v, replace) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute(item, replace) for item in value]
    return value
