"""
Composition data models.

A Composition is the finalized graph handed to an orchestrator: resource
specs, the bindings between them, explicit ordering edges, deploy-time
parameters and exported outputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from stackwire.composition.paths import PathLike, format_path, get_path, parse_path
from stackwire.composition.values import AttributeRef, iter_references
from stackwire.templates.models import ResourceTemplate


@dataclass(frozen=True)
class Binding:
    """Deferred reference from a consumer property to a producer attribute."""

    producer_id: str
    attribute: str
    path: str  # canonical property path inside the consumer
    consumer_id: str = ""

    @property
    def edge(self) -> Tuple[str, str]:
        """Ordering edge implied by this binding (producer before consumer)."""
        return (self.producer_id, self.consumer_id)


@dataclass
class ResourceSpec:
    """Per-instance working copy of a template."""

    logical_id: str
    properties: Dict[str, Any]
    resource_type: Optional[str] = None
    template_name: Optional[str] = None
    depends_on: Set[str] = field(default_factory=set)
    computed_after: bool = False  # other resources or outputs read its attributes
    nested: bool = False

    def bindings(self) -> List[Binding]:
        """Bindings whose placeholders are still present in the properties."""
        result = []
        for path, ref in iter_references(self.properties):
            if isinstance(ref, AttributeRef):
                result.append(
                    Binding(
                        producer_id=ref.producer_id,
                        attribute=ref.attribute,
                        path=format_path(path),
                        consumer_id=self.logical_id,
                    )
                )
        return result


class _NoDefault:
    def __repr__(self) -> str:
        return "NO_DEFAULT"

    def __copy__(self) -> "_NoDefault":
        return self

    def __deepcopy__(self, memo: Dict[int, Any]) -> "_NoDefault":
        return self


# Marks a parameter without a default; None is a valid default
NO_DEFAULT: Any = _NoDefault()


@dataclass
class Parameter:
    """Deploy-time parameter declared on a composition."""

    name: str
    type: str = "String"
    description: str = ""
    default: Any = NO_DEFAULT

    @property
    def required(self) -> bool:
        return self.default is NO_DEFAULT


@dataclass
class Output:
    """Named value exported by a composition."""

    name: str
    value: Any
    description: str = ""


BindingSpec = Union[Binding, Tuple[PathLike, str, str]]


@dataclass
class ResourceDeclaration:
    """Input to ``compose()`` for one resource.

    ``template`` is either a ResourceTemplate or the name of one in the
    template store. ``bindings`` holds ``(path, producer_id, attribute)``
    triples.
    """

    logical_id: str
    template: Union[ResourceTemplate, str]
    overrides: Mapping[PathLike, Any] = field(default_factory=dict)
    bindings: Sequence[BindingSpec] = field(default_factory=list)
    depends_on: Sequence[str] = field(default_factory=list)
    nested: bool = False

    def __post_init__(self) -> None:
        if not self.logical_id:
            raise ValueError("Resource logical id is required")


@dataclass
class Composition:
    """Ordered resource specs plus bindings, edges, parameters and outputs."""

    specs: Dict[str, ResourceSpec] = field(default_factory=dict)
    bindings: List[Binding] = field(default_factory=list)
    edges: Set[Tuple[str, str]] = field(default_factory=set)
    parameters: Dict[str, Parameter] = field(default_factory=dict)
    outputs: Dict[str, Output] = field(default_factory=dict)

    # Produced attributes, append-only: {logical_id: {attribute: value}}
    attributes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    parameter_values: Dict[str, Any] = field(default_factory=dict)

    def __contains__(self, logical_id: str) -> bool:
        return logical_id in self.specs

    def get(self, logical_id: str) -> Optional[ResourceSpec]:
        return self.specs.get(logical_id)

    @property
    def logical_ids(self) -> List[str]:
        return list(self.specs)

    def attribute(self, logical_id: str, name: str) -> Any:
        """Return a produced attribute; KeyError while not materialized."""
        return self.attributes[logical_id][name]

    def get_property(self, logical_id: str, path: PathLike) -> Any:
        """Read a (possibly still unresolved) property of a resource."""
        return get_path(self.specs[logical_id].properties, parse_path(path))
