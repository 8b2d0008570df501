"""Composition package: property resolution, bindings and the dependency graph."""

from stackwire.composition.bindings import (
    bind_attribute,
    bind_attributes,
    bind_parameters,
    ensure_resolved,
    nested_parameters,
    pending_bindings,
)
from stackwire.composition.composer import Composer, compose
from stackwire.composition.graph import (
    add_ordering_edge,
    all_edges,
    binding_edges,
    topological_check,
    topological_order,
)
from stackwire.composition.models import (
    Binding,
    Composition,
    Output,
    Parameter,
    ResourceDeclaration,
    ResourceSpec,
)
from stackwire.composition.render import render
from stackwire.composition.resolver import PropertyResolver, resolve
from stackwire.composition.values import (
    ACCOUNT_ID,
    REGION,
    STACK_NAME,
    AttributeRef,
    Join,
    ParameterRef,
    PseudoParameter,
)

__all__ = [
    "ACCOUNT_ID",
    "AttributeRef",
    "Binding",
    "Composer",
    "Composition",
    "Join",
    "Output",
    "Parameter",
    "ParameterRef",
    "PropertyResolver",
    "PseudoParameter",
    "REGION",
    "ResourceDeclaration",
    "ResourceSpec",
    "STACK_NAME",
    "add_ordering_edge",
    "all_edges",
    "bind_attribute",
    "bind_attributes",
    "bind_parameters",
    "binding_edges",
    "compose",
    "ensure_resolved",
    "nested_parameters",
    "pending_bindings",
    "render",
    "resolve",
    "topological_check",
    "topological_order",
]
