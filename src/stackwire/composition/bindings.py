"""
Binding resolution.

Once the orchestrator materializes a resource and reports its attributes,
every placeholder referencing them is replaced with the real value.
Placeholders with no produced value stay pending and surface as
DanglingBindingError when the composition is finalized; they are never
dropped.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

import structlog

from stackwire.composition.models import Binding, Composition
from stackwire.composition.values import (
    AttributeRef,
    ParameterRef,
    Reference,
    iter_references,
    substitute,
)
from stackwire.core.errors import AttributeConflictError, DanglingBindingError

logger = structlog.get_logger()

_MISSING = object()


def _replace_everywhere(composition: Composition, replace) -> None:
    # Substitute everything first so a rejected value leaves nothing half-bound
    properties = {i: substitute(s.properties, replace) for i, s in composition.specs.items()}
    values = {n: substitute(o.value, replace) for n, o in composition.outputs.items()}
    for logical_id, spec in composition.specs.items():
        spec.properties = properties[logical_id]
    for name, output in composition.outputs.items():
        output.value = values[name]


def bind_attribute(composition: Composition, producer_id: str, attribute_name: str, value: Any) -> int:
    """Publish a produced attribute and fill every placeholder waiting on it.

    Returns:
        Number of placeholders replaced

    Raises:
        DanglingBindingError: If ``producer_id`` is not part of the composition
        AttributeConflictError: If the attribute was already published with
            a different value
        InvalidValueError: If the value cannot be joined into a string
    """
    return bind_attributes(composition, producer_id, {attribute_name: value})


def bind_attributes(composition: Composition, producer_id: str, attributes: Mapping[str, Any]) -> int:
    """Publish every attribute reported for one materialized resource.

    Either every attribute is published and substituted, or none is.
    """
    if producer_id not in composition.specs:
        raise DanglingBindingError(
            f"Cannot bind attribute of unknown resource: {producer_id}", logical_ids=[producer_id]
        )

    produced = composition.attributes.get(producer_id, {})
    for name, value in attributes.items():
        existing = produced.get(name, _MISSING)
        if existing is not _MISSING and existing != value:
            raise AttributeConflictError(producer_id, name)

    replaced = 0

    def replace(ref: Reference) -> Any:
        nonlocal replaced
        if isinstance(ref, AttributeRef) and ref.producer_id == producer_id and ref.attribute in attributes:
            replaced += 1
            return attributes[ref.attribute]
        return ref

    _replace_everywhere(composition, replace)
    # Publish as a whole new mapping so readers never see a half-updated one
    composition.attributes[producer_id] = {**produced, **attributes}
    logger.debug(
        "attribute_bound",
        logical_id=producer_id,
        attributes=sorted(attributes),
        placeholders=replaced,
    )
    return replaced


def pending_bindings(composition: Composition) -> List[Binding]:
    """Bindings whose placeholders have not been filled yet."""
    pending: List[Binding] = []
    for spec in composition.specs.values():
        pending.extend(spec.bindings())
    return pending


def ensure_resolved(composition: Composition) -> None:
    """Finalization check: fail if any binding is still pending."""
    pending = pending_bindings(composition)
    if not pending:
        return
    ids = sorted({b.consumer_id for b in pending} | {b.producer_id for b in pending})
    detail = ", ".join(f"{b.consumer_id}.{b.path} <- {b.producer_id}.{b.attribute}" for b in pending)
    raise DanglingBindingError(f"Unresolved bindings: {detail}", logical_ids=ids)


def bind_parameters(composition: Composition, values: Mapping[str, Any]) -> Dict[str, Any]:
    """Resolve deploy-time parameter placeholders.

    Declared defaults apply to parameters missing from ``values``.

    Returns:
        The effective parameter values

    Raises:
        DanglingBindingError: If a required parameter has no value or an
            unknown parameter is supplied
    """
    unknown = sorted(set(values) - set(composition.parameters))
    if unknown:
        raise DanglingBindingError(f"Unknown parameter(s): {', '.join(unknown)}", logical_ids=unknown)

    effective: Dict[str, Any] = {}
    for name, param in composition.parameters.items():
        if name in values:
            effective[name] = values[name]
        elif not param.required:
            effective[name] = param.default
        else:
            raise DanglingBindingError(f"Missing value for parameter: {name}", logical_ids=[name])

    def replace(ref: Reference) -> Any:
        if isinstance(ref, ParameterRef) and ref.name in effective:
            return effective[ref.name]
        return ref

    _replace_everywhere(composition, replace)
    composition.parameter_values.update(effective)
    logger.debug("parameters_bound", parameters=sorted(effective))
    return effective


def nested_parameters(composition: Composition, logical_id: str) -> Dict[str, Any]:
    """Parameter values to hand to a nested composition.

    Raises:
        DanglingBindingError: If the resource is unknown, not nested, or any
            of its parameters is still waiting on a parent attribute
    """
    spec = composition.specs.get(logical_id)
    if spec is None or not spec.nested:
        raise DanglingBindingError(f"Not a nested composition: {logical_id}", logical_ids=[logical_id])

    params = spec.properties.get("parameters") or {}
    waiting = sorted(
        {
            ref.producer_id if isinstance(ref, AttributeRef) else f"param:{ref.name}"
            for _, ref in iter_references(params)
            if isinstance(ref, (AttributeRef, ParameterRef))
        }
    )
    if waiting:
        raise DanglingBindingError(
            f"Nested composition {logical_id} is waiting on: {', '.join(waiting)}",
            logical_ids=[logical_id, *waiting],
        )
    return dict(params)
