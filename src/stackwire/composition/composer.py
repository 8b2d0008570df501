"""Composition root: declarations in, finalized Composition out."""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from stackwire.composition.graph import add_ordering_edge, topological_check
from stackwire.composition.models import (
    Composition,
    Output,
    Parameter,
    ResourceDeclaration,
)
from stackwire.composition.paths import format_path, parse_path
from stackwire.composition.resolver import PropertyResolver, binding_triple
from stackwire.composition.values import AttributeRef, ParameterRef, iter_references
from stackwire.core.errors import DanglingBindingError, DuplicateLogicalIdError
from stackwire.templates.models import ResourceTemplate, TemplateStore

logger = structlog.get_logger()


class Composer:
    """Resolves every declaration, wires bindings and edges, checks for cycles.

    Fail-fast: the first error is raised and nothing is returned, so a
    partial composition can never reach the orchestrator.
    """

    def __init__(self, store: Optional[TemplateStore] = None) -> None:
        self._resolver = PropertyResolver(store)

    def compose(
        self,
        declarations: Sequence[ResourceDeclaration],
        parameters: Optional[Iterable[Parameter]] = None,
        outputs: Optional[Union[Iterable[Output], Mapping[str, Any]]] = None,
    ) -> Composition:
        composition = Composition()
        for param in parameters or []:
            composition.parameters[param.name] = param

        # Resolve in the order given
        for decl in declarations:
            if decl.logical_id in composition.specs:
                raise DuplicateLogicalIdError(decl.logical_id)
            template = self._template_for(decl)
            spec = self._resolver.resolve(
                template, decl.overrides, decl.bindings, logical_id=decl.logical_id
            )
            spec.nested = decl.nested
            composition.specs[spec.logical_id] = spec

        # Register bindings and explicit edges once every id is known
        for decl in declarations:
            for binding in decl.bindings:
                path, producer_id, _ = binding_triple(binding)
                if producer_id not in composition.specs:
                    raise DanglingBindingError(
                        f"{decl.logical_id}.{format_path(parse_path(path))} is bound to "
                        f"unknown resource {producer_id}",
                        logical_ids=[decl.logical_id, producer_id],
                    )

        for spec in composition.specs.values():
            for binding in spec.bindings():
                if binding.producer_id not in composition.specs:
                    raise DanglingBindingError(
                        f"{spec.logical_id}.{binding.path} references unknown resource "
                        f"{binding.producer_id}",
                        logical_ids=[spec.logical_id, binding.producer_id],
                    )
                composition.bindings.append(binding)
            self._check_parameters(composition, spec.logical_id, spec.properties)

        for decl in declarations:
            for predecessor in decl.depends_on:
                add_ordering_edge(composition, predecessor, decl.logical_id)

        for output in _outputs(outputs):
            self._check_output(composition, output)
            composition.outputs[output.name] = output

        for producer_id in _read_attributes(composition):
            composition.specs[producer_id].computed_after = True

        topological_check(composition)

        logger.info(
            "composition_built",
            resources=len(composition.specs),
            bindings=len(composition.bindings),
            edges=len(composition.edges),
        )
        return composition

    def _template_for(self, decl: ResourceDeclaration) -> ResourceTemplate:
        if isinstance(decl.template, ResourceTemplate):
            return decl.template
        return self._resolver.lookup(decl.template, logical_id=decl.logical_id)

    @staticmethod
    def _check_parameters(composition: Composition, logical_id: str, value: Any) -> None:
        for _, ref in iter_references(value):
            if isinstance(ref, ParameterRef) and ref.name not in composition.parameters:
                raise DanglingBindingError(
                    f"{logical_id} references undeclared parameter {ref.name}",
                    logical_ids=[logical_id],
                )

    @staticmethod
    def _check_output(composition: Composition, output: Output) -> None:
        for _, ref in iter_references(output.value):
            if isinstance(ref, AttributeRef) and ref.producer_id not in composition.specs:
                raise DanglingBindingError(
                    f"Output {output.name} references unknown resource {ref.producer_id}",
                    logical_ids=[ref.producer_id],
                )
            if isinstance(ref, ParameterRef) and ref.name not in composition.parameters:
                raise DanglingBindingError(
                    f"Output {output.name} references undeclared parameter {ref.name}",
                    logical_ids=[output.name],
                )


def _read_attributes(composition: Composition) -> set[str]:
    """Ids of resources whose attributes something in the composition reads."""
    producers = {b.producer_id for b in composition.bindings}
    for output in composition.outputs.values():
        producers.update(
            ref.producer_id for _, ref in iter_references(output.value) if isinstance(ref, AttributeRef)
        )
    return producers


def _outputs(outputs: Optional[Union[Iterable[Output], Mapping[str, Any]]]) -> List[Output]:
    if outputs is None:
        return []
    if isinstance(outputs, Mapping):
        return [Output(name=name, value=deepcopy(value)) for name, value in outputs.items()]
    return [Output(o.name, deepcopy(o.value), o.description) for o in outputs]


def compose(
    declarations: Sequence[ResourceDeclaration],
    parameters: Optional[Iterable[Parameter]] = None,
    outputs: Optional[Union[Iterable[Output], Mapping[str, Any]]] = None,
    store: Optional[TemplateStore] = None,
) -> Composition:
    """Build a finalized Composition from resource declarations."""
    return Composer(store).compose(declarations, parameters=parameters, outputs=outputs)
