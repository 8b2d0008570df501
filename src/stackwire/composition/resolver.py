"""Property resolution: template + overrides + bindings -> ResourceSpec."""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Mapping, Optional, Sequence

import structlog

from stackwire.composition.models import Binding, BindingSpec, ResourceSpec
from stackwire.composition.paths import PathLike, Segment, format_path, parse_path, set_path
from stackwire.composition.values import AttributeRef
from stackwire.core.errors import InvalidPathError, UnknownTemplateError
from stackwire.templates.models import ResourceTemplate, TemplateStore

logger = structlog.get_logger()


def binding_triple(binding: BindingSpec) -> tuple[PathLike, str, str]:
    if isinstance(binding, Binding):
        return binding.path, binding.producer_id, binding.attribute
    path, producer_id, attribute = binding
    return path, producer_id, attribute


class PropertyResolver:
    """Builds ResourceSpecs from read-only templates.

    The template is copied before anything is written; the same inputs
    always produce structurally equal specs.
    """

    def __init__(self, store: Optional[TemplateStore] = None) -> None:
        self._store = store

    def lookup(self, name: str, logical_id: Optional[str] = None) -> ResourceTemplate:
        """Fetch a template from the store or raise UnknownTemplateError."""
        template = self._store.get(name) if self._store is not None else None
        if template is None:
            raise UnknownTemplateError(name, logical_id=logical_id)
        return template

    def resolve(
        self,
        template: ResourceTemplate,
        overrides: Optional[Mapping[PathLike, Any]] = None,
        bindings: Optional[Sequence[BindingSpec]] = None,
        logical_id: Optional[str] = None,
    ) -> ResourceSpec:
        """Resolve a template into a new ResourceSpec.

        Args:
            template: Source template (never mutated)
            overrides: property path -> literal or computed value
            bindings: (property path, producer id, attribute) triples; each
                path receives an unresolved AttributeRef placeholder
            logical_id: Id of the resulting spec (defaults to the template name)

        Returns:
            ResourceSpec

        Raises:
            InvalidPathError: If a path cannot exist given the template shape
        """
        logical_id = logical_id or template.name
        properties = template.copy_properties()

        for path, value in (overrides or {}).items():
            self._write(properties, path, deepcopy(value), logical_id)

        bound: list[tuple[Segment, ...]] = []
        for binding in bindings or []:
            path, producer_id, attribute = binding_triple(binding)
            segments = self._parse(path, logical_id)
            # A later binding would overwrite an earlier placeholder
            for other in bound:
                common = min(len(other), len(segments))
                if other[:common] == segments[:common]:
                    raise InvalidPathError(
                        format_path(segments),
                        f"overlaps the binding at '{format_path(other)}'",
                        logical_id=logical_id,
                    )
            bound.append(segments)
            self._write(properties, segments, AttributeRef(producer_id, attribute), logical_id)

        logger.debug(
            "resource_resolved",
            logical_id=logical_id,
            template=template.name,
            overrides=len(overrides or {}),
            bindings=len(bindings or []),
        )
        return ResourceSpec(
            logical_id=logical_id,
            properties=properties,
            resource_type=template.resource_type,
            template_name=template.name,
        )

    def resolve_named(
        self,
        name: str,
        overrides: Optional[Mapping[PathLike, Any]] = None,
        bindings: Optional[Sequence[BindingSpec]] = None,
        logical_id: Optional[str] = None,
    ) -> ResourceSpec:
        """Look a template up by name, then resolve it."""
        template = self.lookup(name, logical_id=logical_id)
        return self.resolve(template, overrides, bindings, logical_id=logical_id)

    @staticmethod
    def _parse(path: PathLike, logical_id: str) -> tuple[Segment, ...]:
        try:
            return parse_path(path)
        except InvalidPathError as e:
            raise InvalidPathError(e.path, e.reason, logical_id=logical_id) from e

    @staticmethod
    def _write(properties: dict[str, Any], path: PathLike, value: Any, logical_id: str) -> None:
        try:
            set_path(properties, parse_path(path), value)
        except InvalidPathError as e:
            raise InvalidPathError(e.path, e.reason, logical_id=logical_id) from e


def resolve(
    template: ResourceTemplate,
    overrides: Optional[Mapping[PathLike, Any]] = None,
    bindings: Optional[Sequence[BindingSpec]] = None,
    logical_id: Optional[str] = None,
) -> ResourceSpec:
    """Convenience function for one-shot resolution without a store."""
    return PropertyResolver().resolve(template, overrides, bindings, logical_id=logical_id)
