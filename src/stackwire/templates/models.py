"""Resource template models.

Templates are named, read-only property mappings describing the default
shape of one resource. They outlive any single composition and are only
ever copied, never mutated.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class ResourceTemplate:
    """Named, immutable resource definition."""

    name: str  # e.g. "storage/s3/bucket-artifacts"
    properties: Mapping[str, Any] = field(default_factory=dict)
    resource_type: Optional[str] = None  # e.g. "AWS::S3::Bucket"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Template name is required")
        if not isinstance(self.properties, Mapping):
            raise ValueError(f"Template properties must be a mapping: {self.name}")
        # Keep our own copy so later mutation of the caller's dict cannot leak in
        object.__setattr__(self, "properties", MappingProxyType(deepcopy(dict(self.properties))))

    def copy_properties(self) -> Dict[str, Any]:
        """Return a deep, mutable copy of the template properties."""
        return deepcopy(dict(self.properties))


@runtime_checkable
class TemplateStore(Protocol):
    """Anything that can look templates up by name."""

    def get(self, name: str) -> Optional[ResourceTemplate]:
        ...


class InMemoryTemplateStore:
    """Template store backed by a dictionary."""

    def __init__(self, templates: Optional[List[ResourceTemplate]] = None) -> None:
        self._templates: Dict[str, ResourceTemplate] = {}
        for template in templates or []:
            self.add(template)

    def add(self, template: ResourceTemplate) -> None:
        self._templates[template.name] = template

    def get(self, name: str) -> Optional[ResourceTemplate]:
        return self._templates.get(name)

    def exists(self, name: str) -> bool:
        return name in self._templates

    def list(self) -> List[ResourceTemplate]:
        """List templates sorted by name."""
        return sorted(self._templates.values(), key=lambda t: t.name)

    def __len__(self) -> int:
        return len(self._templates)
