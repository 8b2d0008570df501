"""
Render a Composition into an orchestrator document.

The document follows the CloudFormation template layout::

    {"Parameters": {...}, "Resources": {id: {"Type", "Properties", "DependsOn"}}, "Outputs": {...}}

Placeholders become intrinsic functions so the orchestrator resolves them
at materialization time.
"""

from __future__ import annotations

import json
from typing import Any, Dict

import yaml

from stackwire.composition.models import Composition
from stackwire.composition.values import (
    REF_ATTRIBUTE,
    AttributeRef,
    Join,
    ParameterRef,
    PseudoParameter,
)

TEMPLATE_FORMAT_VERSION = "2010-09-09"
NESTED_STACK_TYPE = "AWS::CloudFormation::Stack"


def render_value(value: Any) -> Any:
    """Convert computed values to intrinsic function form."""
    if isinstance(value, AttributeRef):
        if value.attribute == REF_ATTRIBUTE:
            return {"Ref": value.producer_id}
        return {"Fn::GetAtt": [value.producer_id, value.attribute]}
    if isinstance(value, (ParameterRef, PseudoParameter)):
        return {"Ref": value.name}
    if isinstance(value, Join):
        return {"Fn::Join": [value.delimiter, [render_value(p) for p in value.parts]]}
    if isinstance(value, dict):
        return {k: render_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [render_value(item) for item in value]
    return value


def render(composition: Composition, description: str | None = None) -> Dict[str, Any]:
    """Build the orchestrator document for a composition.

    ``DependsOn`` lists explicit ordering edges only; binding-implied
    ordering is carried by the intrinsic functions themselves.
    """
    document: Dict[str, Any] = {"AWSTemplateFormatVersion": TEMPLATE_FORMAT_VERSION}
    if description:
        document["Description"] = description

    if composition.parameters:
        document["Parameters"] = {}
        for name, param in composition.parameters.items():
            entry: Dict[str, Any] = {"Type": param.type}
            if param.description:
                entry["Description"] = param.description
            if not param.required:
                entry["Default"] = param.default
            document["Parameters"][name] = entry

    resources: Dict[str, Any] = {}
    for logical_id, spec in composition.specs.items():
        entry = {
            "Type": spec.resource_type or (NESTED_STACK_TYPE if spec.nested else None),
            "Properties": render_value(spec.properties),
        }
        if entry["Type"] is None:
            del entry["Type"]
        predecessors = sorted(src for src, dst in composition.edges if dst == logical_id)
        if predecessors:
            entry["DependsOn"] = predecessors
        resources[logical_id] = entry
    document["Resources"] = resources

    if composition.outputs:
        document["Outputs"] = {}
        for name, output in composition.outputs.items():
            entry = {"Value": render_value(output.value)}
            if output.description:
                entry["Description"] = output.description
            document["Outputs"][name] = entry

    return document


def to_json(composition: Composition, indent: int = 2, description: str | None = None) -> str:
    return json.dumps(render(composition, description), indent=indent)


def to_yaml(composition: Composition, description: str | None = None) -> str:
    return yaml.safe_dump(render(composition, description), sort_keys=False)
