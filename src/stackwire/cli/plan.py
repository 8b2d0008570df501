"""
CLI command for planning a composition (dry-run).

Shows resources in creation order with their bindings and explicit
ordering edges, without handing anything to an orchestrator.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from stackwire.cli.render import parse_key_values
from stackwire.cli.ux import console, header, print_table, success, warning
from stackwire.composition.graph import topological_order
from stackwire.composition.models import Composition
from stackwire.config import get_settings
from stackwire.core.errors import main_with_error_handling
from stackwire.manifest import load_manifest
from stackwire.templates.loader import DirectoryTemplateStore


def build_plan(composition: Composition) -> List[Dict[str, Any]]:
    """Summarize each resource in creation order."""
    plan = []
    for logical_id in topological_order(composition):
        spec = composition.specs[logical_id]
        plan.append(
            {
                "logical_id": logical_id,
                "template": spec.template_name,
                "type": spec.resource_type,
                "nested": spec.nested,
                "computed_after": spec.computed_after,
                "depends_on": sorted(spec.depends_on),
                "bindings": [
                    f"{b.path} <- {b.producer_id}.{b.attribute}"
                    for b in composition.bindings
                    if b.consumer_id == logical_id
                ],
            }
        )
    return plan


def print_plan(manifest_name: str, plan: List[Dict[str, Any]]) -> None:
    header(f"Plan: {manifest_name}")
    if not plan:
        warning("No resources declared")
        return

    rows = [
        [
            str(step),
            item["logical_id"],
            item["template"] or "",
            ", ".join(item["depends_on"]),
            "\n".join(item["bindings"]),
        ]
        for step, item in enumerate(plan, 1)
    ]
    print_table("Creation order", ["#", "Resource", "Template", "Depends on", "Bindings"], rows)
    console.print()
    success(f"{len(plan)} resources, acyclic")


@main_with_error_handling()
def plan_command(
    manifest_path: str,
    templates_dir: Optional[str] = None,
    output_format: str = "text",
    context: Optional[List[str]] = None,
) -> int:
    """Compose the manifest and print the resulting plan."""
    store = DirectoryTemplateStore(templates_dir or get_settings().templates_dir)
    manifest = load_manifest(manifest_path, store=store, context=parse_key_values(context, "Context"))
    composition = manifest.compose(store)
    plan = build_plan(composition)

    if output_format == "json":
        print(json.dumps({"manifest": manifest_path, "resources": plan}, indent=2))
    else:
        print_plan(Path(manifest_path).name, plan)
    return 0
