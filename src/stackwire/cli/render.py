"""
CLI command for rendering a composition into an orchestrator document.
"""

from pathlib import Path
from typing import List, Optional

from stackwire.cli.ux import success
from stackwire.composition.bindings import bind_parameters
from stackwire.composition.render import to_json, to_yaml
from stackwire.config import get_settings
from stackwire.core.errors import ConfigurationError, main_with_error_handling
from stackwire.manifest import load_manifest
from stackwire.templates.loader import DirectoryTemplateStore


def parse_key_values(pairs: Optional[List[str]], kind: str = "Parameter") -> dict[str, str]:
    """Parse ``Key=Value`` pairs from the command line."""
    values: dict[str, str] = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ConfigurationError(f"{kind} override must be Key=Value: {pair}")
        key, value = pair.split("=", 1)
        values[key.strip()] = value
    return values


@main_with_error_handling()
def render_command(
    manifest_path: str,
    templates_dir: Optional[str] = None,
    output_format: str = "json",
    output_file: Optional[str] = None,
    parameters: Optional[List[str]] = None,
    context: Optional[List[str]] = None,
) -> int:
    """Compose the manifest and write the orchestrator document."""
    store = DirectoryTemplateStore(templates_dir or get_settings().templates_dir)
    manifest = load_manifest(manifest_path, store=store, context=parse_key_values(context, "Context"))
    composition = manifest.compose(store)

    values = parse_key_values(parameters)
    if values:
        bind_parameters(composition, values)

    description = manifest.description or None
    if output_format == "yaml":
        document = to_yaml(composition, description=description)
    else:
        document = to_json(composition, description=description)
    if output_file:
        Path(output_file).write_text(document)
        success(f"Wrote {output_file}")
    else:
        print(document)
    return 0
