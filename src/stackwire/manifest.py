"""
Composition manifest parsing.

A manifest lists the resources of one composition in YAML:

    description: Infrastructure CI-CD
    context:
      artifact_bucket_name: null
    parameters:
      IdeStackTemplateURL:
        type: String
        description: IDE stack template S3 URL
    resources:
      - id: Bucket
        template: storage/s3/bucket-artifacts
        unless: artifact_bucket_name
      - id: Repository
        template: developer-tools/codecommit/repository
        overrides:
          repositoryName: {Ref: AWS::StackName}
          code.s3.bucket: {Fn::Context: [artifact_bucket_name, {Ref: Bucket}]}
        dependsOn: [CustomResource]
    outputs:
      CodeCommitURL: {Fn::GetAtt: [Repository, CloneUrlHttp]}

Override values may use the intrinsic forms ``Ref``, ``Fn::GetAtt``,
``Fn::Join``, ``Fn::Asset`` (contents of a file next to the template),
``Fn::Context`` (a context value, optionally with a fallback) and
``Fn::Declared`` (whether a resource survived its condition).

Context values come from the manifest's ``context`` block, overridden by
the caller. A resource or output with ``when: key`` is kept only if that
context value is set; ``unless: key`` keeps it only if the value is unset.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import structlog
import yaml

from stackwire.composition.composer import Composer
from stackwire.composition.models import (
    NO_DEFAULT,
    Composition,
    Output,
    Parameter,
    ResourceDeclaration,
)
from stackwire.composition.values import (
    PSEUDO_PARAMETERS,
    REF_ATTRIBUTE,
    AttributeRef,
    Join,
    ParameterRef,
)
from stackwire.core.errors import ConfigurationError
from stackwire.templates.models import TemplateStore

logger = structlog.get_logger()


@dataclass
class Manifest:
    """Parsed composition manifest."""

    path: Optional[Path]
    description: str = ""
    parameters: List[Parameter] = field(default_factory=list)
    declarations: List[ResourceDeclaration] = field(default_factory=list)
    outputs: List[Output] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)

    def compose(self, store: Optional[TemplateStore] = None) -> Composition:
        return Composer(store).compose(
            self.declarations, parameters=self.parameters, outputs=self.outputs
        )


def _is_set(context: Mapping[str, Any], key: str) -> bool:
    value = context.get(key)
    return value is not None and value is not False and value != ""


def _included(raw: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    """Evaluate the when/unless condition of a manifest entry."""
    when = raw.get("when")
    unless = raw.get("unless")
    if when is not None and not _is_set(context, str(when)):
        return False
    if unless is not None and _is_set(context, str(unless)):
        return False
    return True


class _IntrinsicParser:
    def __init__(
        self,
        parameter_names: set[str],
        store: Optional[TemplateStore],
        context: Mapping[str, Any],
        declared: set[str],
    ) -> None:
        self.parameter_names = parameter_names
        self.store = store
        self.context = context
        self.declared = declared

    def parse(self, value: Any, template: Optional[str] = None) -> Any:
        if isinstance(value, dict) and len(value) == 1:
            key, arg = next(iter(value.items()))
            if key == "Ref":
                return self._ref(arg)
            if key == "Fn::GetAtt":
                return self._get_att(arg)
            if key == "Fn::Join":
                if not (isinstance(arg, list) and len(arg) == 2 and isinstance(arg[1], list)):
                    raise ConfigurationError(f"Fn::Join expects [delimiter, [parts]]: {arg!r}")
                return Join([self.parse(p, template) for p in arg[1]], str(arg[0]))
            if key == "Fn::Asset":
                return self._asset(template, arg)
            if key == "Fn::Context":
                return self._context(arg, template)
            if key == "Fn::Declared":
                return str(arg) in self.declared
        if isinstance(value, dict):
            return {k: self.parse(v, template) for k, v in value.items()}
        if isinstance(value, list):
            return [self.parse(item, template) for item in value]
        return value

    def _ref(self, name: Any) -> Any:
        if not isinstance(name, str):
            raise ConfigurationError(f"Ref expects a name: {name!r}")
        if name in PSEUDO_PARAMETERS:
            return PSEUDO_PARAMETERS[name]
        if name in self.parameter_names:
            return ParameterRef(name)
        return AttributeRef(name, REF_ATTRIBUTE)

    def _get_att(self, arg: Any) -> AttributeRef:
        if isinstance(arg, str) and "." in arg:
            arg = arg.split(".", 1)
        if not (isinstance(arg, list) and len(arg) == 2):
            raise ConfigurationError(f"Fn::GetAtt expects [logicalId, attribute]: {arg!r}")
        return AttributeRef(str(arg[0]), str(arg[1]))

    def _context(self, arg: Any, template: Optional[str]) -> Any:
        if isinstance(arg, list) and len(arg) == 2:
            name, fallback = str(arg[0]), arg[1]
            if _is_set(self.context, name):
                return self.context[name]
            return self.parse(fallback, template)
        if not isinstance(arg, str):
            raise ConfigurationError(f"Fn::Context expects a key or [key, fallback]: {arg!r}")
        if not _is_set(self.context, arg):
            raise ConfigurationError(f"Missing context value: {arg}", {"context": arg})
        return self.context[arg]

    def _asset(self, template: Optional[str], filename: Any) -> Any:
        load_asset = getattr(self.store, "load_asset", None)
        if template is None or load_asset is None:
            raise ConfigurationError("Fn::Asset requires a directory template store")
        return load_asset(template, str(filename))


def _parse_binding(raw: Any, logical_id: str) -> tuple[str, str, str]:
    if not isinstance(raw, dict) or "path" not in raw or "from" not in raw:
        raise ConfigurationError(
            f"Binding of {logical_id} needs 'path' and 'from': {raw!r}",
            {"logical_id": logical_id},
        )
    source = str(raw["from"])
    if "." not in source:
        raise ConfigurationError(
            f"Binding source must be <logicalId>.<attribute>: {source}",
            {"logical_id": logical_id},
        )
    producer_id, attribute = source.split(".", 1)
    return str(raw["path"]), producer_id, attribute


def parse_manifest(
    data: Dict[str, Any],
    store: Optional[TemplateStore] = None,
    path: Optional[Path] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> Manifest:
    """Turn raw manifest data into declarations.

    ``context`` overrides the manifest's own ``context`` defaults.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Manifest must be a mapping")

    defaults = data.get("context") or {}
    if not isinstance(defaults, dict):
        raise ConfigurationError("Manifest context must be a mapping")
    effective_context = {**defaults, **(context or {})}

    parameters = []
    for name, raw in (data.get("parameters") or {}).items():
        raw = raw or {}
        parameters.append(
            Parameter(
                name=name,
                type=raw.get("type", "String"),
                description=raw.get("description", ""),
                default=raw.get("default", NO_DEFAULT),
            )
        )

    resources = []
    for raw in data.get("resources") or []:
        if not isinstance(raw, dict) or "id" not in raw or "template" not in raw:
            raise ConfigurationError(f"Resource entries need 'id' and 'template': {raw!r}")
        if not _included(raw, effective_context):
            logger.info(
                "resource_excluded",
                logical_id=str(raw["id"]),
                when=raw.get("when"),
                unless=raw.get("unless"),
            )
            continue
        resources.append(raw)

    intrinsics = _IntrinsicParser(
        {p.name for p in parameters},
        store,
        effective_context,
        {str(raw["id"]) for raw in resources},
    )

    declarations = []
    for raw in resources:
        logical_id = str(raw["id"])
        template = str(raw["template"])
        overrides = {
            str(k): intrinsics.parse(v, template) for k, v in (raw.get("overrides") or {}).items()
        }
        declarations.append(
            ResourceDeclaration(
                logical_id=logical_id,
                template=template,
                overrides=overrides,
                bindings=[_parse_binding(b, logical_id) for b in raw.get("bindings") or []],
                depends_on=[str(d) for d in raw.get("dependsOn") or []],
                nested=bool(raw.get("nested", False)),
            )
        )

    outputs = []
    for name, raw in (data.get("outputs") or {}).items():
        if isinstance(raw, dict) and "value" in raw:
            if _included(raw, effective_context):
                outputs.append(Output(name, intrinsics.parse(raw["value"]), raw.get("description", "")))
        else:
            outputs.append(Output(name, intrinsics.parse(raw)))

    return Manifest(
        path=path,
        description=data.get("description", ""),
        parameters=parameters,
        declarations=declarations,
        outputs=outputs,
        context=effective_context,
    )


def load_manifest(
    path: Path | str,
    store: Optional[TemplateStore] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> Manifest:
    """Load a manifest YAML file.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Manifest not found: {path}", {"path": str(path)})
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid manifest YAML: {e}", {"path": str(path)}) from e

    manifest = parse_manifest(data or {}, store=store, path=path, context=context)
    logger.debug("manifest_loaded", path=str(path), resources=len(manifest.declarations))
    return manifest
