"""Template loader for resource property files on disk.

Templates live in a resource directory tree, one resource per directory::

    res/
      storage/s3/bucket-artifacts/props.yaml
      compute/lambda/function-custom-resource/props.yaml
      compute/lambda/function-custom-resource/index.py

A template is addressed by its directory path relative to the root
(``storage/s3/bucket-artifacts``). Sibling files such as inline function
code or embedded documents are read with :meth:`DirectoryTemplateStore.load_asset`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml

from stackwire.core.errors import UnknownTemplateError

from .models import ResourceTemplate

logger = structlog.get_logger()

PROPS_FILENAME = "props.yaml"


class TemplateLoader:
    """Loads resource templates from YAML files."""

    @staticmethod
    def load_from_file(path: Path, name: Optional[str] = None) -> ResourceTemplate:
        """Load a single template from a YAML file.

        A file holding exactly ``Type`` and ``Properties`` keys is read as a
        typed template; any other mapping is taken as the property mapping
        itself.

        Args:
            path: Path to the YAML file
            name: Template name (defaults to the parent directory name)

        Returns:
            ResourceTemplate

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the YAML is empty or not a mapping
        """
        if not path.exists():
            raise FileNotFoundError(f"Template file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f)

        if data is None:
            raise ValueError(f"Empty template file: {path}")
        if not isinstance(data, dict):
            raise ValueError(f"Template must be a mapping: {path}")

        resource_type = None
        if set(data) == {"Type", "Properties"}:
            resource_type = data["Type"]
            data = data["Properties"] or {}

        return ResourceTemplate(
            name=name or path.parent.name,
            properties=data,
            resource_type=resource_type,
        )

    @staticmethod
    def load_directory(root: Path) -> Dict[str, ResourceTemplate]:
        """Load every ``props.yaml`` below ``root``, keyed by relative directory."""
        if not root.is_dir():
            raise FileNotFoundError(f"Template directory not found: {root}")

        templates: Dict[str, ResourceTemplate] = {}
        for props_file in sorted(root.rglob(PROPS_FILENAME)):
            name = props_file.parent.relative_to(root).as_posix()
            try:
                templates[name] = TemplateLoader.load_from_file(props_file, name=name)
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.warning("template_load_failed", template=name, error=str(e))
        return templates


class DirectoryTemplateStore:
    """Template store reading lazily from a resource directory tree.

    Templates are parsed on first access and cached; the cached
    ResourceTemplate is immutable so it can be shared across compositions.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self._cache: Dict[str, ResourceTemplate] = {}

    def _props_path(self, name: str) -> Path:
        return self.root / name / PROPS_FILENAME

    def get(self, name: str) -> Optional[ResourceTemplate]:
        if name in self._cache:
            return self._cache[name]
        path = self._props_path(name)
        if not path.is_file():
            return None
        template = TemplateLoader.load_from_file(path, name=name)
        self._cache[name] = template
        logger.debug("template_loaded", template=name)
        return template

    def exists(self, name: str) -> bool:
        return name in self._cache or self._props_path(name).is_file()

    def list(self) -> List[str]:
        """List template names available below the root."""
        if not self.root.is_dir():
            return []
        return sorted(
            p.parent.relative_to(self.root).as_posix() for p in self.root.rglob(PROPS_FILENAME)
        )

    def load_asset(self, name: str, filename: str) -> Any:
        """Read a sibling file of a template.

        YAML files are parsed; anything else is returned as text (inline
        function code, scripts).
        """
        if not self.exists(name):
            raise UnknownTemplateError(name)
        path = self.root / name / filename
        if not path.is_file():
            raise FileNotFoundError(f"Asset not found: {path}")
        text = path.read_text(encoding="utf-8")
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return text
