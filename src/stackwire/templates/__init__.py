"""Template store: named, read-only resource definitions."""

from stackwire.templates.loader import DirectoryTemplateStore, TemplateLoader
from stackwire.templates.models import InMemoryTemplateStore, ResourceTemplate, TemplateStore

__all__ = [
    "DirectoryTemplateStore",
    "InMemoryTemplateStore",
    "ResourceTemplate",
    "TemplateLoader",
    "TemplateStore",
]
