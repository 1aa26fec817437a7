"""Userscript header block parsing and typed metadata records."""

from userscripts.metadata.decoder import (
    MetadataDecoder,
    is_plugin_eligible,
    parse_header,
    render_header,
)
from userscripts.metadata.models import (
    Category,
    DefaultCategory,
    MainScriptMetadata,
    PluginMetadata,
    VersionProbe,
)

__all__ = [
    "MetadataDecoder",
    "parse_header",
    "render_header",
    "is_plugin_eligible",
    "Category",
    "DefaultCategory",
    "MainScriptMetadata",
    "PluginMetadata",
    "VersionProbe",
]
