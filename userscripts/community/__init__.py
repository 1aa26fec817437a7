"""Community plugin index client."""

from userscripts.community.index import (
    CommunityIndex,
    PluginPreview,
    Sorting,
    filter_previews,
    sort_previews,
)

__all__ = [
    "CommunityIndex",
    "PluginPreview",
    "Sorting",
    "filter_previews",
    "sort_previews",
]
