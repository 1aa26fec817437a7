"""Update targets and remote URL layout."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlsplit, urlunsplit

from userscripts.config import BuildChannel
from userscripts.constants import (
    MAIN_SCRIPT_FILENAME,
    SCRIPT_METADATA_SUFFIX,
    USER_SCRIPT_SUFFIX,
)


@dataclass(frozen=True)
class MainScriptTarget:
    current_version: Optional[str] = None

    @property
    def label(self) -> str:
        return "main script"


@dataclass(frozen=True)
class InternalPluginTarget:
    filename: str
    current_version: Optional[str] = None

    @property
    def label(self) -> str:
        return f"internal:{self.filename}"


@dataclass(frozen=True)
class ExternalPluginTarget:
    identifier: str
    download_url: str
    destination_path: Path
    current_version: Optional[str] = None
    update_url: Optional[str] = None

    @property
    def label(self) -> str:
        return f"external:{self.identifier}"


UpdateTarget = Union[MainScriptTarget, InternalPluginTarget, ExternalPluginTarget]


class BuildLayout:
    """URLs of the distribution site for one build channel.

    {base}/{channel}/total-conversion-build.user.js
    {base}/{channel}/plugins/{filename}.user.js
    (probes use the `.meta.js` suffix)
    """

    def __init__(self, base_url: str, channel: BuildChannel):
        self.base_url = base_url.rstrip("/")
        self.channel = channel

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url, self.channel.value, *parts])

    @property
    def main_script_url(self) -> str:
        return self._url(MAIN_SCRIPT_FILENAME + USER_SCRIPT_SUFFIX)

    @property
    def main_script_probe_url(self) -> str:
        return self._url(MAIN_SCRIPT_FILENAME + SCRIPT_METADATA_SUFFIX)

    def plugin_url(self, filename: str) -> str:
        return self._url("plugins", filename + USER_SCRIPT_SUFFIX)

    def plugin_probe_url(self, filename: str) -> str:
        return self._url("plugins", filename + SCRIPT_METADATA_SUFFIX)


def content_url_for(download_url: Optional[str], update_url: Optional[str]) -> Optional[str]:
    """URL of the full script for an external plugin.

    ``downloadURL`` when declared. Otherwise the `.user.js` sibling of a
    `.meta.js` ``updateURL``, the same pairing the build site uses. None when
    neither yields a script URL; the metadata URL itself serves only the
    header block and must never be installed.
    """
    if download_url:
        return download_url
    if not update_url:
        return None
    parts = urlsplit(update_url)
    if not parts.path.endswith(SCRIPT_METADATA_SUFFIX):
        return None
    path = parts.path[: -len(SCRIPT_METADATA_SUFFIX)] + USER_SCRIPT_SUFFIX
    return urlunsplit(parts._replace(path=path))
