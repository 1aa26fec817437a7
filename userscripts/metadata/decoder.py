"""Userscript metadata decoder - parses the `// ==UserScript==` header block."""

import logging
import re
from typing import Dict, Mapping, Protocol, Type, TypeVar

from userscripts.errors import MetadataSyntaxError, SyntaxPart

logger = logging.getLogger(__name__)

BLOCK_PREFIX = "// ==UserScript=="
BLOCK_SUFFIX = "// ==/UserScript=="

# Whole-line match on a trimmed line: `// @key value`
_LINE_PATTERN = re.compile(r"// *@(.+?) +(.+?) *")


class ItemsProjection(Protocol):
    @classmethod
    def from_items(cls, items: Mapping[str, str]): ...


T = TypeVar("T", bound=ItemsProjection)


def parse_header(content: str) -> Dict[str, str]:
    """Parse the header block of a userscript into a key -> value map.

    Args:
        content: Raw script text

    Returns:
        Header items; a repeated key keeps its last value

    Raises:
        MetadataSyntaxError: opening marker missing, closing marker missing
            after the opening one, or a malformed line between them
    """
    opening = content.find(BLOCK_PREFIX)
    if opening < 0:
        raise MetadataSyntaxError(SyntaxPart.OPENING)
    start = opening + len(BLOCK_PREFIX)

    end = content.find(BLOCK_SUFFIX, start)
    if end < 0:
        raise MetadataSyntaxError(SyntaxPart.CLOSING)

    items: Dict[str, str] = {}
    for line in content[start:end].splitlines():
        trimmed = line.strip()
        if not trimmed:
            continue
        match = _LINE_PATTERN.fullmatch(trimmed)
        if match is None:
            raise MetadataSyntaxError(SyntaxPart.CONFIGURATION, line)
        key, value = match.group(1), match.group(2)
        items[key] = value

    logger.debug(f"Parsed {len(items)} metadata item(s)")
    return items


def render_header(items: Mapping[str, str]) -> str:
    """Render items back into a well-formed header block."""
    width = max((len(key) for key in items), default=0)
    lines = [BLOCK_PREFIX]
    lines.extend(f"// @{key.ljust(width)} {value}" for key, value in items.items())
    lines.append(BLOCK_SUFFIX)
    return "\n".join(lines) + "\n"


def is_plugin_eligible(items: Mapping[str, str]) -> bool:
    """Whether a parsed header may become a catalog entry."""
    return "id" in items and "category" in items


def has_script_body(content: str) -> bool:
    """Whether any code follows the closing marker of the header block."""
    opening = content.find(BLOCK_PREFIX)
    if opening < 0:
        return False
    end = content.find(BLOCK_SUFFIX, opening + len(BLOCK_PREFIX))
    if end < 0:
        return False
    return bool(content[end + len(BLOCK_SUFFIX):].strip())


class MetadataDecoder:
    """Decodes header blocks into typed metadata records."""

    def decode(self, record_type: Type[T], content: str) -> T:
        """Parse ``content`` and project it into ``record_type``.

        Args:
            record_type: MainScriptMetadata, PluginMetadata or VersionProbe
            content: Raw script text

        Returns:
            The projected record
        """
        return record_type.from_items(parse_header(content))

    def decode_script(self, record_type: Type[T], content: str) -> T:
        """Like :meth:`decode`, for a full script about to be installed.

        Raises:
            MetadataSyntaxError: with part BODY when only the header block
                is present, as served by a `.meta.js` endpoint
        """
        record = self.decode(record_type, content)
        if not has_script_body(content):
            raise MetadataSyntaxError(SyntaxPart.BODY)
        return record
