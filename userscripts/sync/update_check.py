"""Conditional update check against a `.meta.js` probe."""

import logging
from typing import Optional

from userscripts.metadata.decoder import MetadataDecoder
from userscripts.metadata.models import VersionProbe
from userscripts.sync.transport import ScriptFetcher

logger = logging.getLogger(__name__)


async def has_update(fetcher: ScriptFetcher, probe_url: str, current_version: Optional[str]) -> bool:
    """Whether the probe declares a version different from ``current_version``.

    Best effort: an unknown current version always needs an install, and any
    failure while probing counts as "no update".

    Args:
        fetcher: Transport to fetch the probe with
        probe_url: URL of the `.meta.js` sidecar
        current_version: Installed version, None if never installed

    Returns:
        True if a full install should proceed
    """
    if current_version is None:
        return True

    try:
        content = await fetcher.fetch_text(probe_url)
        probe = MetadataDecoder().decode(VersionProbe, content)
    except Exception as e:
        logger.warning(f"[UpdateCheck] Unable to probe {probe_url}: {e}")
        return False

    if probe.version != current_version:
        logger.info(f"[UpdateCheck] {probe_url}: {current_version} -> {probe.version}")
        return True
    return False
