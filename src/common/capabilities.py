"""Detection of optional engine capabilities.

Only one capability matters today: the ``analysis-phonetic`` plugin.  The
index schema adds ``*.phonetic`` sub-fields when it is installed, and the
query builders add matching clauses only when those fields exist.
"""

from __future__ import annotations

import asyncio
import logging

from src.common.engine import EngineError, SearchEngine

logger = logging.getLogger(__name__)

PHONETIC_PLUGIN = "analysis-phonetic"


async def detect_phonetic_plugin(engine: SearchEngine) -> bool:
    """Return ``True`` when any node has the phonetic analysis plugin.

    Probe failures are logged and reported as "unavailable".
    """
    try:
        plugins = await engine.plugin_names()
    except EngineError as exc:
        logger.warning("Could not check for phonetic plugin: %s", exc)
        return False
    available = PHONETIC_PLUGIN in plugins
    logger.info("Phonetic plugin available: %s", available)
    return available


class EngineCapabilities:
    """Process-wide memo of capability probes.

    Created once per serving process and shared by the suggestion and search
    components; the probe runs on first use and is never repeated.
    """

    def __init__(self, engine: SearchEngine, phonetic: bool | None = None) -> None:
        self._engine = engine
        self._phonetic = phonetic
        self._lock = asyncio.Lock()

    async def phonetic(self) -> bool:
        if self._phonetic is None:
            async with self._lock:
                if self._phonetic is None:
                    self._phonetic = await detect_phonetic_plugin(self._engine)
        return self._phonetic
