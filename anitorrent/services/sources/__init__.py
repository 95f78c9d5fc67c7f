"""Release sources and the registry that builds them from settings."""

from ...config import SearchSettings, logger
from ...models import SourceId
from .acgrip import AcgRipSource, load_site_config
from .aniliberty import AniLibertySource
from .animetosho import AnimeToshoSource
from .base import SourceAdapter, SourceError
from .nyaa import NyaaSource
from .rutracker import RuTrackerSource
from .seadex import SeaDexSource

# Registry of source ids to (settings flag, adapter class).
SOURCE_REGISTRY: dict[SourceId, tuple[str, type[SourceAdapter]]] = {
    SourceId.SEADEX: ("enable_seadex", SeaDexSource),
    SourceId.ANIMETOSHO: ("enable_animetosho", AnimeToshoSource),
    SourceId.NYAA: ("enable_nyaa", NyaaSource),
    SourceId.ACGRIP: ("enable_acgrip", AcgRipSource),
    SourceId.ANILIBERTY: ("enable_aniliberty", AniLibertySource),
    SourceId.RUTRACKER: ("enable_rutracker", RuTrackerSource),
}


def build_sources(
    settings: SearchSettings, only: set[SourceId] | None = None
) -> list[SourceAdapter]:
    """Instantiates every source enabled in ``settings``, in registry order."""
    sources: list[SourceAdapter] = []
    for source_id, (flag, adapter_cls) in SOURCE_REGISTRY.items():
        if only is not None and source_id not in only:
            continue
        if not getattr(settings, flag):
            continue
        sources.append(adapter_cls(settings))
    logger.debug(
        f"[SEARCH] Enabled sources: {', '.join(s.label for s in sources) or 'none'}"
    )
    return sources


__all__ = [
    "AcgRipSource",
    "AniLibertySource",
    "AnimeToshoSource",
    "NyaaSource",
    "RuTrackerSource",
    "SOURCE_REGISTRY",
    "SeaDexSource",
    "SourceAdapter",
    "SourceError",
    "build_sources",
    "load_site_config",
]
