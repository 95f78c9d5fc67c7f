# anitorrent/config.py

import configparser
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any

# --- Constants ---
SWARM_SANITY_CEILING = 100_000
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_ANIMETOSHO_URL = "https://feed.animetosho.org/json"
LOG_SOURCE_RESULTS = False

TRUSTED_GROUPS = (
    "SubsPlease",
    "Erai-raws",
    "HorribleSubs",
    "AnimeKaizoku",
    "Aergia",
    "smol",
    "Vodes",
)

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass(frozen=True)
class SearchSettings:
    """
    Read-only preferences for one aggregation call.

    Every field has a documented default so a missing or partial preference
    store still produces a working configuration.
    """

    enable_seadex: bool = True
    enable_animetosho: bool = True
    enable_nyaa: bool = True
    enable_acgrip: bool = True
    enable_aniliberty: bool = True
    enable_rutracker: bool = False

    animetosho_url: str = DEFAULT_ANIMETOSHO_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    prefix_source_names: bool = True
    trusted_groups: tuple[str, ...] = TRUSTED_GROUPS

    auto_scrape_magnets: bool = True
    magnet_scrape_limit: int = 30
    scrapeable_page_hosts: tuple[str, ...] = ("nyaa.si",)

    probe_realdebrid: bool = False
    realdebrid_token: str = ""
    probe_limit: int = 10
    prefer_cached: bool = True

    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def cache_probe_enabled(self) -> bool:
        return self.probe_realdebrid and bool(self.realdebrid_token)


# Preference-store keys as exposed by the host, mapped to settings fields.
_PREFERENCE_KEYS: dict[str, str] = {
    "enableSeaDex": "enable_seadex",
    "enableAnimeTosho": "enable_animetosho",
    "enableNyaa": "enable_nyaa",
    "enableAcgRip": "enable_acgrip",
    "enableAniLiberty": "enable_aniliberty",
    "enableRuTracker": "enable_rutracker",
    "apiUrl": "animetosho_url",
    "requestTimeout": "request_timeout",
    "prefixSourceNames": "prefix_source_names",
    "autoScrapeMagnets": "auto_scrape_magnets",
    "magnetScrapeLimit": "magnet_scrape_limit",
    "probeRealDebrid": "probe_realdebrid",
    "realDebridToken": "realdebrid_token",
    "probeLimit": "probe_limit",
    "preferCached": "prefer_cached",
}

# INI layout: section -> {option: settings field}
_INI_LAYOUT: dict[str, dict[str, str]] = {
    "sources": {
        "seadex": "enable_seadex",
        "animetosho": "enable_animetosho",
        "nyaa": "enable_nyaa",
        "acgrip": "enable_acgrip",
        "aniliberty": "enable_aniliberty",
        "rutracker": "enable_rutracker",
        "animetosho_url": "animetosho_url",
    },
    "search": {
        "request_timeout": "request_timeout",
        "prefix_source_names": "prefix_source_names",
        "trusted_groups": "trusted_groups",
    },
    "magnets": {
        "auto_scrape": "auto_scrape_magnets",
        "scrape_limit": "magnet_scrape_limit",
        "scrapeable_page_hosts": "scrapeable_page_hosts",
    },
    "realdebrid": {
        "probe": "probe_realdebrid",
        "token": "realdebrid_token",
        "probe_limit": "probe_limit",
        "prefer_cached": "prefer_cached",
    },
}


def _bool_pref(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "on"}
    return default


def _int_pref(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float_pref(value: Any, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _str_pref(value: Any, default: str) -> str:
    if value is None:
        return default
    return str(value)


def _tuple_pref(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value]
    else:
        return default
    return tuple(item for item in items if item) or default


def _coerce(field_name: str, value: Any) -> Any:
    """Coerces a raw preference value to the type of ``field_name``."""
    default = _DEFAULTS[field_name]
    if isinstance(default, bool):
        return _bool_pref(value, default)
    if isinstance(default, int):
        return _int_pref(value, default)
    if isinstance(default, float):
        return _float_pref(value, default)
    if isinstance(default, tuple):
        return _tuple_pref(value, default)
    return _str_pref(value, default)


_DEFAULTS: dict[str, Any] = {
    f.name: getattr(SearchSettings(), f.name) for f in fields(SearchSettings)
}


def normalize_feed_url(url: str) -> str:
    """Ensures a scheme and strips the trailing slash from a feed URL."""
    url = url.strip() or DEFAULT_ANIMETOSHO_URL
    if url.endswith("/"):
        url = url[:-1]
    if not url.startswith("http"):
        url = "https://" + url
    return url


def settings_from_preferences(preferences: Mapping[str, Any]) -> SearchSettings:
    """
    Builds settings from a host preference store.

    Unknown keys are kept in ``extra``; values that cannot be coerced fall back
    to the documented default for that flag.
    """
    values: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for key, raw in preferences.items():
        field_name = _PREFERENCE_KEYS.get(key)
        if field_name is None:
            extra[key] = raw
            continue
        values[field_name] = _coerce(field_name, raw)

    if "animetosho_url" in values:
        values["animetosho_url"] = normalize_feed_url(values["animetosho_url"])
    return SearchSettings(**values, extra=extra)


def load_settings(config_path: str = "config.ini") -> SearchSettings:
    """
    Reads search settings from an INI file.

    A missing file is not an error: every flag has a default. A file that
    cannot be parsed raises ``ValueError`` so misconfiguration is not silently
    ignored.
    """
    if not os.path.exists(config_path):
        logger.info(
            f"[CONFIG] '{config_path}' not found. Using default search settings."
        )
        return SearchSettings()

    parser = configparser.ConfigParser()
    try:
        with open(config_path, encoding="utf-8") as f:
            parser.read_string(f.read())
    except configparser.Error as e:
        logger.critical(f"[CONFIG] Failed to parse '{config_path}': {e}")
        raise ValueError(f"Invalid configuration file '{config_path}': {e}") from e

    values: dict[str, Any] = {}
    for section, options in _INI_LAYOUT.items():
        if not parser.has_section(section):
            continue
        for option, field_name in options.items():
            raw = parser.get(section, option, fallback=None)
            if raw is None:
                continue
            values[field_name] = _coerce(field_name, raw)

    if "animetosho_url" in values:
        values["animetosho_url"] = normalize_feed_url(values["animetosho_url"])

    if values.get("probe_realdebrid") and not values.get("realdebrid_token"):
        logger.warning(
            "[CONFIG] Real-Debrid probing enabled without a token; probing stays off."
        )

    logger.info("[CONFIG] Search settings loaded successfully.")
    return SearchSettings(**values)
