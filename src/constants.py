"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_CONFLICTS = 3


class SourceKinds(Enum):
    """Where a module declaration is fetched from.

    Args:
        Enum (string): Source kinds supported by the program.
    """

    REGISTRY = "registry"
    VCS = "vcs"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    FORGE_BASE_URL = "https://forgeapi.puppet.com"
    FORGE_API_VERSION = "v3"
    FORGE_RELEASE_LIMIT = 100
    USER_AGENT = "puppetfile-depgraph/0.1"
    PUPPETFILE = "Puppetfile"
    MANIFEST_ORIGIN = "Puppetfile"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    VIEWS = ["tree", "list", "conflicts", "upgrade"]

    REQUEST_TIMEOUT = 10  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300
    HTTP_CACHE_MAX_ENTRIES = 2000
    MODULE_CACHE_TTL_SEC = 600

    MAX_DEPTH = 5
    RESOLVE_CONCURRENCY = 1
    FETCH_CONCURRENCY = 5

    GIT_DEFAULT_REF = "main"
    GIT_FALLBACK_REFS = ["master", "develop", "HEAD"]
    GIT_METADATA_FILE = "metadata.json"


# Config keys accepted from YAML, mapped onto Constants attributes.
_CONFIG_KEYS: Dict[str, Dict[str, str]] = {
    "forge": {
        "base_url": "FORGE_BASE_URL",
        "timeout": "REQUEST_TIMEOUT",
        "release_limit": "FORGE_RELEASE_LIMIT",
    },
    "http": {
        "retry_max": "HTTP_RETRY_MAX",
        "retry_base_delay": "HTTP_RETRY_BASE_DELAY_SEC",
        "cache_ttl": "HTTP_CACHE_TTL_SEC",
    },
    "resolution": {
        "max_depth": "MAX_DEPTH",
        "concurrency": "RESOLVE_CONCURRENCY",
        "fetch_concurrency": "FETCH_CONCURRENCY",
    },
}


def _apply_config(data: Dict[str, Any]) -> None:
    """Overlay a parsed config mapping onto Constants."""
    for section, values in data.items():
        mapping = _CONFIG_KEYS.get(section)
        if mapping is None or not isinstance(values, dict):
            logger.warning("Ignoring unknown config section: %s", section)
            continue
        for key, value in values.items():
            attr = mapping.get(key)
            if attr is None:
                logger.warning("Ignoring unknown config key: %s.%s", section, key)
                continue
            current = getattr(Constants, attr)
            try:
                # Keep the declared type of the default
                setattr(Constants, attr, type(current)(value))
            except (TypeError, ValueError):
                logger.warning("Invalid value for %s.%s: %r", section, key, value)


def load_config(path: Optional[str]) -> bool:
    """Load a YAML config file and apply it onto Constants.

    Args:
        path: Path to a YAML (or JSON, which YAML accepts) config file.

    Returns:
        bool: True if a config mapping was applied.
    """
    if not path:
        return False
    if not os.path.isfile(path):
        logger.warning("Config file not found: %s", path)
        return False

    import yaml  # pylint: disable=import-outside-toplevel

    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config %s: %s", path, e)
        return False
    if not isinstance(data, dict):
        logger.warning("Config file %s does not contain a mapping", path)
        return False
    _apply_config(data)
    return True
