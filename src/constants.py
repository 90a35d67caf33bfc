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
    RESOLUTION_ERROR = 1
    CONNECTION_ERROR = 2
    VALIDATION_ERROR = 3
    DISCOVERY_ERROR = 4
    WRITE_ERROR = 5
    INTERRUPTED = 130


class PinStyles(Enum):
    """Surface syntax used when writing a fresh requirement string.

    Args:
        Enum (string): Pinning styles supported by the program.
    """

    CARET = "caret"
    TILDE = "tilde"
    EXACT = "exact"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    MANIFEST_FILE = "Cargo.toml"
    VCS_MARKERS = [".git", ".hg", ".jj"]
    DEPENDENCY_TABLES = ["dependencies", "dev-dependencies", "build-dependencies"]

    REGISTRY_INDEX_URL = "https://index.crates.io/"
    REGISTRY_CACHE_DIR = os.path.join(
        os.environ.get("XDG_CACHE_HOME") or os.path.join(os.path.expanduser("~"), ".cache"),
        "crate-edit",
        "index",
    )
    REGISTRY_CACHE_TTL_SEC = 1800
    REGISTRY_MAX_CONCURRENCY = 8
    REGISTRY_OFFLINE = False
    FUZZY_NAME_MAX_VARIANTS = 16

    PIN_STYLE = PinStyles.CARET.value
    PRERELEASE_FOLLOWS_REQUIREMENT = True
    RESPECT_RUST_VERSION = True

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    USER_AGENT = "crate-edit/0.4.0 (+https://github.com/crate-edit/crate-edit)"

    CONFIG_ENV_VAR = "CRATE_EDIT_CONFIG"
    DEFAULT_CONFIG_PATHS = [
        "crate-edit.yml",
        "crate-edit.yaml",
        os.path.join("~", ".config", "crate-edit", "config.yml"),
        os.path.join("~", ".config", "crate-edit", "config.yaml"),
    ]


# Maps YAML config keys and CRATE_EDIT_* environment variables onto Constants.
_CONFIG_KEYS = {
    "registry.index_url": ("REGISTRY_INDEX_URL", str),
    "registry.cache_dir": ("REGISTRY_CACHE_DIR", str),
    "registry.cache_ttl": ("REGISTRY_CACHE_TTL_SEC", int),
    "registry.max_concurrency": ("REGISTRY_MAX_CONCURRENCY", int),
    "registry.offline": ("REGISTRY_OFFLINE", bool),
    "http.timeout": ("REQUEST_TIMEOUT", int),
    "http.retries": ("HTTP_RETRY_MAX", int),
    "resolver.pin_style": ("PIN_STYLE", str),
    "resolver.prerelease_follows_requirement": ("PRERELEASE_FOLLOWS_REQUIREMENT", bool),
    "resolver.respect_rust_version": ("RESPECT_RUST_VERSION", bool),
}


def _coerce(value: Any, kind: type) -> Any:
    """Convert a config/env value to the type of the constant it overrides."""
    if kind is bool:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")
    if kind is str and isinstance(value, str):
        return os.path.expanduser(value) if value.startswith("~") else value
    return kind(value)


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, dotted + "."))
        else:
            flat[dotted] = value
    return flat


def _find_config_path(explicit: Optional[str] = None) -> Optional[str]:
    """Return the first existing config file in precedence order."""
    candidates = []
    if explicit:
        candidates.append(explicit)
    env_path = os.environ.get(Constants.CONFIG_ENV_VAR)
    if env_path:
        candidates.append(env_path)
    candidates.extend(Constants.DEFAULT_CONFIG_PATHS)
    for candidate in candidates:
        path = os.path.expanduser(candidate)
        if os.path.isfile(path):
            return path
    return None


def _load_yaml_config(explicit: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML config file, returning an empty dict when none exists.

    An unreadable file is logged and ignored so a broken config never blocks
    manifest edits.
    """
    path = _find_config_path(explicit)
    if path is None:
        return {}
    import yaml  # pylint: disable=import-outside-toplevel

    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except OSError as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}
    except yaml.YAMLError as exc:
        logger.warning("Ignoring invalid config file %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level must be a mapping", path)
        return {}
    logger.debug("Loaded config from %s", path)
    return data


def apply_config(explicit: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> None:
    """Apply YAML config, then CRATE_EDIT_* environment overrides, onto Constants."""
    flat = _flatten(_load_yaml_config(explicit))
    for dotted, (attr, kind) in _CONFIG_KEYS.items():
        if dotted in flat and flat[dotted] is not None:
            try:
                setattr(Constants, attr, _coerce(flat[dotted], kind))
            except (TypeError, ValueError):
                logger.warning("Invalid value for config key %s: %r", dotted, flat[dotted])

    env = os.environ if environ is None else environ
    for dotted, (attr, kind) in _CONFIG_KEYS.items():
        env_name = "CRATE_EDIT_" + dotted.upper().replace(".", "_")
        if env_name in env:
            try:
                setattr(Constants, attr, _coerce(env[env_name], kind))
            except (TypeError, ValueError):
                logger.warning("Invalid value for %s: %r", env_name, env[env_name])
