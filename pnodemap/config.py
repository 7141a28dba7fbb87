"""YAML configuration file loading, with an environment override for the RPC URL."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".pnodemap"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_RPC_URL = "https://api.devnet.xandeum.com:8899"
RPC_URL_ENV_VAR = "PNODEMAP_RPC_URL"

# Applies to every outbound request (roster RPC and geo lookups).
REQUEST_TIMEOUT_SECONDS = 5.0


@dataclass
class PnodemapConfig:
    """Top-level configuration for pnodemap.

    Everything has a default, so the tool runs against the public devnet
    RPC and the ip-api.com geo service without a config file.

    Attributes:
        rpc_url: JSON-RPC endpoint that answers ``getClusterNodes``.
        maxmind_city_db: Path to GeoLite2-City.mmdb.  When set, geo lookups
            are served from this file instead of the HTTP service.
        maxmind_asn_db: Path to GeoLite2-ASN.mmdb, used for the ISP field
            of offline lookups.
    """

    rpc_url: str = DEFAULT_RPC_URL
    maxmind_city_db: str | None = None
    maxmind_asn_db: str | None = None


# Keys in the YAML file that map to PnodemapConfig fields.
_YAML_KEY_TO_FIELD: dict[str, str] = {
    "rpc_url": "rpc_url",
    "maxmind_city_db": "maxmind_city_db",
    "maxmind_asn_db": "maxmind_asn_db",
}


def load_config(path: Path | str | None = None) -> PnodemapConfig:
    """Load configuration from a YAML file and the environment.

    ``$PNODEMAP_RPC_URL``, when set and non-empty, wins over the file.

    Args:
        path: Explicit path to a YAML config file.  If ``None``, the
            default location (``~/.pnodemap/config.yaml``) is tried.  If the
            default file doesn't exist, defaults are used silently.

    Returns:
        A populated ``PnodemapConfig`` instance.

    Raises:
        FileNotFoundError: If an explicit *path* was given but doesn't exist.
        ConfigError: If the file contains invalid YAML or has an unexpected
            top-level structure.
    """
    cfg = _load_file(path)

    env_url = os.environ.get(RPC_URL_ENV_VAR)
    if env_url:
        logger.debug("Using RPC URL from $%s", RPC_URL_ENV_VAR)
        cfg.rpc_url = env_url

    return cfg


class ConfigError(Exception):
    """Raised when a configuration file is malformed or unreadable."""


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _load_file(path: Path | str | None) -> PnodemapConfig:
    resolved = _resolve_path(path)

    if resolved is None:
        logger.debug("No config file found; using defaults")
        return PnodemapConfig()

    logger.debug("Loading config from %s", resolved)
    text = resolved.read_text(encoding="utf-8")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc

    if raw is None:
        # Empty file.
        return PnodemapConfig()

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {resolved}, "
            f"got {type(raw).__name__}"
        )

    return _build_config(raw, source=resolved)


def _resolve_path(path: Path | str | None) -> Path | None:
    """Return a concrete ``Path`` to read, or ``None`` if nothing to read.

    Raises:
        FileNotFoundError: If the caller supplied an explicit path that
            doesn't exist on disk.
    """
    if path is not None:
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Config file not found: {p}")
        return p

    default = DEFAULT_CONFIG_PATH.expanduser()
    if default.is_file():
        return default
    return None


def _build_config(raw: dict, source: Path) -> PnodemapConfig:
    """Map raw YAML dict to a ``PnodemapConfig``, ignoring unknown keys."""
    kwargs: dict[str, object] = {}

    for yaml_key, field_name in _YAML_KEY_TO_FIELD.items():
        if yaml_key in raw:
            kwargs[field_name] = raw[yaml_key]

    unknown = set(raw) - set(_YAML_KEY_TO_FIELD)
    if unknown:
        logger.warning(
            "Ignoring unknown config keys in %s: %s",
            source,
            ", ".join(sorted(unknown)),
        )

    return PnodemapConfig(**kwargs)
