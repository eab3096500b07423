"""
Runtime settings for nshot, read from the environment (and a .env file)
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, Mapping

from dotenv import load_dotenv

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "nshot.db"
DEFAULT_CONFIG_PATH = "nshot_config.json"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3030
DEFAULT_MAX_PAYLOAD_BYTES = 1024 * 16
DEFAULT_DB_TIMEOUT = 5.0
DEFAULT_AUDIT_MAX_EVENTS = 10000
DEFAULT_AUDIT_RETENTION_DAYS = 90

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class Settings:
    """
    Service settings

    Attributes:
        db_path: SQLite file holding entries, blobs and audit events
        config_path: Registry snapshot file loaded at startup
        host: Interface the HTTP server binds to
        port: Port the HTTP server listens on
        max_payload_bytes: Largest payload a push may store
        meter_push: Whether push consumes a budget unit as well as fetch
        purge_exhausted: Whether the fetch spending the last unit deletes the blob
        admin_token: Shared secret required for admin routes, if set
        cert_path: TLS certificate handed to uvicorn
        key_path: TLS private key handed to uvicorn
        db_timeout: Seconds a connection waits on a locked database
        audit_max_events: Audit rows kept before the oldest are dropped
        audit_retention_days: Audit events older than this are removed at startup
    """
    db_path: str = DEFAULT_DB_PATH
    config_path: str = DEFAULT_CONFIG_PATH
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES
    meter_push: bool = False
    purge_exhausted: bool = False
    admin_token: Optional[str] = None
    cert_path: str = "cert.pem"
    key_path: str = "key.pem"
    db_timeout: float = DEFAULT_DB_TIMEOUT
    audit_max_events: int = DEFAULT_AUDIT_MAX_EVENTS
    audit_retention_days: int = DEFAULT_AUDIT_RETENTION_DAYS


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: str, minimum: int = 0) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables

    Args:
        environ: Mapping to read from. Defaults to os.environ after loading .env

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If a variable holds a malformed value
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    settings = Settings(
        db_path=environ.get("NSHOT_DB_PATH", DEFAULT_DB_PATH),
        config_path=environ.get("NSHOT_CONFIG_PATH", DEFAULT_CONFIG_PATH),
        host=environ.get("NSHOT_HOST", DEFAULT_HOST),
        port=_parse_int("NSHOT_PORT", environ.get("NSHOT_PORT", str(DEFAULT_PORT)), minimum=1),
        max_payload_bytes=_parse_int(
            "NSHOT_MAX_PAYLOAD_BYTES",
            environ.get("NSHOT_MAX_PAYLOAD_BYTES", str(DEFAULT_MAX_PAYLOAD_BYTES)),
            minimum=1,
        ),
        meter_push=_parse_bool("NSHOT_METER_PUSH", environ.get("NSHOT_METER_PUSH", "false")),
        purge_exhausted=_parse_bool("NSHOT_PURGE_EXHAUSTED", environ.get("NSHOT_PURGE_EXHAUSTED", "false")),
        admin_token=environ.get("NSHOT_ADMIN_TOKEN") or None,
        cert_path=environ.get("NSHOT_CERT_PATH", "cert.pem"),
        key_path=environ.get("NSHOT_KEY_PATH", "key.pem"),
        db_timeout=_parse_float("NSHOT_DB_TIMEOUT", environ.get("NSHOT_DB_TIMEOUT", str(DEFAULT_DB_TIMEOUT))),
        audit_max_events=_parse_int(
            "NSHOT_AUDIT_MAX_EVENTS",
            environ.get("NSHOT_AUDIT_MAX_EVENTS", str(DEFAULT_AUDIT_MAX_EVENTS)),
            minimum=1,
        ),
        audit_retention_days=_parse_int(
            "NSHOT_AUDIT_RETENTION_DAYS",
            environ.get("NSHOT_AUDIT_RETENTION_DAYS", str(DEFAULT_AUDIT_RETENTION_DAYS)),
            minimum=1,
        ),
    )

    logger.debug(f"Loaded settings: db_path={settings.db_path}, port={settings.port}")
    return settings
