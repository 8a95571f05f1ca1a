"""
Configuration: environment variables and optional config file (JSON).
CLI arguments override environment variables override config file override defaults.
The merged dict is validated once and frozen into a SendmailContext.
"""
import json
import logging
import os
from typing import Any, Optional

from core.constants import (
    DEFAULT_LOG_FILE,
    DEFAULT_SECURITY,
    LOG_LEVEL_ERROR,
    LOG_LEVELS,
    SECURITY_NONE,
    SECURITY_SSL,
    SECURITY_TLS,
    SMTP_TIMEOUT,
)
from core.context import SendmailContext, TransportConfig
from core.errors import ConfigurationError

logger = logging.getLogger("smtplemail.config")

# config key -> environment variable
ENV_VARS = {
    "smtp_user": "SMTP_USER",
    "smtp_password": "SMTP_PASSWORD",
    "smtp_host": "SMTP_HOST",
    "smtp_port": "SMTP_PORT",
    "smtp_security": "SMTP_SECURITY",
    "smtp_timeout": "SMTP_TIMEOUT",
    "smtp_tls_verify": "SMTP_TLS_VERIFY",
    "send_from": "SEND_FROM",
    "log_file": "LOG_FILE",
    "log_level": "LOG_LEVEL",
}

# Accepted spellings of smtp_security, lowercased
_SECURITY_ALIASES = {
    "ssl": SECURITY_SSL,
    "tls": SECURITY_TLS,
    "starttls": SECURITY_TLS,
    "none": SECURITY_NONE,
    "plain": SECURITY_NONE,
}

_BOOL_KEYS = ("smtp_tls_verify", "verbose")
_FLOAT_KEYS = ("smtp_timeout",)
_STR_KEYS = (
    "smtp_user", "smtp_password", "smtp_host", "smtp_port", "smtp_security",
    "send_from", "log_file", "log_level",
)


def _parse_bool(v: Any) -> Optional[bool]:
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return None


def _env_bool(name: str) -> Optional[bool]:
    v = os.environ.get(name, "").strip()
    if not v:
        return None
    parsed = _parse_bool(v)
    if parsed is None:
        logger.warning("Environment variable %s has invalid boolean %r; skipping.", name, v)
    return parsed


def _env_float(name: str) -> Optional[float]:
    v = os.environ.get(name, "").strip()
    if not v:
        return None
    try:
        return float(v)
    except ValueError:
        logger.warning("Environment variable %s has invalid number %r; skipping.", name, v)
        return None


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables (SMTP_*, SEND_FROM, LOG_*). Unset keys are None."""
    out: dict[str, Any] = {}
    for key, var in ENV_VARS.items():
        if key in _BOOL_KEYS:
            out[key] = _env_bool(var)
        elif key in _FLOAT_KEYS:
            out[key] = _env_float(var)
        else:
            out[key] = os.environ.get(var, "").strip() or None
    return out


def load_file_config(path: str) -> dict[str, Any]:
    """
    Load configuration from a JSON file. A missing file yields an empty dict;
    a file that exists but cannot be read or parsed is a ConfigurationError.
    """
    if not path or not os.path.isfile(path):
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read configuration file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"failed to parse configuration file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration file {path} must contain a JSON object")
    # Map common keys to our names
    mapping = {
        "user": "smtp_user",
        "password": "smtp_password",
        "host": "smtp_host",
        "port": "smtp_port",
        "security": "smtp_security",
        "timeout": "smtp_timeout",
        "tls_verify": "smtp_tls_verify",
        "from": "send_from",
    }
    out: dict[str, Any] = {}
    for k, v in data.items():
        key = mapping.get(k, k)
        if v is None:
            continue
        if key in _BOOL_KEYS:
            parsed = _parse_bool(v)
            if parsed is None:
                logger.warning("Config key %s has invalid value %r; skipping.", key, v)
                continue
            out[key] = parsed
        elif key in _FLOAT_KEYS:
            try:
                out[key] = float(v)
            except (TypeError, ValueError):
                logger.warning("Config key %s has invalid value %r; skipping.", key, v)
        elif key in _STR_KEYS:
            out[key] = str(v).strip()
        else:
            logger.debug("Ignoring unknown config key %s", k)
    return out


def save_file_config(path: str, data: dict[str, Any]) -> None:
    """Write configuration as JSON, creating the parent directory. The file holds a password: mode 0600."""
    directory = os.path.dirname(path)
    try:
        if directory:
            os.makedirs(directory, mode=0o755, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
            f.write("\n")
    except OSError as e:
        raise ConfigurationError(f"failed to write configuration file {path}: {e}") from e
    logger.info("Configuration saved to %s", path)


def merge_config(file_cfg: dict[str, Any], env: dict[str, Any], cli: dict[str, Any]) -> dict[str, Any]:
    """Merge file (base), then env, then CLI. CLI overrides all; None never overrides."""
    out: dict[str, Any] = {}
    for source in (file_cfg, env, cli):
        for k, v in source.items():
            if v is not None:
                out[k] = v
    return out


def normalize_security(value: Optional[str]) -> str:
    """Map an smtp_security spelling to SSL | TLS | None."""
    if value is None or not str(value).strip():
        return DEFAULT_SECURITY
    mode = _SECURITY_ALIASES.get(str(value).strip().lower())
    if mode is None:
        raise ConfigurationError(f"invalid smtp_security {value!r} (expected SSL, TLS or None)")
    return mode


def _parse_port(value: Any) -> int:
    if value is None or str(value).strip() == "":
        return 0
    try:
        port = int(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"invalid smtp_port {value!r}") from None
    if not 0 < port < 65536:
        raise ConfigurationError(f"smtp_port out of range: {port}")
    return port


def build_transport_config(merged: dict[str, Any]) -> TransportConfig:
    """Validate the smtp_* keys of a merged config."""
    host = (merged.get("smtp_host") or "").strip()
    if not host:
        raise ConfigurationError("no SMTP host configured (smtp_host / SMTP_HOST / --smtp-host)")
    timeout = merged.get("smtp_timeout")
    if timeout is None:
        timeout = SMTP_TIMEOUT
    if float(timeout) <= 0:
        raise ConfigurationError(f"smtp_timeout must be positive, got {timeout}")
    tls_verify = merged.get("smtp_tls_verify")
    return TransportConfig(
        host=host,
        port=_parse_port(merged.get("smtp_port")),
        user=merged.get("smtp_user") or "",
        password=merged.get("smtp_password") or "",
        security=normalize_security(merged.get("smtp_security")),
        timeout=float(timeout),
        tls_verify=True if tls_verify is None else bool(tls_verify),
    )


def build_context(
    merged: dict[str, Any],
    sender: str = "",
    sender_full_name: str = "",
    read_recipients_from_headers: bool = False,
    recipients: tuple[str, ...] = (),
) -> SendmailContext:
    """Freeze a merged config dict plus the sendmail flags into a SendmailContext."""
    log_level = (merged.get("log_level") or LOG_LEVEL_ERROR).strip().lower()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(f"invalid log_level {log_level!r} (expected error or info)")
    return SendmailContext(
        transport=build_transport_config(merged),
        send_from=(merged.get("send_from") or "").strip(),
        log_file=merged.get("log_file") or DEFAULT_LOG_FILE,
        log_level=log_level,
        verbose=bool(merged.get("verbose", False)),
        sender=(sender or "").strip(),
        sender_full_name=(sender_full_name or "").strip(),
        read_recipients_from_headers=read_recipients_from_headers,
        recipients=tuple(recipients),
    )
