"""
Interactive first-run setup: write the config file and install a sendmail symlink.
Every filesystem change outside the config file is confirmed first.
"""
import getpass
import os
import shutil
import sys
from typing import Callable, Optional

from core.config import load_file_config, normalize_security, save_file_config
from core.constants import (
    DEFAULT_LOG_FILE,
    DEFAULT_PORTS,
    DEFAULT_SECURITY,
    DEFAULT_SENDMAIL_PATH,
    LOG_LEVEL_ERROR,
    LOG_LEVELS,
)
from core.errors import ConfigurationError

Prompt = Callable[[str], str]


def _ask(input_fn: Prompt, label: str, default: str = "") -> str:
    suffix = f" [{default}]" if default else ""
    answer = input_fn(f"{label}{suffix}: ").strip()
    return answer or default


def _confirm(input_fn: Prompt, question: str) -> bool:
    return input_fn(f"{question} (yes/no): ").strip().lower() in ("y", "yes")


def gather_config(input_fn: Prompt = input, password_fn: Prompt = getpass.getpass,
                  current: Optional[dict] = None) -> dict:
    """Prompt for every config key; current values (from an existing file) are offered as defaults."""
    current = current or {}
    cfg = {}
    cfg["smtp_user"] = _ask(input_fn, "SMTP user", current.get("smtp_user", ""))
    password = password_fn("SMTP password (leave empty to keep current): ").strip()
    cfg["smtp_password"] = password or current.get("smtp_password", "")
    cfg["smtp_host"] = _ask(input_fn, "SMTP host", current.get("smtp_host", ""))
    security = normalize_security(_ask(input_fn, "Use SSL, TLS, or None", current.get("smtp_security", DEFAULT_SECURITY)))
    cfg["smtp_security"] = security
    cfg["smtp_port"] = _ask(input_fn, "SMTP port", str(current.get("smtp_port") or DEFAULT_PORTS[security]))
    cfg["send_from"] = _ask(input_fn, "Send email from (optional)", current.get("send_from", ""))
    cfg["log_file"] = _ask(input_fn, "Log file location", current.get("log_file") or DEFAULT_LOG_FILE)
    log_level = _ask(input_fn, "Log level (error or info)", current.get("log_level") or LOG_LEVEL_ERROR).lower()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(f"invalid log_level {log_level!r} (expected error or info)")
    cfg["log_level"] = log_level
    if not cfg["smtp_host"]:
        raise ConfigurationError("SMTP host is required")
    return cfg


def _own_executable() -> str:
    return shutil.which("smtplemail") or os.path.abspath(sys.argv[0])


def install_sendmail_link(input_fn: Prompt = input, target: Optional[str] = None,
                          link_path: Optional[str] = None) -> Optional[str]:
    """
    Point sendmail at this program. An existing sendmail is renamed to
    sendmail-old only after confirmation. Returns the created link path, or None.
    """
    target = target or _own_executable()
    if link_path:
        existing = link_path if os.path.lexists(link_path) else None
    else:
        existing = shutil.which("sendmail")
        link_path = existing or DEFAULT_SENDMAIL_PATH
    if existing and os.path.realpath(existing) == os.path.realpath(target):
        print(f"sendmail at {existing} already points to {target}.")
        return None
    if existing:
        if not _confirm(input_fn, f"Existing sendmail binary found at {existing}. Rename to sendmail-old?"):
            print("Leaving existing sendmail in place; no symlink created.")
            return None
        try:
            os.rename(existing, existing + "-old")
        except OSError as e:
            raise ConfigurationError(f"failed to rename existing sendmail: {e}") from e
    if not _confirm(input_fn, f"Create symlink {link_path} -> {target}?"):
        return None
    try:
        os.symlink(target, link_path)
    except OSError as e:
        raise ConfigurationError(f"failed to create symlink {link_path}: {e}") from e
    return link_path


def run_setup(config_path: str, input_fn: Prompt = input, password_fn: Prompt = getpass.getpass) -> None:
    """Full wizard: prompt, save config, offer the sendmail symlink."""
    current = load_file_config(config_path)
    cfg = gather_config(input_fn, password_fn, current)
    save_file_config(config_path, cfg)
    print(f"Configuration saved to {config_path}")
    link = install_sendmail_link(input_fn)
    if link:
        print(f"Created {link}")
    print("Setup completed successfully.")
