"""
Invocation state: transport settings and sendmail options for one submission.
Built once from the merged configuration and passed by value into the core;
both dataclasses are frozen.
"""
from dataclasses import dataclass, field
from typing import Optional

from core.constants import (
    DEFAULT_LOG_FILE,
    DEFAULT_PORTS,
    DEFAULT_SECURITY,
    LOG_LEVEL_ERROR,
    SECURITY_SSL,
    SECURITY_TLS,
    SMTP_TIMEOUT,
)


@dataclass(frozen=True)
class TransportConfig:
    """Where and how to relay: credentials, endpoint and security mode."""

    host: str
    port: int = 0
    user: str = ""
    password: str = field(default="", repr=False)
    security: str = DEFAULT_SECURITY
    # Connect/read/write timeout in seconds for every socket operation
    timeout: float = SMTP_TIMEOUT
    # Certificate and hostname verification for SSL and STARTTLS
    tls_verify: bool = True

    def __post_init__(self) -> None:
        if not self.port:
            object.__setattr__(self, "port", DEFAULT_PORTS.get(self.security, DEFAULT_PORTS[DEFAULT_SECURITY]))

    @property
    def implicit_tls(self) -> bool:
        return self.security == SECURITY_SSL

    @property
    def opportunistic_tls(self) -> bool:
        return self.security == SECURITY_TLS

    @property
    def has_credentials(self) -> bool:
        return bool(self.user)


@dataclass(frozen=True)
class SendmailContext:
    """Holds transport settings plus the sendmail command-line options."""

    transport: TransportConfig
    send_from: str = ""
    log_file: Optional[str] = DEFAULT_LOG_FILE
    log_level: str = LOG_LEVEL_ERROR
    verbose: bool = False

    # -f / -F overrides
    sender: str = ""
    sender_full_name: str = ""

    # -t: take recipients from To/Cc/Bcc instead of positional arguments
    read_recipients_from_headers: bool = False
    recipients: tuple[str, ...] = ()
