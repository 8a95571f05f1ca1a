"""
SMTP transport: one relay attempt against the configured server.
connect -> handshake -> [starttls] -> [auth] -> mail -> rcpt... -> data -> quit.
Any failed stage aborts the attempt with DeliveryError(stage, detail); no retries.
"""
import ipaddress
import logging
import re
import smtplib
import socket
import ssl
from contextlib import contextmanager
from typing import Iterable

from core.context import TransportConfig
from core.errors import ConfigurationError, DeliveryError

logger = logging.getLogger("smtplemail.smtp")

# Stage names reported in DeliveryError.stage
STAGE_CONNECT = "connect"
STAGE_HANDSHAKE = "handshake"
STAGE_STARTTLS = "starttls"
STAGE_AUTH = "auth"
STAGE_MAIL = "mail"
STAGE_RCPT = "rcpt"
STAGE_DATA = "data"

_BARE_LF_RE = re.compile(rb"(?<!\r)\n")


def _text(resp) -> str:
    if isinstance(resp, bytes):
        return resp.decode("utf-8", errors="replace").strip()
    return str(resp or "").strip()


@contextmanager
def _stage(name: str):
    """Turn smtplib/socket failures raised inside the block into DeliveryError(name)."""
    logger.debug("SMTP stage: %s", name)
    try:
        yield
    except DeliveryError:
        raise
    except smtplib.SMTPResponseException as e:
        raise DeliveryError(name, f"{e.smtp_code} {_text(e.smtp_error)}", e.smtp_code) from e
    except (socket.timeout, TimeoutError) as e:
        raise DeliveryError(name, f"timeout: {e}") from e
    except ssl.SSLError as e:
        raise DeliveryError(name, f"ssl_error: {e}") from e
    except (smtplib.SMTPException, OSError, UnicodeEncodeError, ValueError) as e:
        raise DeliveryError(name, str(e) or e.__class__.__name__) from e


def tls_context(config: TransportConfig) -> ssl.SSLContext:
    """Default client context; verification disabled only when tls_verify is off."""
    ctx = ssl.create_default_context()
    if not config.tls_verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _open(config: TransportConfig) -> smtplib.SMTP:
    """
    Connected client that has read the 220 greeting. The host is passed to the
    constructor so certificate checks (SSL wrap and STARTTLS) see the server name.
    """
    try:
        if config.implicit_tls:
            return smtplib.SMTP_SSL(config.host, config.port, timeout=config.timeout, context=tls_context(config))
        return smtplib.SMTP(config.host, config.port, timeout=config.timeout)
    except smtplib.SMTPConnectError as e:
        raise DeliveryError(STAGE_HANDSHAKE, f"{e.smtp_code} {_text(e.smtp_error)}", e.smtp_code) from e


def _close(client: smtplib.SMTP) -> None:
    try:
        client.quit()
    except (smtplib.SMTPException, OSError) as e:
        logger.debug("QUIT failed: %s", e)
    finally:
        client.close()


def to_crlf(message: bytes) -> bytes:
    """Bare LF line endings become CRLF on the wire; existing CRLF is kept."""
    return _BARE_LF_RE.sub(b"\r\n", message)


def _mail_options(client: smtplib.SMTP, envelope_from: str, recipients: list[str], message: bytes) -> list[str]:
    options = []
    if any(b > 0x7F for b in message) and client.has_extn("8bitmime"):
        options.append("BODY=8BITMIME")
    if not all(a.isascii() for a in [envelope_from, *recipients]):
        if not client.has_extn("smtputf8"):
            raise DeliveryError(STAGE_MAIL, "non-ASCII address but server does not support SMTPUTF8")
        options.append("SMTPUTF8")
    return options


def _upgrade(client: smtplib.SMTP, config: TransportConfig) -> bool:
    """STARTTLS when advertised; a server without it is not an error. Returns True once encrypted."""
    if not client.has_extn("starttls"):
        logger.debug("STARTTLS not advertised by %s; continuing in cleartext", config.host)
        return False
    with _stage(STAGE_STARTTLS):
        client.starttls(context=tls_context(config))
        client.ehlo_or_helo_if_needed()
    logger.debug("STARTTLS negotiated with %s", config.host)
    return True


def is_loopback(host: str) -> bool:
    if host.lower() == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def _authenticate(client: smtplib.SMTP, config: TransportConfig, encrypted: bool) -> None:
    """AUTH PLAIN; credentials are never sent in cleartext except to a loopback host."""
    if not config.has_credentials:
        logger.debug("No SMTP user configured; skipping AUTH")
        return
    if not encrypted and not is_loopback(config.host):
        raise DeliveryError(STAGE_AUTH, f"unencrypted connection to {config.host}; refusing to send credentials")
    with _stage(STAGE_AUTH):
        client.user, client.password = config.user, config.password
        client.auth("PLAIN", client.auth_plain)


def deliver(envelope_from: str, recipients: Iterable[str], message: bytes, config: TransportConfig) -> None:
    """
    Relay message to config.host:config.port for every recipient.
    Raises DeliveryError naming the failed stage. The first refused recipient
    aborts the send before DATA. The connection is closed on every path.
    """
    recipients = list(recipients)
    if not recipients:
        raise ConfigurationError("No recipients specified")

    with _stage(STAGE_CONNECT):
        client = _open(config)
    logger.debug("Connected to %s:%s (%s)", config.host, config.port, config.security)
    try:
        with _stage(STAGE_HANDSHAKE):
            client.ehlo_or_helo_if_needed()

        encrypted = config.implicit_tls
        if config.opportunistic_tls:
            encrypted = _upgrade(client, config)
        _authenticate(client, config, encrypted)

        with _stage(STAGE_MAIL):
            options = _mail_options(client, envelope_from, recipients, message)
            code, resp = client.mail(envelope_from, options)
            if code != 250:
                raise DeliveryError(STAGE_MAIL, f"{code} {_text(resp)} ({envelope_from})", code)

        for rcpt in recipients:
            with _stage(STAGE_RCPT):
                code, resp = client.rcpt(rcpt)
                if code not in (250, 251):
                    raise DeliveryError(STAGE_RCPT, f"{code} {_text(resp)} ({rcpt})", code)

        with _stage(STAGE_DATA):
            code, resp = client.data(to_crlf(message))
            if code != 250:
                raise DeliveryError(STAGE_DATA, f"{code} {_text(resp)}", code)
    finally:
        _close(client)

    logger.info("Email sent successfully to: %s", ", ".join(recipients))
