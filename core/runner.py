"""
Submission orchestration: read stdin, resolve recipients, rewrite, relay.
All input and configuration checks happen before the transport opens a socket.
Every fatal condition ends up as one logged diagnostic and a sysexits status.
"""
import logging
import os
from typing import BinaryIO

from core.constants import (
    EXIT_CONFIG,
    EXIT_DATAERR,
    EXIT_SOFTWARE,
    EXIT_SUCCESS,
    EXIT_TEMPFAIL,
    EXIT_UNAVAILABLE,
    LOG_LEVEL_INFO,
)
from core.context import SendmailContext
from core.errors import ConfigurationError, DeliveryError, InputError, SendmailError
from message.headers import parse_message
from message.recipients import resolve_recipients
from message.transform import rewrite_message
from smtp.transport import deliver

logger = logging.getLogger("smtplemail")


def _log_level(ctx: SendmailContext) -> int:
    if ctx.verbose:
        return logging.DEBUG
    if ctx.log_level == LOG_LEVEL_INFO:
        return logging.INFO
    return logging.ERROR


def setup_logging(ctx: SendmailContext) -> None:
    """stderr plus the append-only log file; a log file that cannot be opened is reported, not fatal."""
    log_format = "%(asctime)s %(name)s %(levelname)s %(message)s" if ctx.verbose else "%(asctime)s %(levelname)s %(message)s"
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    file_error = None
    if ctx.log_file:
        try:
            directory = os.path.dirname(ctx.log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            fh = logging.FileHandler(ctx.log_file, mode="a", encoding="utf-8")
            fh.setFormatter(logging.Formatter(log_format))
            handlers.append(fh)
        except OSError as e:
            file_error = e
    logging.basicConfig(level=_log_level(ctx), format=log_format, handlers=handlers, force=True)
    if file_error is not None:
        logger.warning("Could not open log file %s: %s", ctx.log_file, file_error)


def read_message(stream: BinaryIO) -> bytes:
    """Read the whole message; no dot terminator, end of stream ends the message."""
    try:
        return stream.read()
    except OSError as e:
        raise InputError(f"failed to read email data: {e}") from e


def submit(ctx: SendmailContext, raw: bytes) -> list[str]:
    """Parse, resolve recipients and sender, rewrite, then relay. Returns the recipient list."""
    parsed = parse_message(raw)
    recipients = resolve_recipients(parsed, ctx.recipients, ctx.read_recipients_from_headers)
    if not recipients:
        raise ConfigurationError("No recipients specified")
    message, envelope_from = rewrite_message(parsed, ctx.send_from, ctx.sender, ctx.sender_full_name)
    logger.debug("Relaying %d byte(s) from %s to %s via %s:%s",
                 len(message), envelope_from, recipients, ctx.transport.host, ctx.transport.port)
    deliver(envelope_from, recipients, message, ctx.transport)
    return recipients


def exit_code_for(error: SendmailError) -> int:
    """Map an error to a sysexits status: 5xx replies are permanent, other transport failures temporary."""
    if isinstance(error, InputError):
        return EXIT_DATAERR
    if isinstance(error, ConfigurationError):
        return EXIT_CONFIG
    if isinstance(error, DeliveryError):
        return EXIT_UNAVAILABLE if error.permanent else EXIT_TEMPFAIL
    return EXIT_SOFTWARE


def main_send(ctx: SendmailContext, stream: BinaryIO) -> int:
    """Entry point for one submission; handles logging and errors. Returns the exit status."""
    setup_logging(ctx)
    try:
        submit(ctx, read_message(stream))
    except DeliveryError as e:
        logger.error("Failed to send email: %s", e)
        return exit_code_for(e)
    except SendmailError as e:
        logger.error("%s", e)
        return exit_code_for(e)
    except Exception as e:
        logger.exception("Unexpected failure: %s", e)
        return EXIT_SOFTWARE
    return EXIT_SUCCESS
