"""
Error taxonomy for smtplemail.
Input and configuration errors are raised before any network I/O;
DeliveryError names the transport stage that failed.
"""
from typing import Optional


class SendmailError(Exception):
    """Base class for every fatal condition of a submission."""


class InputError(SendmailError):
    """The message read from stdin cannot be used."""


class MessageParseError(InputError):
    """Header block is not valid RFC 5322 syntax."""


class AddressParseError(InputError):
    """An address (From, send_from, recipient header) cannot be parsed."""


class ConfigurationError(SendmailError):
    """Missing sender, empty recipient set, or an invalid configuration value."""


class DeliveryError(SendmailError):
    """A transport stage failed. str() is '<stage>: <detail>'."""

    def __init__(self, stage: str, detail: str, smtp_code: Optional[int] = None):
        super().__init__(f"{stage}: {detail}")
        self.stage = stage
        self.detail = detail
        self.smtp_code = smtp_code

    @property
    def permanent(self) -> bool:
        """True when the server answered with a 5xx reply."""
        return self.smtp_code is not None and 500 <= self.smtp_code < 600
