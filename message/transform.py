"""
Sender resolution and header rewrite.

The envelope sender (MAIL FROM) and the header From are derived from the same
identity so that -f / -F overrides show up in both. Precedence, highest first:
-f address, -F full name, configured send_from, the message's own From header.
Only the From field is touched; every other header and the body pass through.
"""
import logging
from dataclasses import dataclass
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from email.utils import formataddr, parseaddr

from core.errors import AddressParseError, ConfigurationError
from message.headers import Header, ParsedMessage, parse_message, serialize_message

logger = logging.getLogger("smtplemail.message")


@dataclass(frozen=True)
class Identity:
    display_name: str
    address: str

    def formatted(self) -> str:
        """'Name <address>', or the bare address when there is no display name."""
        if not self.display_name:
            return self.address
        try:
            return formataddr((self.display_name, self.address))
        except UnicodeEncodeError:
            # Non-ASCII address (SMTPUTF8): formataddr refuses it
            return f"{self.display_name} <{self.address}>"


def _decode_display_name(name: str) -> str:
    if not name:
        return ""
    try:
        return str(make_header(decode_header(name)))
    except (HeaderParseError, LookupError, UnicodeDecodeError):
        return name


def parse_identity(value: str) -> Identity:
    """Split 'Name <local@domain>' (or a bare address) into an Identity."""
    name, addr = parseaddr(value)
    if not addr or "@" not in addr:
        raise AddressParseError(f"failed to parse From address {value!r}")
    return Identity(_decode_display_name(name), addr)


def resolve_identity(
    header_from: str | None,
    configured_from: str = "",
    cli_sender_address: str = "",
    cli_sender_name: str = "",
) -> Identity:
    """Apply the From precedence. Raises ConfigurationError when no address results."""
    base = (configured_from or "").strip() or (header_from or "").strip()
    identity = parse_identity(base) if base else Identity("", "")
    address = (cli_sender_address or "").strip() or identity.address
    name = (cli_sender_name or "").strip() or identity.display_name
    if not address:
        raise ConfigurationError("no From address specified in config, command line or email headers")
    return Identity(name, address)


def rewrite_message(
    parsed: ParsedMessage,
    configured_from: str = "",
    cli_sender_address: str = "",
    cli_sender_name: str = "",
) -> tuple[bytes, str]:
    """
    Rewrite an already-parsed message. Returns (message bytes, envelope sender).
    The first From field is replaced in place, later ones are dropped, and a
    From is appended when the message had none.
    """
    identity = resolve_identity(parsed.get("From"), configured_from, cli_sender_address, cli_sender_name)
    from_value = identity.formatted()

    headers: list[Header] = []
    replaced = False
    for h in parsed.headers:
        if h.matches("From"):
            if not replaced:
                headers.append(Header("From", from_value))
                replaced = True
            else:
                logger.debug("Dropping duplicate From header: %s", h.unfolded)
            continue
        headers.append(h)
    if not replaced:
        headers.append(Header("From", from_value))

    logger.debug("Resolved sender: From=%s envelope=%s", from_value, identity.address)
    return serialize_message(headers, parsed.body), identity.address


def transform(
    raw: bytes,
    configured_from: str = "",
    cli_sender_address: str = "",
    cli_sender_name: str = "",
) -> tuple[bytes, str]:
    """Parse raw message bytes and rewrite them. See rewrite_message."""
    return rewrite_message(parse_message(raw), configured_from, cli_sender_address, cli_sender_name)
