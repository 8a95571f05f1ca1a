"""
Recipient resolution: positional arguments, or To/Cc/Bcc with -t.
"""
import logging
from email.utils import getaddresses

from core.errors import AddressParseError
from message.headers import ParsedMessage

logger = logging.getLogger("smtplemail.message")

# Header order used for -t
RECIPIENT_HEADERS = ("To", "Cc", "Bcc")


def _addresses(header: str, value: str) -> list[str]:
    if not value.strip():
        return []
    found = [addr for _, addr in getaddresses([value]) if addr]
    # A bare group such as "undisclosed-recipients:;" legitimately has no members
    if not found and not value.strip().endswith(";"):
        raise AddressParseError(f"failed to parse {header} header {value!r}")
    return found


def extract_recipients(parsed: ParsedMessage) -> list[str]:
    """All addresses from To, then Cc, then Bcc, in header order. Duplicates are kept."""
    out: list[str] = []
    for header in RECIPIENT_HEADERS:
        for value in parsed.get_all(header):
            out.extend(_addresses(header, value))
    logger.debug("Recipients from headers: %s", out)
    return out


def resolve_recipients(parsed: ParsedMessage, arguments, from_headers: bool) -> list[str]:
    """Header-derived recipients when from_headers is set, otherwise the arguments verbatim."""
    if from_headers:
        return extract_recipients(parsed)
    return [a for a in arguments if a]
