"""
RFC 5322 header block split and serialization.
Headers keep their order and multiplicity; the body is returned byte-for-byte.
"""
import logging
import re
from dataclasses import dataclass, field

from core.errors import MessageParseError

logger = logging.getLogger("smtplemail.message")

CRLF = "\r\n"

# field-name = 1*ftext, ftext = %d33-57 / %d59-126 (printable US-ASCII except ":")
FIELD_NAME_RE = re.compile(rb"^[\x21-\x39\x3b-\x7e]+$")
_WSP = b" \t"
# Header bytes are decoded losslessly so 8-bit values survive a round trip
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


@dataclass(frozen=True)
class Header:
    """One header field. value holds folded lines joined by CRLF, without the leading space after the colon."""

    name: str
    value: str

    @property
    def unfolded(self) -> str:
        return self.value.replace(CRLF, "")

    def matches(self, name: str) -> bool:
        return self.name.lower() == name.lower()


@dataclass
class ParsedMessage:
    """Header fields in original order plus the untouched body."""

    headers: list[Header] = field(default_factory=list)
    body: bytes = b""

    def get_all(self, name: str) -> list[str]:
        """Unfolded values of every field called name (case-insensitive), in order."""
        return [h.unfolded for h in self.headers if h.matches(name)]

    def get(self, name: str) -> str | None:
        """First unfolded value of name, or None."""
        for h in self.headers:
            if h.matches(name):
                return h.unfolded
        return None


def _decode(data: bytes) -> str:
    return data.decode(_ENCODING, _ERRORS)


def _iter_lines(raw: bytes):
    """Yield (line_without_eol, offset_of_next_line). Handles LF and CRLF endings."""
    pos = 0
    n = len(raw)
    while pos < n:
        end = raw.find(b"\n", pos)
        if end == -1:
            yield raw[pos:], n
            return
        line = raw[pos:end]
        if line.endswith(b"\r"):
            line = line[:-1]
        yield line, end + 1
        pos = end + 1


def parse_message(raw: bytes) -> ParsedMessage:
    """
    Split raw message bytes into header fields and body.
    Raises MessageParseError on a line that is neither a field nor a continuation.
    A message without a blank separator line is treated as headers only.
    """
    fields: list[tuple[bytes, list[bytes]]] = []
    body = b""
    for lineno, (line, next_pos) in enumerate(_iter_lines(raw), 1):
        if not line:
            body = raw[next_pos:]
            break
        if line[:1] in (b" ", b"\t"):
            if not fields:
                raise MessageParseError(f"line {lineno}: continuation line before first header field")
            fields[-1][1].append(line)
            continue
        name, sep, value = line.partition(b":")
        if not sep:
            raise MessageParseError(f"line {lineno}: malformed header line {_decode(line[:60])!r}")
        if not FIELD_NAME_RE.match(name):
            raise MessageParseError(f"line {lineno}: invalid header field name {_decode(name[:60])!r}")
        fields.append((name, [value.lstrip(_WSP)]))

    headers = [Header(_decode(name), CRLF.join(_decode(part) for part in parts)) for name, parts in fields]
    logger.debug("Parsed %d header field(s), body %d byte(s)", len(headers), len(body))
    return ParsedMessage(headers=headers, body=body)


def serialize_message(headers: list[Header], body: bytes) -> bytes:
    """Name: value CRLF per field, a blank CRLF line, then body verbatim."""
    block = "".join(f"{h.name}: {h.value}{CRLF}" for h in headers) + CRLF
    return block.encode(_ENCODING, _ERRORS) + body
