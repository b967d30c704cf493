"""Address validation and header-value sanitising."""

import re

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_CRLF_RE = re.compile(r"[\r\n]")


def is_valid_email(address: str) -> bool:
    """Loose syntactic check: something@something.tld, no whitespace."""
    return bool(_EMAIL_RE.match(address))


def sanitize_header_value(value: str) -> str:
    """Strip CR and LF so a value can never start a new header line."""
    return _CRLF_RE.sub("", value)
