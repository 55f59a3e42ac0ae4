from __future__ import annotations

import re

from ..infra.errors import InputValidationError
from ..infra.models import HEADER_CLOSE, HEADER_OPEN


_OCTET = r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)"
_IPV4_RE = re.compile(rf"^{_OCTET}(?:\.{_OCTET}){{3}}(?:/(?:3[0-2]|[12]?[0-9]))?$")
_UNSPECIFIED_RE = re.compile(r"^0{1,3}(?:\.0{1,3}){3}(?:/[0-9]+)?$")

_SID_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]{2}$")
_CERT_ID_RE = re.compile(r"^[0-9]+$")

DEFAULT_EMPLOYEE_PREFIXES = "DIC"


def is_valid_ipv4(value: str) -> bool:
    """Dotted quad with octets 0-255 and an optional /0-32 suffix; 0.0.0.0 is refused."""
    s = str(value or "").strip()
    if not _IPV4_RE.match(s):
        return False
    return not _UNSPECIFIED_RE.match(s)


def is_valid_sid(value: str) -> bool:
    return bool(_SID_RE.match(str(value or "").strip()))


def is_valid_employee_id(value: str, prefixes: str = DEFAULT_EMPLOYEE_PREFIXES) -> bool:
    s = str(value or "").strip()
    if len(s) != 7 or not s[1:].isdigit() or not s[1:].isascii():
        return False
    return s[0].upper() in prefixes.upper()


def is_valid_email(value: str) -> bool:
    s = str(value or "").strip()
    if not s or any(ch.isspace() for ch in s):
        return False
    return "@" in s and "." in s


def require_ipv4(value: str) -> str:
    s = str(value or "").strip()
    if not is_valid_ipv4(s):
        raise InputValidationError(f"invalid IPv4 address: {s!r}")
    return s


def require_sid(value: str) -> str:
    s = str(value or "").strip()
    if not is_valid_sid(s):
        raise InputValidationError(f"invalid SID: {s!r} (expected 3 characters, letter first)")
    return s.upper()


def require_certification_id(value: str) -> str:
    s = str(value or "").strip()
    if not _CERT_ID_RE.match(s):
        raise InputValidationError(f"invalid certification id: {s!r} (digits only)")
    return s


def require_partner_name(value: str) -> str:
    s = " ".join(str(value or "").split())
    if not s:
        raise InputValidationError("partner name must not be empty")
    if HEADER_OPEN in s or HEADER_CLOSE in s:
        raise InputValidationError(f"partner name must not contain {HEADER_OPEN!r} or {HEADER_CLOSE!r}")
    return s


def require_employee_id(value: str, prefixes: str = DEFAULT_EMPLOYEE_PREFIXES) -> str:
    s = str(value or "").strip()
    if not is_valid_employee_id(s, prefixes):
        allowed = "/".join(prefixes.upper())
        raise InputValidationError(f"invalid employee id: {s!r} (expected {allowed} followed by 6 digits)")
    return s.upper()


def require_requester(value: str) -> str:
    s = " ".join(str(value or "").split())
    if not s:
        raise InputValidationError("requester name must not be empty")
    if "|" in s or "#" in s:
        raise InputValidationError("requester name must not contain '|' or '#'")
    return s


def require_email(value: str) -> str:
    s = str(value or "").strip()
    if not is_valid_email(s):
        raise InputValidationError(f"invalid e-mail address: {s!r}")
    return s
