# chempal/parsers/cas.py

"""CAS registry number validation.

A CAS number is ``AAAAAAA-BB-C``: two to seven digits, two digits and a
check digit.  The check digit is the sum of the first two segments'
digits, taken right to left and weighted by position (1, 2, 3...),
modulo 10.
"""

import re

_CAS_BODY = r"(?P<seg_a>\d{2,7})-(?P<seg_b>\d{2})-(?P<seg_checksum>\d)"
_CAS_EXACT_RE = re.compile(rf"^{_CAS_BODY}$")
_CAS_SEARCH_RE = re.compile(rf"(?<![\d-]){_CAS_BODY}(?![\d-])")


def _checksum(seg_a: str, seg_b: str) -> int:
    digits = (seg_a + seg_b)[::-1]
    return sum(pos * int(d) for pos, d in enumerate(digits, start=1)) % 10


def _valid_segments(seg_a: str, seg_b: str, seg_checksum: str) -> bool:
    if int(seg_a) == 0 and int(seg_b) == 0:
        return False
    return _checksum(seg_a, seg_b) == int(seg_checksum)


def is_cas(value: object) -> bool:
    """True when *value* is a well-formed CAS number with a valid check digit.

    >>> is_cas("7647-14-5")
    True
    >>> is_cas("1234-56-0")
    False
    """
    if not isinstance(value, str):
        return False
    match = _CAS_EXACT_RE.match(value.strip())
    if match is None:
        return False
    return _valid_segments(*match.group("seg_a", "seg_b", "seg_checksum"))


def find_cas(text: str | None) -> str | None:
    """Return the first CAS number in *text* whose check digit validates."""
    if not text:
        return None
    for match in _CAS_SEARCH_RE.finditer(text):
        if _valid_segments(*match.group("seg_a", "seg_b", "seg_checksum")):
            return match.group(0)
    return None
