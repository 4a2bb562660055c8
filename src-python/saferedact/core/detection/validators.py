"""Structural validators for pattern matches.

A validator receives the matched text and returns False to suppress
the match (checksum failure, reserved range, impossible date...).
"""

from __future__ import annotations

import re

_CHINA_MOBILE_PREFIX = re.compile(r"^1(3\d|4[5-9]|5[0-35-9]|6[2567]|7[0-8]|8\d|9[0-35-9])", re.ASCII)

_CHINESE_ID_WEIGHTS = (7, 9, 10, 5, 8, 4, 2, 1, 6, 3, 7, 9, 10, 5, 8, 4, 2)
_CHINESE_ID_CHECK_CODES = "10X98765432"


def _digits(text: str) -> str:
    return "".join(ch for ch in text if "0" <= ch <= "9")


def luhn_check(number_str: str) -> bool:
    """Luhn algorithm — validates payment card numbers of 13–19 digits."""
    digits = [int(d) for d in _digits(number_str)]
    if len(digits) < 13 or len(digits) > 19:
        return False
    checksum = 0
    for i, d in enumerate(reversed(digits)):
        if i % 2 == 1:
            d *= 2
            if d > 9:
                d -= 9
        checksum += d
    return checksum % 10 == 0


def validate_ssn(text: str) -> bool:
    """US SSN: 9 digits, area not 000/666, group not 00, serial not 0000.

    Area numbers 900–999 are accepted (post-2011 randomization).
    """
    digits = _digits(text)
    if len(digits) != 9:
        return False
    area, group, serial = int(digits[:3]), int(digits[3:5]), int(digits[5:])
    if area == 0 or area == 666:
        return False
    if group == 0:
        return False
    if serial == 0:
        return False
    return True


def validate_us_phone(text: str) -> bool:
    """Reject impossible area codes and the 555-01XX fictional range."""
    digits = _digits(text)
    if len(digits) not in (10, 11):
        return False
    offset = 1 if len(digits) == 11 else 0
    area = int(digits[offset:offset + 3])
    exchange = int(digits[offset + 3:offset + 6])
    if area in (0, 1):
        return False
    if area == 555 and 100 <= exchange <= 199:
        return False
    return True


def validate_international_phone(text: str) -> bool:
    return 8 <= len(_digits(text)) <= 15


def validate_china_mobile(text: str) -> bool:
    digits = _digits(text)
    return len(digits) == 11 and _CHINA_MOBILE_PREFIX.match(digits) is not None


def validate_chinese_id(text: str) -> bool:
    """18-character resident ID: plausible birth date + ISO 7064 MOD 11-2 check code."""
    id_number = text.strip().upper()
    if len(id_number) != 18 or not id_number[:17].isdigit():
        return False

    year = int(id_number[6:10])
    month = int(id_number[10:12])
    day = int(id_number[12:14])
    if not 1900 <= year <= 2100:
        return False
    if not 1 <= month <= 12:
        return False
    if not 1 <= day <= 31:
        return False

    total = sum(int(d) * w for d, w in zip(id_number[:17], _CHINESE_ID_WEIGHTS))
    return _CHINESE_ID_CHECK_CODES[total % 11] == id_number[17]
