"""Module with general helper functions for PySPD."""

import random
import re
import string
from typing import Final

MAX_ANTENNAS: Final[int] = 6
"""Number of antennas in the array."""

CLIENT_ID_LENGTH: Final[int] = 20
"""Number of characters of a generated client ID."""


def sanitize_filename_part(part: str) -> str:
    """Remove characters invalid in filenames and strip whitespace."""
    # Invalid on Windows: \ / : * ? " < > |
    return re.sub(r'[\\/:*?"<>|]', "", part).strip()


def minmatch(ref: str, chk: str, minlength: int) -> bool:
    """Checks whether `chk` is an abbreviation of keyword `ref`.

    The check is case-insensitive and requires at least `minlength`
    characters, but never more characters than the keyword has.

    Args:
        ref: Full keyword.
        chk: String typed by the user.
        minlength: Minimum number of characters that have to match.
    """
    if len(chk) < minlength or len(chk) > len(ref):
        return False
    return ref.lower().startswith(chk.lower())


def tokenize(line: str) -> list[str]:
    """Splits a command line on whitespace after treating commas as spaces."""
    return line.replace(',', ' ').split()


def interpret_array_string(array_string: str) -> int:
    """Builds an antenna bitmask from a string like '1234' or '1,3,5'.

    Bit k is set when antenna k appears. Characters that are not
    antenna digits are ignored.
    """
    spec = 0
    for char in array_string:
        if char.isdigit():
            antenna = int(char)
            if 1 <= antenna <= MAX_ANTENNAS:
                spec |= 1 << antenna
    return spec


def array_spec_antennas(array_spec: int) -> list[int]:
    """Lists the antenna numbers set in an array specification."""
    return [a for a in range(1, MAX_ANTENNAS + 1) if array_spec & (1 << a)]


def full_array_spec() -> int:
    """Returns the array specification with all antennas active."""
    spec = 0
    for antenna in range(1, MAX_ANTENNAS + 1):
        spec |= 1 << antenna
    return spec


def generate_client_id(length: int = CLIENT_ID_LENGTH) -> str:
    """Generates a random alphanumeric client identifier."""
    alphabet = string.ascii_letters + string.digits
    return ''.join(random.choice(alphabet) for _ in range(length))
