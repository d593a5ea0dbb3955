"""Input Validation — synchronous checks run before any record is touched.

Invariants:
    - Every check raises InvalidInputError (400) and has no side effects
    - Account ids must be positive signed 32-bit values
    - Accepted text is cleaned: control characters other than tab and newline,
      U+2028..U+202E separators and bidi overrides, and stacking combining marks
      are removed, and the result is capped at MAX_INPUT_LENGTH characters
"""

import re

from tokensync.core.domain_types import MAX_OTHER_ACCOUNT_IDS, is_valid_account_id
from tokensync.core.errors import InvalidInputError

MAX_INPUT_LENGTH = 35_000

_BASE64URL = re.compile(r"^[A-Za-z0-9_-]*={0,2}$")
_OFFENDING_CHARACTERS = re.compile(
    "[\x00-\x08\x0b-\x1f\u2028-\u202e\u030a\u0333\u033f]",
)


def is_utf8_clean(value: str) -> bool:
    """False for strings that cannot be encoded as UTF-8 (lone surrogates)."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def is_base64url(value: str) -> bool:
    if not _BASE64URL.match(value):
        return False
    return len(value.rstrip("=")) % 4 != 1


def clean_input_text(value: str) -> str:
    return _OFFENDING_CHARACTERS.sub("", value)[:MAX_INPUT_LENGTH]


def validate_utf8_text(value: str, field: str, label: str) -> str:
    """Reject text that is not valid UTF-8; return its cleaned form."""
    if not is_utf8_clean(value):
        raise InvalidInputError(f"{label} must be encoded in UTF-8", field)
    return clean_input_text(value)


def validate_other_account_ids(
    account_ids: list[int], limit: int = MAX_OTHER_ACCOUNT_IDS,
) -> None:
    for account_id in account_ids:
        if not is_valid_account_id(account_id):
            raise InvalidInputError(
                "Invalid account id among other account ids",
                "other_account_ids",
            )
    if len(account_ids) > limit:
        raise InvalidInputError("Too many other account ids", "other_account_ids")
