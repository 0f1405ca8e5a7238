# portal/utils/phone.py
# Phone number normalization shared by account creation and login
# The normalized phone is both the stored contact number and the login secret
# RELEVANT FILES: ../auth.py, client_admin.py

import re

PHONE_DIGITS = 10

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str | None) -> str:
    """
    Strip everything except digits and keep the last 10.
    Returns an empty string when nothing usable is left.
    """
    if not raw:
        return ""
    digits = _NON_DIGITS.sub("", str(raw).strip())
    return digits[-PHONE_DIGITS:]


def is_valid_phone(raw: str | None) -> bool:
    """True when the input carries at least 10 digits"""
    return len(normalize_phone(raw)) == PHONE_DIGITS
