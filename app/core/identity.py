"""
Contact identity normalization.

Turns whatever the platform hands us (JIDs, local phone numbers, group ids)
into the canonical key used to resolve conversations. Pure and total: bad
input yields a best-effort string, never an exception.
"""

from __future__ import annotations

import re
from typing import Optional

GROUP_SUFFIX = "@g.us"
_NON_DIGITS = re.compile(r"\D")
_NON_GROUP_CHARS = re.compile(r"[^\d-]")


def is_group_contact(raw: Optional[str]) -> bool:
    """True when the identifier is a group JID."""
    return bool(raw) and GROUP_SUFFIX in raw


def normalize_contact_id(
    raw: Optional[str],
    country_code: str = "62",
    trunk_prefix: str = "0",
    subscriber_prefix: str = "8",
) -> str:
    """
    Canonicalize a contact identifier.

    JIDs (``<id>@s.whatsapp.net``, ``<id>@g.us`` ...) are already in
    international form: only the local part is kept. Group ids keep their
    hyphen. Plain phone numbers are reduced to digits, then:

    - a leading trunk prefix is replaced by the country code
      (``0812...`` -> ``62812...``);
    - a leading subscriber prefix gets the country code prepended
      (``812...`` -> ``62812...``);
    - anything else, including numbers already carrying the country code,
      is left as is.
    """
    if raw is None:
        return ""
    text = str(raw).strip()
    if not text:
        return ""

    if "@" in text:
        local, _, _domain = text.partition("@")
        local = local.split(":", 1)[0]  # drop device suffix (e.g. "62812:3@s.whatsapp.net")
        if is_group_contact(text):
            cleaned = _NON_GROUP_CHARS.sub("", local)
        else:
            cleaned = _NON_DIGITS.sub("", local)
        return cleaned or local

    digits = _NON_DIGITS.sub("", text)
    if not digits:
        return text

    if trunk_prefix and digits.startswith(trunk_prefix):
        return country_code + digits[len(trunk_prefix):]
    if country_code and digits.startswith(country_code):
        return digits
    if subscriber_prefix and digits.startswith(subscriber_prefix):
        return country_code + digits
    return digits
